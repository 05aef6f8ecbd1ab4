"""
Duplicate resolver for import batches.

Looks up a whole batch against the catalog in one pass (one EAN query,
one name query) and decides, per row, whether it inserts, updates, or
is held back under the configured strategy.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Any, Optional
import structlog

from models.import_session import (
    DuplicateDetectionConfig,
    DuplicateEntry,
    DuplicateStrategy,
)
from models.product import CleaningRules, ColumnMapping
from parsers import cleaning_rules as rules
from services.catalog_service import CatalogService
from utils.text_utils import natural_key

logger = structlog.get_logger(__name__)


class RowOutcome(str, Enum):
    """What the import engine does with a row."""
    INSERT = "insert"
    UPDATE = "update"
    SKIP = "skip"
    FLAG = "flag"
    ERROR = "error"


STRATEGY_OUTCOMES = {
    DuplicateStrategy.SKIP: RowOutcome.SKIP,
    DuplicateStrategy.FLAG: RowOutcome.FLAG,
    DuplicateStrategy.ERROR: RowOutcome.ERROR,
    DuplicateStrategy.OVERWRITE: RowOutcome.UPDATE,
}


@dataclass
class RowKeys:
    """Natural keys read from one raw row."""
    ean: Optional[str] = None
    name_brand: Optional[str] = None
    product_name: Optional[str] = None


@dataclass
class Resolution:
    """Per-row decision."""
    outcome: RowOutcome
    existing_id: Optional[str] = None
    matched_on: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_duplicate(self) -> bool:
        return self.matched_on is not None


class DuplicateResolver:
    """
    Resolves rows against the catalog by natural key.

    EAN is checked first, then name+brand. Rows sharing a key inside the
    same batch are resolved against each other too, so two rows never
    both insert the same new EAN.
    """

    def __init__(
        self,
        catalog: Optional[CatalogService] = None,
        cleaning_rules: Optional[CleaningRules] = None
    ):
        self.catalog = catalog or CatalogService()
        self.rules = cleaning_rules or CleaningRules()

    def extract_keys(self, raw_row: dict[str, Any], mapping: ColumnMapping) -> RowKeys:
        """Read EAN and name+brand the same way the normalizer will."""
        if not isinstance(raw_row, dict):
            return RowKeys()

        keys = RowKeys()
        if mapping.ean:
            keys.ean = rules.clean_ean(raw_row.get(mapping.ean))

        brand = self._text(raw_row.get(mapping.brand)) if mapping.brand else ""
        name = self._text(raw_row.get(mapping.product_name)) if mapping.product_name else ""
        keys.product_name = name or None
        keys.name_brand = natural_key(brand, name)
        return keys

    def resolve_batch(
        self,
        rows: list[dict[str, Any]],
        mapping: ColumnMapping,
        config: DuplicateDetectionConfig,
        supplier_id: Optional[str] = None,
        eligible: Optional[list[bool]] = None
    ) -> list[Resolution]:
        """
        Decide the outcome of every row in a batch.

        Args:
            rows: Raw rows of one batch
            mapping: Column mapping
            config: Strategy and which natural keys to check
            supplier_id: Restrict matching to this supplier's catalog
            eligible: Per-row flag, False for rows that failed validation.
                Those rows resolve to INSERT and claim no in-batch key.

        Returns:
            One Resolution per row, in row order

        Raises:
            DatabaseError: If the bulk lookup fails
        """
        keys = [self.extract_keys(row, mapping) for row in rows]
        if eligible is not None:
            keys = [k if ok else RowKeys() for k, ok in zip(keys, eligible)]
        by_ean, by_name_brand = self._lookup(keys, config, supplier_id)

        strategy = config.strategy
        resolutions: list[Resolution] = []
        seen: dict[str, int] = {}

        for index, row_keys in enumerate(keys):
            match = self._match_existing(row_keys, config, by_ean, by_name_brand)
            if match:
                existing_id, matched_on = match
                resolutions.append(Resolution(
                    outcome=STRATEGY_OUTCOMES[strategy],
                    existing_id=existing_id,
                    matched_on=matched_on,
                    message=_duplicate_message(matched_on, existing_id, strategy)
                ))
            else:
                resolutions.append(Resolution(outcome=RowOutcome.INSERT))

            for key in self._batch_keys(row_keys, config):
                if key in seen:
                    self._resolve_in_batch(resolutions, seen[key], index, key, strategy)
                    break
            for key in self._batch_keys(row_keys, config):
                seen[key] = index

        logger.debug(
            "batch_duplicates_resolved",
            rows=len(rows),
            duplicates=sum(1 for r in resolutions if r.is_duplicate),
            strategy=strategy.value
        )

        return resolutions

    def find_duplicates(
        self,
        rows: list[dict[str, Any]],
        mapping: ColumnMapping,
        config: DuplicateDetectionConfig,
        supplier_id: Optional[str] = None,
        chunk_size: int = 500
    ) -> list[DuplicateEntry]:
        """
        Dry run: which rows would collide with the catalog or each other.

        Nothing is written.
        """
        entries: list[DuplicateEntry] = []
        # Flag strategy keeps earliest-row-wins semantics across the whole file
        flag_config = config.model_copy(update={"strategy": DuplicateStrategy.FLAG})
        seen: dict[str, int] = {}

        for start in range(0, len(rows), chunk_size):
            chunk = rows[start:start + chunk_size]
            resolutions = self.resolve_batch(chunk, mapping, flag_config, supplier_id)
            for offset, (row, resolution) in enumerate(zip(chunk, resolutions)):
                row_number = start + offset + 1
                row_keys = self.extract_keys(row, mapping)
                earlier = next(
                    (seen[k] for k in self._batch_keys(row_keys, config) if k in seen),
                    None
                )
                if resolution.is_duplicate:
                    entries.append(DuplicateEntry(
                        row=row_number,
                        field=resolution.matched_on,
                        message=resolution.message,
                        existing_id=resolution.existing_id,
                        matched_on=resolution.matched_on,
                    ))
                elif earlier is not None:
                    entries.append(DuplicateEntry(
                        row=row_number,
                        field="ean" if row_keys.ean and f"ean:{row_keys.ean}" in seen else "name_brand",
                        message=f"Same product as row {earlier} in this file",
                        matched_on="in_file",
                    ))
                for key in self._batch_keys(row_keys, config):
                    seen.setdefault(key, row_number)

        return entries

    # ===================
    # HELPERS
    # ===================

    def _lookup(
        self,
        keys: list[RowKeys],
        config: DuplicateDetectionConfig,
        supplier_id: Optional[str]
    ) -> tuple[dict[str, dict], dict[str, dict]]:
        """One EAN query and one name query for the whole batch."""
        by_ean: dict[str, dict] = {}
        by_name_brand: dict[str, dict] = {}

        if config.check_ean:
            eans = [k.ean for k in keys if k.ean]
            for existing in self.catalog.find_by_eans(eans, supplier_id=supplier_id):
                if existing.get("ean"):
                    by_ean.setdefault(existing["ean"], existing)

        if config.check_name_brand:
            names = [k.product_name for k in keys if k.name_brand]
            for existing in self.catalog.find_by_names(names, supplier_id=supplier_id):
                key = natural_key(existing.get("brand"), existing.get("product_name"))
                if key:
                    by_name_brand.setdefault(key, existing)

        return by_ean, by_name_brand

    @staticmethod
    def _match_existing(
        row_keys: RowKeys,
        config: DuplicateDetectionConfig,
        by_ean: dict[str, dict],
        by_name_brand: dict[str, dict]
    ) -> Optional[tuple[str, str]]:
        if config.check_ean and row_keys.ean and row_keys.ean in by_ean:
            return by_ean[row_keys.ean]["id"], "ean"
        # Name+brand is the fallback key, only for rows without an EAN
        if (
            config.check_name_brand
            and row_keys.name_brand
            and not (config.check_ean and row_keys.ean)
            and row_keys.name_brand in by_name_brand
        ):
            return by_name_brand[row_keys.name_brand]["id"], "name_brand"
        return None

    @staticmethod
    def _batch_keys(row_keys: RowKeys, config: DuplicateDetectionConfig) -> list[str]:
        keys = []
        if config.check_ean and row_keys.ean:
            keys.append(f"ean:{row_keys.ean}")
        elif config.check_name_brand and row_keys.name_brand:
            keys.append(f"nb:{row_keys.name_brand}")
        return keys

    @staticmethod
    def _resolve_in_batch(
        resolutions: list[Resolution],
        first: int,
        current: int,
        key: str,
        strategy: DuplicateStrategy
    ) -> None:
        """
        Two rows of one batch share a natural key.

        Overwrite: the later row wins and the earlier one is skipped.
        Other strategies: the earlier row wins and the later one gets the
        strategy outcome, as if the earlier row were already stored.
        """
        matched_on = "ean" if key.startswith("ean:") else "name_brand"
        earlier = resolutions[first]

        if strategy == DuplicateStrategy.OVERWRITE:
            resolutions[current] = Resolution(
                outcome=earlier.outcome,
                existing_id=earlier.existing_id,
                matched_on=earlier.matched_on or matched_on,
                message=earlier.message,
            )
            resolutions[first] = Resolution(
                outcome=RowOutcome.SKIP,
                existing_id=earlier.existing_id,
                matched_on=matched_on,
                message=f"Superseded by a later row with the same {_key_label(matched_on)}",
            )
            return

        if resolutions[current].is_duplicate:
            return
        resolutions[current] = Resolution(
            outcome=STRATEGY_OUTCOMES[strategy],
            existing_id=earlier.existing_id,
            matched_on=matched_on,
            message=f"Duplicate {_key_label(matched_on)} of an earlier row in this batch",
        )

    def _text(self, value: Any) -> str:
        return rules.clean_string(
            value,
            trim=self.rules.trim_whitespace,
            case=self.rules.normalize_case,
            remove_special_chars=self.rules.remove_special_chars
        )


def _key_label(matched_on: str) -> str:
    return "EAN" if matched_on == "ean" else "name and brand"


def _duplicate_message(matched_on: str, existing_id: str, strategy: DuplicateStrategy) -> str:
    label = _key_label(matched_on)
    if strategy == DuplicateStrategy.SKIP:
        return f"Skipped: product with this {label} already exists"
    if strategy == DuplicateStrategy.OVERWRITE:
        return f"Overwriting existing product with this {label}"
    return f"Product with this {label} already exists (id {existing_id})"
