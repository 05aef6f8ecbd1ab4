"""
Row normalizer for supplier spreadsheets.

Turns one raw spreadsheet row plus a column mapping into a
NormalizedProductRecord, or into row-level errors. Never raises.
"""

from dataclasses import dataclass, field
from typing import Any, Optional
import structlog

from models.import_session import RowIssue
from models.product import CleaningRules, ColumnMapping, NormalizedProductRecord
from parsers import cleaning_rules as rules

logger = structlog.get_logger(__name__)


# Missing any of these blocks the record
HARD_ERROR_FIELDS = ("brand", "product_name", "wholesale_price")


@dataclass
class NormalizedRow:
    """Outcome of normalizing one row."""
    row_number: int
    record: Optional[NormalizedProductRecord] = None
    errors: list[RowIssue] = field(default_factory=list)
    warnings: list[RowIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.record is not None


class DataNormalizer:
    """
    Applies the cleaning rules to mapped columns and validates the result.

    Brand, product name and wholesale price are hard requirements. A
    malformed EAN is only a warning: the row imports without one.
    """

    def __init__(self, cleaning_rules: Optional[CleaningRules] = None):
        self.rules = cleaning_rules or CleaningRules()

    def normalize_row(
        self,
        raw_row: dict[str, Any],
        mapping: ColumnMapping,
        row_number: int,
        supplier_id: Optional[str] = None
    ) -> NormalizedRow:
        """
        Normalize a single spreadsheet row.

        Args:
            raw_row: Column name -> raw cell value
            mapping: Canonical field -> column name
            row_number: 1-based row number used in error reports
            supplier_id: Supplier the record belongs to

        Returns:
            NormalizedRow with record=None when any hard validation fails
        """
        result = NormalizedRow(row_number=row_number)

        try:
            record_fields = self._extract(raw_row, mapping, result)

            for name in HARD_ERROR_FIELDS:
                if record_fields.get(name) in (None, ""):
                    result.errors.append(RowIssue(
                        row=row_number,
                        field=name,
                        message=_HARD_ERROR_MESSAGES[name],
                        data=_safe_row(raw_row)
                    ))

            if result.errors:
                return result

            result.record = NormalizedProductRecord(
                supplier_id=supplier_id,
                **record_fields
            )
            return result

        except Exception as e:
            logger.warning(
                "row_normalization_failed",
                row=row_number,
                error=str(e),
                error_type=type(e).__name__
            )
            result.record = None
            result.errors.append(RowIssue(
                row=row_number,
                field="general",
                message=f"Unexpected error during normalization: {e}",
                data=_safe_row(raw_row)
            ))
            return result

    def _extract(
        self,
        raw_row: dict[str, Any],
        mapping: ColumnMapping,
        result: NormalizedRow
    ) -> dict[str, Any]:
        """Pull every mapped cell through its cleaning rule."""

        def cell(name: str) -> Any:
            column = getattr(mapping, name)
            return raw_row.get(column) if column else None

        fields: dict[str, Any] = {
            "brand": self._text(cell("brand")),
            "product_name": self._text(cell("product_name")),
            "wholesale_price": rules.parse_price(cell("wholesale_price")),
            "currency": rules.normalize_currency(cell("currency")),
            "supplier_name": self._text(cell("supplier_name")),
            "availability": rules.parse_availability(cell("availability")),
        }

        if mapping.variant_size:
            raw_size = cell("variant_size")
            fields["variant_size"] = (
                rules.normalize_size(raw_size)
                if self.rules.normalize_sizes
                else (self._text(raw_size) or None)
            )

        if mapping.pack_size and self.rules.parse_multipacks:
            fields["pack_size"] = rules.parse_pack_size(cell("pack_size"))

        if mapping.last_purchase_price:
            fields["last_purchase_price"] = rules.parse_price(cell("last_purchase_price"))

        if mapping.notes:
            fields["notes"] = self._text(cell("notes")) or None

        if mapping.ean:
            raw_ean = rules.clean_string(cell("ean"))
            ean = rules.clean_ean(raw_ean)
            if raw_ean and not rules.is_valid_ean(ean):
                result.warnings.append(RowIssue(
                    row=result.row_number,
                    field="ean",
                    message="EAN format appears invalid (expected 8, 12, 13 or 14 digits)",
                    data={"ean": raw_ean}
                ))
                ean = None
            fields["ean"] = ean

        return fields

    def _text(self, value: Any) -> str:
        return rules.clean_string(
            value,
            trim=self.rules.trim_whitespace,
            case=self.rules.normalize_case,
            remove_special_chars=self.rules.remove_special_chars
        )


_HARD_ERROR_MESSAGES = {
    "brand": "Brand is required",
    "product_name": "Product name is required",
    "wholesale_price": "Wholesale price is required and must be a valid number",
}


def _safe_row(raw_row: dict[str, Any]) -> dict[str, Any]:
    """Row copy that is safe to store as JSON."""
    if not isinstance(raw_row, dict):
        return {}
    return {
        str(key): (None if value is None else str(value))
        for key, value in raw_row.items()
    }
