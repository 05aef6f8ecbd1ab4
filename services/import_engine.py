"""
Batch import engine.

Runs normalizer + duplicate resolver + catalog writes over all rows of
an import in fixed-size batches. Rows inside a batch run concurrently;
batches run one after another with a pause in between.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional
import structlog

from config import settings
from models.import_session import (
    DuplicateDetectionConfig,
    DuplicateEntry,
    DuplicateStrategy,
    ImportProgress,
    ImportStatus,
    RowIssue,
)
from models.product import CleaningRules, ColumnMapping
from parsers.data_normalizer import DataNormalizer, NormalizedRow
from services.catalog_service import CatalogService
from services.duplicate_resolver import DuplicateResolver, Resolution, RowOutcome
from services.import_session_service import ImportSessionService
from services.snapshot_service import SnapshotService

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[ImportProgress], None]


class RowStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RowResult:
    """What happened to one row."""
    row_number: int
    status: RowStatus
    errors: list[RowIssue] = field(default_factory=list)
    warnings: list[RowIssue] = field(default_factory=list)
    duplicate: Optional[DuplicateEntry] = None
    is_duplicate: bool = False
    product_id: Optional[str] = None


@dataclass
class ImportOptions:
    """
    Knobs for one engine run.

    `strategy` is authoritative; `duplicate_config` supplies which
    natural keys are checked.
    """
    batch_size: int = field(default_factory=lambda: settings.import_batch_size)
    strategy: DuplicateStrategy = DuplicateStrategy.SKIP
    duplicate_config: DuplicateDetectionConfig = field(default_factory=DuplicateDetectionConfig)
    on_progress: Optional[ProgressCallback] = None
    import_session_id: Optional[str] = None
    supplier_id: Optional[str] = None
    batch_delay_ms: int = field(default_factory=lambda: settings.import_batch_delay_ms)

    @property
    def effective_duplicate_config(self) -> DuplicateDetectionConfig:
        return self.duplicate_config.model_copy(update={"strategy": self.strategy})


class BatchImportEngine:
    """
    Imports raw rows into the normalized catalog.

    Collaborators are injected so tests can swap them; by default each
    engine builds its own.
    """

    def __init__(
        self,
        catalog: Optional[CatalogService] = None,
        sessions: Optional[ImportSessionService] = None,
        snapshots: Optional[SnapshotService] = None,
        cleaning_rules: Optional[CleaningRules] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.catalog = catalog or CatalogService()
        self.sessions = sessions or ImportSessionService()
        self.snapshots = snapshots or SnapshotService(catalog=self.catalog)
        self.normalizer = DataNormalizer(cleaning_rules)
        self.resolver = DuplicateResolver(catalog=self.catalog, cleaning_rules=cleaning_rules)
        self._sleep = sleep

    def run(
        self,
        rows: list[dict[str, Any]],
        mapping: ColumnMapping,
        options: Optional[ImportOptions] = None
    ) -> ImportProgress:
        """
        Import every row.

        Args:
            rows: Raw spreadsheet rows (header -> value)
            mapping: Canonical field -> column name
            options: Batch size, strategy, session id, progress callback

        Returns:
            Final ImportProgress (is_complete=True)

        Raises:
            DatabaseError: Engine-level store failure. The session (if
                any) is marked failed before the error propagates.
        """
        options = options or ImportOptions()
        session_id = options.import_session_id
        batch_size = max(1, options.batch_size)
        config = options.effective_duplicate_config

        progress = ImportProgress(
            total_rows=len(rows),
            total_batches=(len(rows) + batch_size - 1) // batch_size,
        )

        logger.info(
            "import_started",
            import_session_id=session_id,
            rows=len(rows),
            batch_size=batch_size,
            strategy=config.strategy.value
        )

        if session_id:
            self._take_snapshot(session_id, options.supplier_id)

        try:
            for batch_index, start in enumerate(range(0, len(rows), batch_size)):
                batch = rows[start:start + batch_size]
                results = self._run_batch(batch, start, mapping, config, options)
                self._apply_results(progress, results)
                progress.current_batch = batch_index + 1

                logger.info(
                    "import_batch_completed",
                    import_session_id=session_id,
                    batch=progress.current_batch,
                    total_batches=progress.total_batches,
                    processed=progress.processed_rows,
                    successful=progress.successful_rows,
                    failed=progress.failed_rows,
                    skipped=progress.skipped_rows
                )

                if session_id:
                    self.sessions.record_progress(session_id, progress)
                if options.on_progress:
                    options.on_progress(progress.model_copy(deep=True))

                if progress.current_batch < progress.total_batches and options.batch_delay_ms:
                    self._sleep(options.batch_delay_ms / 1000)

        except Exception as e:
            logger.error(
                "import_failed",
                import_session_id=session_id,
                batch=progress.current_batch + 1,
                error=str(e),
                error_type=type(e).__name__
            )
            if session_id:
                self._finalize_quietly(session_id, ImportStatus.FAILED, progress, str(e))
            raise

        progress.is_complete = True

        if session_id:
            self.sessions.finalize(session_id, ImportStatus.COMPLETED, progress)
        if options.on_progress:
            options.on_progress(progress.model_copy(deep=True))

        logger.info(
            "import_completed",
            import_session_id=session_id,
            successful=progress.successful_rows,
            failed=progress.failed_rows,
            skipped=progress.skipped_rows,
            duplicates=progress.duplicate_rows
        )

        return progress

    # ===================
    # BATCH PROCESSING
    # ===================

    def _run_batch(
        self,
        batch: list[dict[str, Any]],
        start: int,
        mapping: ColumnMapping,
        config: DuplicateDetectionConfig,
        options: ImportOptions
    ) -> list[RowResult]:
        """Normalize, bulk pre-check, then every row concurrently."""
        normalized_rows = [
            self.normalizer.normalize_row(
                raw_row, mapping, start + offset + 1, supplier_id=options.supplier_id
            )
            for offset, raw_row in enumerate(batch)
        ]

        # Invalid rows never write, so they hold no natural key in the batch
        resolutions = self.resolver.resolve_batch(
            batch,
            mapping,
            config,
            options.supplier_id,
            eligible=[normalized.is_valid for normalized in normalized_rows]
        )

        def process(args: tuple[NormalizedRow, Resolution]) -> RowResult:
            normalized, resolution = args
            return self._process_row(normalized, resolution, options)

        with ThreadPoolExecutor(max_workers=max(1, len(batch))) as pool:
            return list(pool.map(process, zip(normalized_rows, resolutions)))

    def _process_row(
        self,
        normalized: NormalizedRow,
        resolution: Resolution,
        options: ImportOptions
    ) -> RowResult:
        """Apply the duplicate outcome, write. Never raises."""
        row_number = normalized.row_number
        try:
            if not normalized.is_valid:
                return RowResult(
                    row_number=row_number,
                    status=RowStatus.FAILED,
                    errors=normalized.errors,
                    warnings=normalized.warnings,
                )

            result = RowResult(
                row_number=row_number,
                status=RowStatus.SUCCESS,
                warnings=normalized.warnings,
                is_duplicate=resolution.is_duplicate,
            )
            issue_field = resolution.matched_on or "duplicate"

            if resolution.outcome == RowOutcome.SKIP:
                result.status = RowStatus.SKIPPED
                result.errors.append(RowIssue(
                    row=row_number, field=issue_field, message=resolution.message or "Skipped duplicate"
                ))
            elif resolution.outcome == RowOutcome.FLAG:
                result.status = RowStatus.FAILED
                result.duplicate = DuplicateEntry(
                    row=row_number,
                    field=issue_field,
                    message=resolution.message or "Duplicate product",
                    data=normalized.record.to_row(),
                    existing_id=resolution.existing_id,
                    matched_on=resolution.matched_on,
                )
            elif resolution.outcome == RowOutcome.ERROR:
                result.status = RowStatus.FAILED
                result.errors.append(RowIssue(
                    row=row_number, field=issue_field, message=resolution.message or "Duplicate product"
                ))
            elif resolution.outcome == RowOutcome.UPDATE and resolution.existing_id:
                stored = self.catalog.update(
                    resolution.existing_id, normalized.record, options.import_session_id
                )
                result.product_id = stored.get("id")
            else:
                stored = self.catalog.insert(normalized.record, options.import_session_id)
                result.product_id = stored.get("id")

            return result

        except Exception as e:
            logger.warning(
                "import_row_failed",
                row=row_number,
                error=str(e),
                error_type=type(e).__name__
            )
            return RowResult(
                row_number=row_number,
                status=RowStatus.FAILED,
                errors=[RowIssue(row=row_number, field="general", message=f"Failed to save product: {e}")],
            )

    @staticmethod
    def _apply_results(progress: ImportProgress, results: list[RowResult]) -> None:
        """Fold one batch into the cumulative counts (row order)."""
        for result in results:
            progress.processed_rows += 1
            if result.status == RowStatus.SUCCESS:
                progress.successful_rows += 1
            elif result.status == RowStatus.SKIPPED:
                progress.skipped_rows += 1
            else:
                progress.failed_rows += 1
            if result.is_duplicate:
                progress.duplicate_rows += 1
            progress.errors.extend(result.errors)
            progress.warnings.extend(result.warnings)
            if result.duplicate:
                progress.duplicates.append(result.duplicate)

    # ===================
    # SESSION HOOKS
    # ===================

    def _take_snapshot(self, session_id: str, supplier_id: Optional[str]) -> None:
        """Snapshot before the first write. Failure degrades rollback only."""
        try:
            self.snapshots.snapshot(session_id, supplier_id=supplier_id)
        except Exception as e:
            logger.warning(
                "import_snapshot_failed",
                import_session_id=session_id,
                error=str(e)
            )

    def _finalize_quietly(
        self,
        session_id: str,
        status: ImportStatus,
        progress: ImportProgress,
        error_message: str
    ) -> None:
        """Best-effort status write while another error is propagating."""
        try:
            self.sessions.finalize(session_id, status, progress, error_message=error_message)
        except Exception as e:
            logger.error("import_session_finalize_failed", import_session_id=session_id, error=str(e))
