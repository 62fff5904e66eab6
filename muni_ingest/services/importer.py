import logging
from dataclasses import dataclass
from itertools import islice
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from ..logging_utils import log_import_event, timed
from ..logic import header_normalizer
from ..logic.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_OWNER_ID,
    FUZZY_MATCH_THRESHOLD,
    INGESTION_LOG_TABLE,
    PREVIEW_SAMPLE_ROWS,
)
from ..logic.errors import StorageError, UndetectedType
from ..logic.row_mapper import is_skippable, map_row
from ..logic.schema_detector import DetectionResult, detect
from ..logic.workbook_reader import RawRecord, SheetData, read_workbook
from ..models.records import (
    BatchResult,
    HeaderMappingInfo,
    ImportContext,
    ImportMode,
    ImportState,
    ImportSummary,
    IngestionLogEntry,
    IngestionStatus,
    PreviewResult,
    TargetRecordType,
)
from .interfaces import BlobStore, CollectionStore

logger = logging.getLogger(__name__)

OnComplete = Callable[[ImportSummary], None]


@dataclass
class PreparedSheet:
    """A read and classified sheet, before anything is stored."""
    sheet: SheetData
    normalized_headers: List[str]
    detection: DetectionResult


def _coerce_context(context: Union[ImportContext, str, None]) -> ImportContext:
    if isinstance(context, ImportContext):
        return context
    try:
        return ImportContext(str(context or ImportContext.GLOBAL.value))
    except ValueError:
        logger.warning(f"Unknown import context '{context}', treating as global")
        return ImportContext.GLOBAL


def _chunks(records: Iterator[RawRecord], size: int) -> Iterator[List[RawRecord]]:
    while True:
        batch = list(islice(records, size))
        if not batch:
            return
        yield batch


class ImporterService:
    """
    Service that loads one uploaded spreadsheet into its collection.

    Pipeline per upload: read workbook -> normalize headers -> detect record
    type -> map rows -> batch insert. Reading and detection are pre-flight
    checks: when they fail nothing is stored or logged.

    Load sequence (one call, strictly sequential):
        idle -> file_stored -> logged -> [cleared] -> inserting -> finalized

    Only a failure to store the original file aborts the load. A failed log
    write, a failed clear or a failed batch is recorded as a warning and the
    load continues with the next step.
    """

    def __init__(
        self,
        collection_store: CollectionStore,
        blob_store: BlobStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
        fuzzy_threshold: float = FUZZY_MATCH_THRESHOLD,
        default_owner_id: str = DEFAULT_OWNER_ID,
        log_table: str = INGESTION_LOG_TABLE,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.collection_store = collection_store
        self.blob_store = blob_store
        self.batch_size = batch_size
        self.fuzzy_threshold = fuzzy_threshold
        self.default_owner_id = default_owner_id
        self.log_table = log_table

    # ========================================================================
    # PRE-FLIGHT
    # ========================================================================

    def _prepare(self, data: bytes, file_name: str, context: ImportContext) -> PreparedSheet:
        """Read and classify the sheet. Raises UnreadableFile."""
        sheet = read_workbook(data, file_name)
        normalized_headers = list(
            header_normalizer.normalize_record(dict.fromkeys(sheet.headers), self.fuzzy_threshold).keys()
        )
        detection = detect(context, normalized_headers)
        logger.info(
            f"'{file_name}': {sheet.row_count} rows, detected {detection.record_type.value} "
            f"({detection.reason})"
        )
        return PreparedSheet(sheet=sheet, normalized_headers=normalized_headers, detection=detection)

    def preview(
        self,
        data: bytes,
        file_name: str,
        context: Union[ImportContext, str, None] = ImportContext.GLOBAL
    ) -> PreviewResult:
        """
        Inspect an upload without storing anything.

        Returns the header mappings, the detected type, the first rows as they
        will be normalized, and whether records of that type already exist
        (the caller must then choose replace or append).

        Raises:
            UnreadableFile: the file is not a readable spreadsheet
        """
        context = _coerce_context(context)
        prepared = self._prepare(data, file_name, context)
        sheet = prepared.sheet
        record_type = prepared.detection.record_type

        sample_rows = [
            header_normalizer.normalize_record(raw, self.fuzzy_threshold)
            for raw in islice(sheet.records, PREVIEW_SAMPLE_ROWS)
        ]
        mappings = [
            HeaderMappingInfo(
                original=m.original, canonical=m.canonical, match_type=m.match_type, score=m.score
            )
            for m in header_normalizer.build_header_mappings(sheet.headers, self.fuzzy_threshold)
        ]

        existing = 0
        if prepared.detection.detected:
            try:
                existing = self.collection_store.count(record_type.value)
            except Exception as e:
                logger.warning(f"Could not count existing {record_type.value} records: {e}")

        return PreviewResult(
            file_name=file_name,
            sheet_name=sheet.sheet_name,
            context=context,
            headers=sheet.headers,
            mappings=mappings,
            detected_type=record_type,
            detection_reason=prepared.detection.reason,
            row_count=sheet.row_count,
            sample_rows=sample_rows,
            existing_records=existing,
            requires_mode_confirmation=existing > 0,
        )

    # ========================================================================
    # LOAD
    # ========================================================================

    def _store_file(self, data: bytes, file_name: str, record_type: TargetRecordType) -> str:
        try:
            return self.blob_store.store(data, file_name, prefix=record_type.value)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Could not store upload '{file_name}': {e}") from e

    def _write_log(self, entry: IngestionLogEntry, warnings: List[str]) -> Optional[str]:
        payload = entry.model_dump(exclude={"id", "created_at", "updated_at"})
        try:
            created = self.collection_store.insert(self.log_table, [payload])
            return created[0]["id"] if created else None
        except Exception as e:
            message = f"Ingestion log entry could not be written: {e}"
            logger.warning(message)
            warnings.append(message)
            return None

    def _clear(self, record_type: TargetRecordType, warnings: List[str]) -> Optional[int]:
        try:
            deleted = self.collection_store.delete_all(record_type.value)
            logger.info(f"Replace mode: removed {deleted} existing {record_type.value} records")
            return deleted
        except Exception as e:
            message = f"Existing {record_type.value} records could not be removed, continuing: {e}"
            logger.warning(message)
            warnings.append(message)
            return None

    def _map_batch(
        self,
        batch: List[RawRecord],
        record_type: TargetRecordType,
        headers: List[str],
        owner_id: str
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Map a batch of raw rows; returns (rows to insert, skipped count)."""
        rows = []
        skipped = 0
        for raw in batch:
            normalized = header_normalizer.normalize_record(raw, self.fuzzy_threshold)
            mapped = map_row(record_type, normalized, headers)
            reason = is_skippable(record_type, normalized, mapped)
            if reason:
                skipped += 1
                logger.debug(f"Skipping {record_type.value} row: {reason}")
                continue
            mapped["user_id"] = owner_id
            rows.append(mapped)
        return rows, skipped

    def _insert_batches(
        self,
        prepared: PreparedSheet,
        owner_id: str,
        warnings: List[str]
    ) -> List[BatchResult]:
        record_type = prepared.detection.record_type
        total_batches = -(-prepared.sheet.row_count // self.batch_size)
        results = []

        for index, batch in enumerate(_chunks(prepared.sheet.records, self.batch_size), start=1):
            rows, skipped = self._map_batch(batch, record_type, prepared.normalized_headers, owner_id)
            result = BatchResult(index=index, row_count=len(batch), skipped=skipped)

            if rows:
                try:
                    inserted = self.collection_store.insert(record_type.value, rows)
                    result.inserted = len(inserted)
                except Exception as e:
                    result.errors = len(rows)
                    result.error = str(e)
                    message = f"Batch {index}/{total_batches} failed ({len(rows)} rows): {e}"
                    logger.warning(message)
                    warnings.append(message)

            logger.info(
                f"Batch {index}/{total_batches}: inserted {result.inserted}, "
                f"errors {result.errors}, skipped {result.skipped}"
            )
            results.append(result)

        return results

    def _finalize_log(self, log_id: Optional[str], summary: ImportSummary) -> None:
        if log_id is None:
            return
        values = {
            "inserted_rows": summary.inserted_rows,
            "error_rows": summary.error_rows,
            "skipped_rows": summary.skipped_rows,
            "batches": [b.model_dump() for b in summary.batches],
            "status": summary.status,
        }
        try:
            self.collection_store.update(self.log_table, log_id, values)
        except Exception as e:
            message = f"Ingestion log entry {log_id} could not be finalized: {e}"
            logger.warning(message)
            summary.warnings.append(message)

    def _audit(self, summary: ImportSummary, owner: str) -> None:
        """Append the audit trail line; an unwritable trail only adds a warning."""
        event = "IMPORT_COMPLETED" if summary.error_rows == 0 else "IMPORT_COMPLETED_WITH_ERRORS"
        try:
            log_import_event(event, summary.file_name, {
                "record_type": summary.record_type,
                "mode": summary.mode,
                "status": IngestionStatus(summary.status).value,
                "rows": summary.row_count,
                "inserted": summary.inserted_rows,
                "errors": summary.error_rows,
                "skipped": summary.skipped_rows,
                "log_id": summary.log_id,
                "user_id": owner,
            })
        except OSError as e:
            message = f"Audit trail line could not be written: {e}"
            logger.warning(message)
            summary.warnings.append(message)

    @staticmethod
    def _build_message(summary: ImportSummary) -> str:
        message = (
            f"Imported {summary.inserted_rows} of {summary.row_count} rows "
            f"into {summary.record_type} ({summary.mode})"
        )
        details = []
        if summary.skipped_rows:
            details.append(f"{summary.skipped_rows} skipped")
        if summary.error_rows:
            details.append(f"{summary.error_rows} failed")
        if details:
            message += f"; {', '.join(details)}"
        return message

    @timed
    def run_import(
        self,
        data: bytes,
        file_name: str,
        context: Union[ImportContext, str, None],
        mode: Union[ImportMode, str],
        owner_id: Optional[str] = None,
        on_complete: Optional[OnComplete] = None
    ) -> ImportSummary:
        """
        Load an uploaded spreadsheet into the collection of its detected type.

        Args:
            data: Raw file bytes
            file_name: Original file name
            context: Screen the upload came from (forces the record type)
            mode: "replace" deletes existing records of the type first,
                "append" adds to them
            owner_id: Owner identifier attached to every inserted record
            on_complete: Called with the summary once the load is finalized,
                whether or not some batches failed

        Returns:
            ImportSummary with per-batch counts and the final status

        Raises:
            UnreadableFile: the file could not be parsed (nothing stored)
            UndetectedType: no record type matched (nothing stored)
            StorageError: the original file could not be stored (nothing logged)
        """
        context = _coerce_context(context)
        mode = ImportMode(mode)
        owner = owner_id or self.default_owner_id

        prepared = self._prepare(data, file_name, context)
        if not prepared.detection.detected:
            raise UndetectedType(prepared.detection.reason)
        record_type = prepared.detection.record_type

        summary = ImportSummary(
            file_name=file_name,
            context=context,
            record_type=record_type,
            detection_reason=prepared.detection.reason,
            mode=mode,
            row_count=prepared.sheet.row_count,
            states=[ImportState.IDLE],
        )

        summary.stored_path = self._store_file(data, file_name, record_type)
        summary.states.append(ImportState.FILE_STORED)

        entry = IngestionLogEntry(
            file_name=file_name,
            file_path=summary.stored_path,
            context=context.value,
            detected_table=record_type.value,
            row_count=summary.row_count,
            status=IngestionStatus.PROCESSING,
            user_id=owner,
        )
        summary.log_id = self._write_log(entry, summary.warnings)
        summary.states.append(ImportState.LOGGED)

        if mode == ImportMode.REPLACE:
            summary.cleared_rows = self._clear(record_type, summary.warnings)
            summary.states.append(ImportState.CLEARED)

        summary.states.append(ImportState.INSERTING)
        summary.batches = self._insert_batches(prepared, owner, summary.warnings)
        summary.inserted_rows = sum(b.inserted for b in summary.batches)
        summary.error_rows = sum(b.errors for b in summary.batches)
        summary.skipped_rows = sum(b.skipped for b in summary.batches)
        summary.status = (
            IngestionStatus.COMPLETED if summary.error_rows == 0 else IngestionStatus.COMPLETED_WITH_ERRORS
        )

        self._finalize_log(summary.log_id, summary)
        summary.states.append(ImportState.FINALIZED)
        summary.message = self._build_message(summary)
        logger.info(summary.message)

        self._audit(summary, owner)

        if on_complete is not None:
            on_complete(summary)

        return summary
