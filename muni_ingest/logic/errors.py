# muni_ingest/logic/errors.py
"""
Ingestion Errors

Fatal failures of the import pipeline. Each error names the stage that
failed so the caller can report it ("read", "detect", "store").

Non-fatal problems (ingestion log writes, clearing existing records,
single batch inserts) are never raised; they are logged and counted.
"""


class IngestionError(Exception):
    """Base class for failures that abort an import."""

    stage = "ingest"

    def __init__(self, message: str, stage: str = None):
        super().__init__(message)
        if stage:
            self.stage = stage


class UnreadableFile(IngestionError):
    """The uploaded bytes are not a readable spreadsheet."""

    stage = "read"


class UndetectedType(IngestionError):
    """Neither the import context nor the headers identify a record type."""

    stage = "detect"


class StorageError(IngestionError):
    """
    A storage operation failed.

    Fatal only when the original file can't be stored; collection write
    failures are caught by the importer and become warnings.
    """

    stage = "store"
