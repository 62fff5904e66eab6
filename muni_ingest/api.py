import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from . import __version__
from .database_manager import get_store
from .logging_utils import log_error
from .logic.blob_store import LocalBlobStore
from .logic.config_manager import get_config
from .logic.constants import INGESTION_LOG_TABLE
from .logic.errors import IngestionError, StorageError
from .models.records import ImportContext, ImportMode, ImportSummary, PreviewResult, TargetRecordType
from .services.importer import ImporterService
from .services.interfaces import CollectionStore

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


# ==============================================================================
# APPLICATION LIFECYCLE
# ==============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    config = get_config()
    logger.info(
        f"Starting municipal ingestion API (db={config['database_path']}, "
        f"blobs={config['blob_dir']}, batch_size={config['batch_size']})"
    )
    yield
    logger.info("Shutting down municipal ingestion API...")


app = FastAPI(
    title="Municipal Ingestion API",
    description="Spreadsheet upload, preview and batch import for municipal department data",
    version=__version__,
    lifespan=lifespan
)

API_VERSION = "v1"
api_v1 = APIRouter(prefix=f"/api/{API_VERSION}", tags=["v1"])

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config()["cors_origins"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==============================================================================
# STANDARDIZED API ERROR RESPONSES
# ==============================================================================
# All errors follow this schema for consistent frontend parsing:
# {
#   "error": "ERROR_CODE",           # Machine-readable error code
#   "message": "Human readable...",   # User-friendly message
#   "details": {...}                  # Optional additional context
# }

class APIError(BaseModel):
    """Standardized API error response schema."""
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None


def api_error(status_code: int, error_code: str, message: str, details: Dict = None) -> HTTPException:
    """
    Create a standardized API error response.

    Usage:
        raise api_error(422, "UNREADABLE_FILE", "File is not a spreadsheet", {"stage": "read"})
    """
    detail = {"error": error_code, "message": message}
    if details:
        detail["details"] = details
    return HTTPException(status_code=status_code, detail=detail)


# Fatal ingestion stage -> (HTTP status, error code)
STAGE_ERRORS = {
    "read": (422, "UNREADABLE_FILE"),
    "detect": (422, "UNDETECTED_TYPE"),
    "store": (500, "STORAGE_ERROR"),
}


def ingestion_error_response(error: IngestionError) -> HTTPException:
    status_code, code = STAGE_ERRORS.get(error.stage, (500, "INGESTION_ERROR"))
    return api_error(status_code, code, str(error), {"stage": error.stage})


# ==============================================================================
# DEPENDENCIES
# ==============================================================================
# Overridable through app.dependency_overrides (tests inject temporary stores).

def get_collection_store() -> CollectionStore:
    return get_store(get_config()["database_path"])


_importer: Optional[ImporterService] = None


def get_importer(store: CollectionStore = Depends(get_collection_store)) -> ImporterService:
    """Importer wired to the configured collection store and blob directory."""
    global _importer
    if _importer is None or _importer.collection_store is not store:
        config = get_config()
        _importer = ImporterService(
            collection_store=store,
            blob_store=LocalBlobStore(Path(config["blob_dir"])),
            batch_size=int(config["batch_size"]),
            fuzzy_threshold=float(config["fuzzy_threshold"]),
            default_owner_id=config["default_owner_id"],
        )
    return _importer


async def _read_upload(file: UploadFile) -> bytes:
    if not file.filename:
        raise api_error(400, "MISSING_FILE_NAME", "Uploaded file has no name")
    data = await file.read()
    if not data:
        raise api_error(400, "EMPTY_FILE", f"Uploaded file '{file.filename}' is empty")
    return data


# ==============================================================================
# ENDPOINTS
# ==============================================================================

@app.get("/")
def read_root():
    return {"status": "Backend Online", "version": __version__}


@api_v1.post("/preview", response_model=PreviewResult)
async def preview_upload(
    file: UploadFile = File(...),
    context: ImportContext = Form(ImportContext.GLOBAL),
    importer: ImporterService = Depends(get_importer),
):
    """
    Inspect an upload before importing it.

    Returns the header mappings, the detected record type, sample rows and
    whether existing records require the caller to choose replace or append.
    Nothing is stored.
    """
    data = await _read_upload(file)
    try:
        return await run_in_threadpool(importer.preview, data, file.filename, context)
    except IngestionError as e:
        raise ingestion_error_response(e)


@api_v1.post("/upload", response_model=ImportSummary)
async def upload_file(
    file: UploadFile = File(...),
    context: ImportContext = Form(ImportContext.GLOBAL),
    mode: ImportMode = Form(...),
    owner_id: Optional[str] = Form(None),
    importer: ImporterService = Depends(get_importer),
):
    """
    Import an uploaded spreadsheet.

    `mode` is required: "replace" removes the existing records of the detected
    type first, "append" adds to them. Partial batch failures still return 200
    with status "completed_with_errors".
    """
    data = await _read_upload(file)
    try:
        return await run_in_threadpool(importer.run_import, data, file.filename, context, mode, owner_id)
    except IngestionError as e:
        logger.warning(f"[Upload] '{file.filename}' rejected at stage '{e.stage}': {e}")
        raise ingestion_error_response(e)
    except Exception as e:
        message = log_error(e, f"importing '{file.filename}'", __name__)
        raise api_error(500, "IMPORT_FAILED", message)


@api_v1.get("/ingestion-logs")
def list_ingestion_logs(
    limit: int = Query(50, ge=1, le=500),
    store: CollectionStore = Depends(get_collection_store),
) -> List[Dict[str, Any]]:
    """Most recent ingestion log entries, newest first."""
    try:
        return store.select(INGESTION_LOG_TABLE, limit=limit)
    except StorageError as e:
        raise ingestion_error_response(e)


@api_v1.get("/records/{record_type}")
def list_records(
    record_type: TargetRecordType,
    limit: int = Query(100, ge=1, le=1000),
    store: CollectionStore = Depends(get_collection_store),
) -> Dict[str, Any]:
    """Imported records of one type, newest first, with the total count."""
    if record_type == TargetRecordType.UNDETECTED:
        raise api_error(404, "UNKNOWN_RECORD_TYPE", "No records are stored for 'undetected'")
    try:
        return {
            "record_type": record_type.value,
            "total": store.count(record_type.value),
            "records": store.select(record_type.value, limit=limit),
        }
    except StorageError as e:
        raise ingestion_error_response(e)


app.include_router(api_v1)


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=int(get_config()["server_port"]))
