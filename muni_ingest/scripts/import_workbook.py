#!/usr/bin/env python3
"""
Workbook Importer

Imports one spreadsheet into the local collection store, the same way the
upload endpoint does. Useful for back-filling files exported from the
municipal finance system.

Usage:
    python -m muni_ingest.scripts.import_workbook FILE --context tabarim --mode replace
    python -m muni_ingest.scripts.import_workbook FILE --preview

Exit codes:
    0  imported without row errors (or preview succeeded)
    1  imported, but some batches failed
    2  file unreadable, type undetected or storage failed
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from ..database_manager import SQLiteCollectionStore
from ..logging_utils import configure_from
from ..logic.blob_store import LocalBlobStore
from ..logic.config_manager import get_config
from ..logic.errors import IngestionError
from ..models.records import ImportContext, ImportMode, IngestionStatus, PreviewResult
from ..services.importer import ImporterService

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_FAILED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import a municipal spreadsheet")
    parser.add_argument("file", type=Path, help="Spreadsheet to import (.xlsx, .xls, .csv)")
    parser.add_argument(
        "--context",
        default=ImportContext.GLOBAL.value,
        choices=[c.value for c in ImportContext],
        help="Screen the file belongs to (forces the record type)"
    )
    parser.add_argument(
        "--mode",
        choices=[m.value for m in ImportMode],
        help="replace existing records of the type, or append to them"
    )
    parser.add_argument("--owner", default=None, help="Owner id attached to imported records")
    parser.add_argument("--preview", action="store_true", help="Only show what would be imported")
    parser.add_argument("--db", default=None, help="SQLite database path (overrides config)")
    parser.add_argument("--blob-dir", default=None, help="Directory for stored uploads (overrides config)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def print_preview(preview: PreviewResult) -> None:
    print(f"Sheet:    {preview.sheet_name} ({preview.row_count} rows)")
    print(f"Detected: {preview.detected_type} ({preview.detection_reason})")
    print("\nColumns:")
    for mapping in preview.mappings:
        target = mapping.canonical if mapping.match_type != "none" else "-"
        print(f"  {mapping.original:<40} -> {target} [{mapping.match_type}]")
    if preview.requires_mode_confirmation:
        print(f"\n{preview.existing_records} {preview.detected_type} records already exist; "
              f"choose --mode replace or --mode append")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = get_config()
    configure_from(config, verbose=args.verbose)

    if not args.preview and not args.mode:
        parser.error("--mode is required unless --preview is given")

    try:
        data = args.file.read_bytes()
    except OSError as e:
        print(f"✗ Cannot read {args.file}: {e}")
        return EXIT_FAILED

    importer = ImporterService(
        collection_store=SQLiteCollectionStore(args.db or config["database_path"]),
        blob_store=LocalBlobStore(Path(args.blob_dir or config["blob_dir"])),
        batch_size=int(config["batch_size"]),
        fuzzy_threshold=float(config["fuzzy_threshold"]),
        default_owner_id=config["default_owner_id"],
    )

    try:
        if args.preview:
            print_preview(importer.preview(data, args.file.name, args.context))
            return EXIT_OK
        summary = importer.run_import(data, args.file.name, args.context, args.mode, owner_id=args.owner)
    except IngestionError as e:
        print(f"✗ Import failed at stage '{e.stage}': {e}")
        return EXIT_FAILED

    print(f"✓ {summary.message}")
    for warning in summary.warnings:
        print(f"  ! {warning}")

    return EXIT_OK if summary.status == IngestionStatus.COMPLETED else EXIT_PARTIAL


if __name__ == "__main__":
    sys.exit(main())
