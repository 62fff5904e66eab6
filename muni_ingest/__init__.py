# muni_ingest/__init__.py
"""
Municipal Spreadsheet Ingestion Backend

Loads department spreadsheets into the municipal collection store:
- First-sheet workbook reading (xlsx/xls/csv)
- Hebrew/English header normalization to canonical field names
- Record type detection from the uploading screen or the headers
- Per-type row mapping with numeric coercion and category classification
- Batched replace/append loading with an ingestion audit log
"""

__version__ = "1.0.0"
__author__ = "Municipal Data Team"
