# muni_ingest/logic/constants.py
"""
Centralized Constants Module

All ingestion thresholds, limits and defaults live here instead of being
scattered as magic numbers through the pipeline.
"""

from datetime import date

# ==============================================================================
# BATCH LOADING
# ==============================================================================

# Rows per bulk insert call
DEFAULT_BATCH_SIZE = 100

# Rows returned in an upload preview
PREVIEW_SAMPLE_ROWS = 10

# Owner recorded when the caller does not supply one (demo account)
DEFAULT_OWNER_ID = "33333333-3333-3333-3333-333333333333"

# Collection that receives one audit row per upload attempt
INGESTION_LOG_TABLE = "ingestion_logs"


# ==============================================================================
# HEADER MATCHING
# ==============================================================================

# Minimum rapidfuzz ratio (0-100) for a near-miss header to be accepted
FUZZY_MATCH_THRESHOLD = 85

# Prefix for columns whose header cell is blank
EMPTY_HEADER_PREFIX = "__empty_"


# ==============================================================================
# DATE PARSING
# ==============================================================================

# Excel serial day 0 (Lotus 1-2-3 leap year bug included)
EXCEL_SERIAL_DATE_BASE = date(1899, 12, 30)

# Serials below this are treated as plain numbers, not dates (2009-07-06)
MIN_EXCEL_SERIAL_DATE = 40000

# Largest serial accepted as a date (2173-10-14)
MAX_EXCEL_SERIAL_DATE = 100000

# Dates before this year are treated as data errors
EARLIEST_REASONABLE_YEAR = 1900

# Two digit years above this pivot belong to the 1900s
TWO_DIGIT_YEAR_PIVOT = 50


# ==============================================================================
# FILE STORAGE
# ==============================================================================

# Accepted spreadsheet extensions
SUPPORTED_EXTENSIONS = {".xlsx", ".xlsm", ".xls", ".csv"}

# Longest stem kept from a sanitized original filename
MAX_STORED_NAME_LENGTH = 60
