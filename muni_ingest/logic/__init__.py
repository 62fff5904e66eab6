# muni_ingest/logic/__init__.py
"""Pure ingestion logic: reading, header normalization, detection, mapping."""
