# muni_ingest/services/__init__.py
"""
Service Layer for the municipal ingestion service

Contains:
- ImporterService: preview and batch loading of uploaded spreadsheets
- CollectionStore / BlobStore: storage interfaces the importer depends on
"""

from .importer import ImporterService
from .interfaces import BlobStore, CollectionStore

__all__ = [
    "ImporterService",
    "BlobStore",
    "CollectionStore",
]
