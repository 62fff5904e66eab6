# muni_ingest/services/interfaces.py
"""
Collaborator interfaces of the import service.

The importer only talks to storage through these two protocols, so the
SQLite/local-disk implementations can be swapped for a hosted backend (or a
failing fake in tests) without touching the import logic.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class CollectionStore(Protocol):
    """Named collections of JSON-like records."""

    def insert(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Insert all rows as one operation; return them with generated ids."""
        ...

    def update(self, table: str, record_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """Merge `values` into one record and return the updated record."""
        ...

    def delete_all(self, table: str) -> int:
        """Delete every record of a collection; return the number removed."""
        ...

    def count(self, table: str) -> int:
        ...

    def select(self, table: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Records of a collection, newest first."""
        ...


@runtime_checkable
class BlobStore(Protocol):
    """Durable storage for the original uploaded files."""

    def store(self, data: bytes, original_name: str, prefix: str = "upload") -> str:
        """Persist the bytes under a generated name; return the stored path."""
        ...
