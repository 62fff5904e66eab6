# muni_ingest/logic/blob_store.py
"""
Local file storage for uploaded spreadsheets.

Every upload is kept as the original bytes under a generated name:

    uploads/<prefix>_<YYYYmmdd_HHMMSS>_<random>[_<ascii stem>]<ext>

The original file name is only used for a sanitized, ASCII-only stem and the
extension; Hebrew or otherwise non-ASCII names collapse to no stem at all.
"""

import logging
import re
import unicodedata
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from .constants import MAX_STORED_NAME_LENGTH, SUPPORTED_EXTENSIONS
from .errors import StorageError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_REPEATED_SEPARATORS = re.compile(r"([_.-])\1+")


def sanitize_filename(name: Optional[str], max_length: int = MAX_STORED_NAME_LENGTH) -> str:
    """
    Reduce a file name (or stem) to ASCII letters, digits, dot, dash and
    underscore.

    Examples:
    - "Budget 2025 (final).xlsx" -> "Budget_2025_final_.xlsx"
    - "תקציב.xlsx" -> ".xlsx"
    - "../../etc/passwd" -> "passwd"
    """
    if not name:
        return ""
    # Path components are never kept
    name = re.split(r"[\\/]", str(name))[-1]
    ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    safe = _UNSAFE_CHARS.sub("_", ascii_name)
    safe = _REPEATED_SEPARATORS.sub(r"\1", safe)
    safe = safe.strip("_")
    if safe.startswith(".") and safe.count(".") > 1:
        safe = safe.lstrip(".")
    return safe[:max_length]


def _extension(original_name: str) -> str:
    ext = Path(original_name or "").suffix.lower()
    return ext if ext in SUPPORTED_EXTENSIONS else ".bin"


def generate_stored_name(original_name: str, prefix: str = "upload") -> str:
    """Collision-resistant, ASCII-safe name for a stored upload."""
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    token = uuid.uuid4().hex[:12]
    safe_prefix = sanitize_filename(prefix) or "upload"
    stem = sanitize_filename(Path(original_name or "").stem)

    name = f"{safe_prefix}_{stamp}_{token}"
    if stem:
        name = f"{name}_{stem}"
    return f"{name[:MAX_STORED_NAME_LENGTH]}{_extension(original_name)}"


class LocalBlobStore:
    """
    BlobStore backed by a local directory.

    Args:
        base_dir: Root directory; files go to <base_dir>/<folder>/
        folder: Sub-folder used in the returned relative path
    """

    def __init__(self, base_dir: Union[str, Path], folder: str = "uploads"):
        self.base_dir = Path(base_dir)
        self.folder = folder

    def store(self, data: bytes, original_name: str, prefix: str = "upload") -> str:
        """
        Write the bytes and return the stored path relative to base_dir.

        Raises:
            StorageError: the directory or file could not be written
        """
        relative = Path(self.folder) / generate_stored_name(original_name, prefix)
        target = self.base_dir / relative
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "xb") as f:
                f.write(data)
        except OSError as e:
            raise StorageError(f"Could not store upload '{original_name}': {e}") from e

        logger.info(f"Stored upload '{original_name}' as {relative.as_posix()} ({len(data)} bytes)")
        return relative.as_posix()

    def read(self, stored_path: str) -> bytes:
        """Bytes of a previously stored upload."""
        target = self.base_dir / stored_path
        try:
            return target.read_bytes()
        except OSError as e:
            raise StorageError(f"Stored upload not found: {stored_path}") from e
