"""
Blob Storage

Design Decision: Storage Layout
================================

Options Considered:
1. One flat directory, one file per blob
   - Inspectable by hand, matches what the operator uploaded

2. Hash-named files with an index
   - Safe against odd names, but needs a second lookup

Decision: Flat directory
- server_files/<name> holds the decoded payload bytes
- The name is joined to the directory as-is (no canonicalization)
- Uploads overwrite

Storage Layout:
```
server_files/
├── hello.txt
└── notes.txt
```
"""

import logging
from pathlib import Path
from typing import List, Optional
from dataclasses import dataclass
import aiofiles
import aiofiles.os

from ..errors import StoreReadError, StoreWriteError

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_DIR = Path('server_files')


def _reason(error: Exception) -> str:
    # ValueError (e.g. an embedded null byte in the name) has no strerror
    return getattr(error, 'strerror', None) or str(error)


@dataclass
class StoreStats:
    """Statistics about stored blobs."""
    blob_count: int
    total_bytes: int


class BlobStore:
    """
    Filesystem-backed mapping from blob name to bytes.

    Provides:
    - Blob write (overwrite) and read by name
    - Listing and statistics
    """

    def __init__(self, root: Path = DEFAULT_STORAGE_DIR):
        """
        Initialize blob storage.

        Args:
            root: Directory holding one file per blob
        """
        self.root = Path(root)

    def ensure_root(self) -> bool:
        """
        Create the storage directory if needed.

        Returns:
            True if the directory was created by this call
        """
        if self.root.is_dir():
            return False
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created storage directory {self.root}")
        return True

    def _blob_path(self, name: str) -> Path:
        """Get filesystem path for a blob."""
        return self.root / name

    async def write(self, name: str, data: bytes):
        """
        Store a blob, replacing any previous value.

        Raises:
            StoreWriteError: the file could not be written
        """
        path = self._blob_path(name)
        try:
            async with aiofiles.open(path, 'wb') as f:
                await f.write(data)
        except (OSError, ValueError) as e:
            raise StoreWriteError(name, _reason(e)) from e

        logger.debug(f"Stored {name} ({len(data)} bytes)")

    async def read(self, name: str) -> Optional[bytes]:
        """
        Retrieve a blob by name.

        Returns:
            Blob data, or None if nothing exists under that name

        Raises:
            StoreReadError: the name exists but could not be read
        """
        path = self._blob_path(name)

        if not await aiofiles.os.path.exists(path):
            return None

        try:
            async with aiofiles.open(path, 'rb') as f:
                return await f.read()
        except (OSError, ValueError) as e:
            raise StoreReadError(name, _reason(e)) from e

    async def exists(self, name: str) -> bool:
        """Check if a blob exists in storage."""
        return await aiofiles.os.path.isfile(self._blob_path(name))

    def list_blobs(self) -> List[str]:
        """Names of all stored blobs, sorted."""
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_file())

    def get_stats(self) -> StoreStats:
        """Get storage statistics."""
        names = self.list_blobs()
        total = sum(self._blob_path(n).stat().st_size for n in names)
        return StoreStats(blob_count=len(names), total_bytes=total)
