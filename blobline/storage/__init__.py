"""
Storage Module - Blob Persistence

Stores uploaded blobs as plain files in one directory.
"""

from .blob_store import BlobStore, StoreStats, DEFAULT_STORAGE_DIR

__all__ = ['BlobStore', 'StoreStats', 'DEFAULT_STORAGE_DIR']
