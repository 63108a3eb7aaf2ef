"""
Storage backends for the cluster registry.
"""

from .base import StorageBackend
from .file_backend import FileStorageBackend

__all__ = [
    "StorageBackend",
    "FileStorageBackend",
]
