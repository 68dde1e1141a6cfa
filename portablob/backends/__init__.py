"""
Object Store Backends

Pluggable implementations of the StorageBackend capability set.
"""

from .base import StorageBackend
from .factory import create_backend
from .filesystem import FileSystemBackend
from .memory import InMemoryBackend

__all__ = [
    "StorageBackend",
    "InMemoryBackend",
    "FileSystemBackend",
    "create_backend",
]
