"""
portablob: vendor-neutral object store client

Container and object lifecycle over pluggable backends (in-memory,
filesystem, Azure Blob Storage) with a closed error taxonomy.
"""

__version__ = "0.1.0"
__author__ = "Ayodele Oladeji"

from .cleanup import ResourceScope
from .client import ClientOptions, ObjectListing, ObjectStoreClient
from .exceptions import (
    AuthError,
    CleanupError,
    ConflictError,
    NotFoundError,
    StorageError,
    TransientError,
    ValidationError,
)
from .models import Container, ContainerProperties, ObjectEntry, PublicAccessLevel

__all__ = [
    "ObjectStoreClient",
    "ClientOptions",
    "ObjectListing",
    "ResourceScope",
    "Container",
    "ContainerProperties",
    "ObjectEntry",
    "PublicAccessLevel",
    "StorageError",
    "ConflictError",
    "NotFoundError",
    "AuthError",
    "TransientError",
    "ValidationError",
    "CleanupError",
    "__version__",
]
