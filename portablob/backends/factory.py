"""
Backend Factory

Creates the configured object store backend.

Author: Ayodele Oladeji
Date: 2025
"""

from ..core.config_manager import BackendConfig, BackendType
from ..exceptions import ValidationError
from .base import StorageBackend
from .filesystem import FileSystemBackend
from .memory import InMemoryBackend


def create_backend(config: BackendConfig) -> StorageBackend:
    """
    Factory function to create a backend from configuration.

    Args:
        config: Backend configuration

    Returns:
        Backend instance

    Raises:
        ValidationError: If the backend type is unknown or misconfigured

    Example:
        ```python
        backend = create_backend(BackendConfig(type="filesystem", root="./data"))
        client = ObjectStoreClient(backend)
        ```
    """
    backend_type = BackendType(config.type)

    if backend_type == BackendType.MEMORY:
        return InMemoryBackend()

    elif backend_type == BackendType.FILESYSTEM:
        return FileSystemBackend(config.root)

    elif backend_type == BackendType.AZURE:
        # Imported here so the SDK is only loaded when used
        from .azure import AzureBlobBackend

        return AzureBlobBackend(
            connection_string=config.connection_string,
            account_url=config.account_url,
            credential=config.credential,
        )

    raise ValidationError(
        f"Unknown backend type: {config.type}. "
        f"Supported types: {[t.value for t in BackendType]}"
    )
