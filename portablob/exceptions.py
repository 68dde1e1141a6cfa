"""
Object Store Exception Hierarchy

Closed error taxonomy surfaced by the object store client. Every backend
failure reaches callers as one of these kinds, never as a raw transport error.

Author: Ayodele Oladeji
Date: 2025
"""

import asyncio
from typing import Any, Dict, List, Optional


class StorageError(Exception):
    """
    Base exception for all object store errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., 'ContainerNotFound')
        details: Additional context (container, object, operation, ...)
    """

    error_code: str = "StorageError"
    kind: str = "storage"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for reporting."""
        return {
            "error": {
                "kind": self.kind,
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


# ========== Conflict ==========

class ConflictError(StorageError):
    """Raised when a resource name collides with an existing resource."""
    error_code = "Conflict"
    kind = "conflict"


class ContainerAlreadyExistsError(ConflictError):
    """Raised when attempting to create a container that already exists."""
    error_code = "ContainerAlreadyExists"

    def __init__(self, container_name: str, message: Optional[str] = None):
        message = message or f"Container '{container_name}' already exists"
        super().__init__(message, details={"container": container_name})


# ========== Not Found ==========

class NotFoundError(StorageError):
    """Raised when a container or object does not exist."""
    error_code = "NotFound"
    kind = "not_found"


class ContainerNotFoundError(NotFoundError):
    """Raised when a container is not found."""
    error_code = "ContainerNotFound"

    def __init__(self, container_name: str, message: Optional[str] = None):
        message = message or f"Container '{container_name}' not found"
        super().__init__(message, details={"container": container_name})


class ObjectNotFoundError(NotFoundError):
    """Raised when an object is not found in its container."""
    error_code = "ObjectNotFound"

    def __init__(
        self,
        container_name: str,
        object_name: str,
        message: Optional[str] = None
    ):
        message = message or f"Object '{object_name}' not found in container '{container_name}'"
        super().__init__(
            message,
            details={"container": container_name, "object": object_name},
        )


# ========== Auth ==========

class AuthError(StorageError):
    """Raised when the backend rejects the supplied credentials."""
    error_code = "AuthenticationFailed"
    kind = "auth"


# ========== Transient ==========

class TransientError(StorageError):
    """Raised on network or service faults. Callers may retry from the start."""
    error_code = "ServiceUnavailable"
    kind = "transient"


class OperationTimeoutError(TransientError):
    """Raised when an operation exceeds its timeout."""
    error_code = "OperationTimeout"

    def __init__(self, operation: str, timeout_seconds: float):
        message = f"Operation '{operation}' timed out after {timeout_seconds}s"
        super().__init__(
            message,
            details={"operation": operation, "timeout_seconds": timeout_seconds},
        )


# ========== Validation ==========

class ValidationError(StorageError):
    """Raised when a name or argument is malformed."""
    error_code = "InvalidInput"
    kind = "validation"


# ========== Cleanup ==========

class CleanupError(StorageError):
    """
    Raised when one or more resource releases failed.

    Already-released resources (not found) never end up here.
    """
    error_code = "CleanupFailed"
    kind = "cleanup"

    def __init__(self, failures: List["ReleaseFailure"]):
        self.failures = failures
        names = ", ".join(f.resource for f in failures)
        super().__init__(
            f"Failed to release {len(failures)} resource(s): {names}",
            details={
                "failures": [
                    {"resource": f.resource, "error": f.error_type, "message": str(f.error)}
                    for f in failures
                ]
            },
        )


class ReleaseFailure:
    """A single failed release recorded by a resource scope."""

    def __init__(self, resource: str, error: BaseException):
        self.resource = resource
        self.error = error

    @property
    def error_type(self) -> str:
        if isinstance(self.error, StorageError):
            return self.error.kind
        return type(self.error).__name__

    def __repr__(self) -> str:
        return f"ReleaseFailure(resource={self.resource!r}, error={self.error!r})"


# ========== Helpers ==========

def is_transient_error(error: BaseException) -> bool:
    """
    Determine if an error is transient and can be retried.

    Args:
        error: Exception to check

    Returns:
        True if error is transient, False otherwise
    """
    if isinstance(error, TransientError):
        return True
    if isinstance(error, StorageError):
        return False
    return isinstance(error, (ConnectionError, asyncio.TimeoutError, TimeoutError))


def error_kind(error: BaseException) -> str:
    """Return the taxonomy kind of an error ('unexpected' for foreign errors)."""
    if isinstance(error, StorageError):
        return error.kind
    return "unexpected"
