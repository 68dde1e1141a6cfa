"""
Object Store Models

Pydantic models for containers, objects, metadata, and properties, plus the
naming rules every backend shares.

Author: Ayodele Oladeji
Date: 2025
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .exceptions import ValidationError


class PublicAccessLevel(str, Enum):
    """Container public access levels."""
    NONE = "none"
    BLOB = "blob"
    CONTAINER = "container"


class ContainerNameValidator:
    """
    Validates container names.

    Rules:
    - 1-63 characters
    - Lowercase letters, numbers, hyphens only
    - Must start and end with letter or number
    - No consecutive hyphens
    """

    PATTERN = re.compile(r'^[a-z0-9]([a-z0-9-]*[a-z0-9])?$')
    MIN_LENGTH = 1
    MAX_LENGTH = 63

    @classmethod
    def validate(cls, name: Any) -> tuple[bool, Optional[str]]:
        """
        Validate container name.

        Args:
            name: Container name to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not isinstance(name, str):
            return False, "Container name must be a string"

        if not name:
            return False, "Container name cannot be empty"

        if len(name) < cls.MIN_LENGTH:
            return False, f"Container name must be at least {cls.MIN_LENGTH} characters"

        if len(name) > cls.MAX_LENGTH:
            return False, f"Container name must be at most {cls.MAX_LENGTH} characters"

        if not cls.PATTERN.match(name):
            return False, "Container name must contain only lowercase letters, numbers, and hyphens, and must start/end with letter or number"

        if '--' in name:
            return False, "Container name cannot contain consecutive hyphens"

        return True, None

    @classmethod
    def validate_raise(cls, name: Any) -> None:
        """
        Validate container name and raise ValidationError if invalid.

        Raises:
            ValidationError: If name is invalid
        """
        is_valid, error = cls.validate(name)
        if not is_valid:
            raise ValidationError(error, details={"container": name})


class ObjectNameValidator:
    """
    Validates object names.

    Rules:
    - 1-1024 characters
    - No control characters
    - Must not end with '.' or '/'
    """

    MAX_LENGTH = 1024
    CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')

    @classmethod
    def validate(cls, name: Any) -> tuple[bool, Optional[str]]:
        if not isinstance(name, str):
            return False, "Object name must be a string"

        if not name:
            return False, "Object name cannot be empty"

        if len(name) > cls.MAX_LENGTH:
            return False, f"Object name must be at most {cls.MAX_LENGTH} characters"

        if cls.CONTROL_CHARS.search(name):
            return False, "Object name cannot contain control characters"

        if name.endswith('.') or name.endswith('/'):
            return False, "Object name cannot end with '.' or '/'"

        return True, None

    @classmethod
    def validate_raise(cls, name: Any) -> None:
        is_valid, error = cls.validate(name)
        if not is_valid:
            raise ValidationError(error, details={"object": name})


class MetadataValidator:
    """
    Validates metadata maps.

    Keys must be identifiers (letters, digits, underscore, not starting with a
    digit) and values must be strings. Keys keep their case.
    """

    KEY_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

    @classmethod
    def validate(cls, metadata: Any) -> tuple[bool, Optional[str]]:
        if not isinstance(metadata, dict):
            return False, "Metadata must be a mapping of string keys to string values"

        for key, value in metadata.items():
            if not isinstance(key, str) or not cls.KEY_PATTERN.match(key):
                return False, f"Invalid metadata key: {key!r}"
            if not isinstance(value, str):
                return False, f"Metadata value for '{key}' must be a string, got {type(value).__name__}"

        return True, None

    @classmethod
    def validate_raise(cls, metadata: Any) -> Dict[str, str]:
        """Validate metadata and return a private copy."""
        is_valid, error = cls.validate(metadata)
        if not is_valid:
            raise ValidationError(error)
        return dict(metadata)


class ContainerProperties(BaseModel):
    """
    Container properties.

    Includes ETag, timestamps, and public access level.
    """

    etag: str = Field(description="Entity tag for the container")
    created_on: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp",
    )
    last_modified: datetime = Field(description="Last modified timestamp")
    public_access: PublicAccessLevel = Field(default=PublicAccessLevel.NONE)


class Container(BaseModel):
    """
    Object store container.

    Represents a container with metadata and properties.
    """

    name: str = Field(description="Container name")
    properties: ContainerProperties
    metadata: Dict[str, str] = Field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert container to dictionary for reporting and persistence."""
        return {
            'name': self.name,
            'properties': {
                'etag': self.properties.etag,
                'created_on': self.properties.created_on.isoformat(),
                'last_modified': self.properties.last_modified.isoformat(),
                'public_access': self.properties.public_access.value,
            },
            'metadata': dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Container':
        props = data['properties']
        return cls(
            name=data['name'],
            properties=ContainerProperties(
                etag=props['etag'],
                created_on=datetime.fromisoformat(props['created_on']),
                last_modified=datetime.fromisoformat(props['last_modified']),
                public_access=PublicAccessLevel(props['public_access']),
            ),
            metadata=dict(data.get('metadata') or {}),
        )


class ObjectEntry(BaseModel):
    """
    A named binary payload inside a container.

    Carries descriptive properties only; content is streamed separately.
    """

    name: str = Field(description="Object name")
    container_name: str = Field(description="Parent container name")
    size: int = Field(ge=0, description="Object size in bytes")
    last_modified: datetime = Field(description="Last modified timestamp")
    etag: Optional[str] = Field(default=None)
    content_type: str = Field(default="application/octet-stream")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'container_name': self.container_name,
            'size': self.size,
            'last_modified': self.last_modified.isoformat(),
            'etag': self.etag,
            'content_type': self.content_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ObjectEntry':
        return cls(
            name=data['name'],
            container_name=data['container_name'],
            size=data['size'],
            last_modified=datetime.fromisoformat(data['last_modified']),
            etag=data.get('etag'),
            content_type=data.get('content_type') or "application/octet-stream",
        )
