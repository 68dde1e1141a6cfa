"""
Configuration management for portablob.

Handles loading, validation, and access to configuration settings.
"""

import os
import re
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from enum import Enum

import yaml
from pydantic import BaseModel, Field, field_validator, ValidationError, ConfigDict

logger = logging.getLogger(__name__)

ENV_PREFIX = "PORTABLOB_"

REDACTED = "***REDACTED***"

SIZE_UNITS = {"B": 1, "KB": 1024, "MB": 1024 ** 2, "GB": 1024 ** 3}


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class BackendType(str, Enum):
    """Supported object store backend types."""
    MEMORY = "memory"
    FILESYSTEM = "filesystem"
    AZURE = "azure"


class BackendConfig(BaseModel):
    """Object store backend configuration."""
    type: BackendType = BackendType.MEMORY
    root: str = Field(
        default="./data/objects",
        description="Root directory for the filesystem backend"
    )
    connection_string: Optional[str] = Field(
        default=None,
        description="Azure Storage connection string"
    )
    account_url: Optional[str] = Field(
        default=None,
        description="Azure Storage account URL (used with credential)"
    )
    credential: Optional[str] = Field(
        default=None,
        description="Account key or SAS token for account_url"
    )


class RetryConfig(BaseModel):
    """Retry policy for idempotent operations."""
    max_attempts: int = Field(default=3, ge=1)
    initial_backoff: float = Field(default=0.5, ge=0.0)
    max_backoff: float = Field(default=10.0, ge=0.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)


class ClientConfig(BaseModel):
    """ObjectStoreClient behaviour."""
    timeout_seconds: Optional[float] = Field(
        default=30.0,
        gt=0.0,
        description="Per-operation timeout for non-streaming calls (None disables)"
    )
    chunk_size: int = Field(
        default=4 * 1024 * 1024,
        gt=0,
        description="Read size used when streaming an upload source"
    )
    list_page_size: int = Field(default=1000, gt=0)
    retry: RetryConfig = Field(default_factory=RetryConfig)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: str = "text"
    file: Optional[str] = None
    rotation_size: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Rotate the log file at this size; accepts bytes or strings like '10MB'"
    )
    rotation_count: int = Field(default=5, ge=0)
    module_levels: Optional[Dict[str, str]] = Field(
        default=None,
        description="Per-module log levels, e.g., {'portablob.client': 'DEBUG'}"
    )

    @field_validator("rotation_size", mode="before")
    @classmethod
    def parse_rotation_size(cls, v: Any) -> Any:
        """Convert sizes like '10MB' or '1.5 GB' to bytes."""
        if not isinstance(v, str):
            return v
        match = re.fullmatch(r"(\d+(?:\.\d+)?)\s*([KMG]?B)?", v.strip().upper())
        if not match:
            raise ValueError(f"Invalid size: {v!r}")
        number, unit = match.groups()
        return int(float(number) * SIZE_UNITS[unit or "B"])


class PortablobConfig(BaseModel):
    """Main portablob configuration schema."""

    backend: BackendConfig = Field(default_factory=BackendConfig)

    client: ClientConfig = Field(default_factory=ClientConfig)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(use_enum_values=True)


class ConfigManager:
    """
    Manages portablob configuration loading and validation.

    Configuration precedence (highest to lowest):
    1. CLI arguments
    2. Environment variables (PORTABLOB_*)
    3. Configuration file (YAML/JSON)
    4. Defaults
    """

    def __init__(self):
        self._config: Optional[PortablobConfig] = None
        self._config_file: Optional[Path] = None

    def load(
        self,
        config_file: Optional[str] = None,
        cli_overrides: Optional[Dict[str, Any]] = None
    ) -> PortablobConfig:
        """
        Load and validate configuration from multiple sources.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            cli_overrides: Dictionary of CLI argument overrides

        Returns:
            Validated PortablobConfig instance

        Raises:
            ValidationError: If configuration is invalid
            FileNotFoundError: If specified config file doesn't exist
        """
        logger.info("Loading portablob configuration")

        config_dict: Dict[str, Any] = {}

        if config_file:
            config_dict = self._load_from_file(config_file)
            self._config_file = Path(config_file)
            logger.info(f"Loaded configuration from file: {config_file}")

        env_config = self._load_from_env()
        config_dict = self._merge_configs(config_dict, env_config)
        if env_config:
            logger.info(f"Applied {len(env_config)} environment variable overrides")

        if cli_overrides:
            config_dict = self._merge_configs(config_dict, cli_overrides)
            logger.info(f"Applied {len(cli_overrides)} CLI argument overrides")

        try:
            self._config = PortablobConfig(**config_dict)
            logger.info("Configuration validated successfully")
            self._log_configuration()
            return self._config
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file."""
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(path, 'r') as f:
            if path.suffix in ['.yaml', '.yml']:
                return yaml.safe_load(f) or {}
            elif path.suffix == '.json':
                return json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {path.suffix}")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        # Backend configuration
        if backend_type := os.getenv(f"{ENV_PREFIX}BACKEND"):
            config.setdefault("backend", {})["type"] = backend_type.lower()
        if root := os.getenv(f"{ENV_PREFIX}ROOT"):
            config.setdefault("backend", {})["root"] = root
        if conn_str := os.getenv(f"{ENV_PREFIX}CONNECTION_STRING"):
            config.setdefault("backend", {})["connection_string"] = conn_str
        if account_url := os.getenv(f"{ENV_PREFIX}ACCOUNT_URL"):
            config.setdefault("backend", {})["account_url"] = account_url
        if credential := os.getenv(f"{ENV_PREFIX}CREDENTIAL"):
            config.setdefault("backend", {})["credential"] = credential

        # Client configuration
        if timeout := os.getenv(f"{ENV_PREFIX}TIMEOUT"):
            config.setdefault("client", {})["timeout_seconds"] = float(timeout)
        if attempts := os.getenv(f"{ENV_PREFIX}RETRY_ATTEMPTS"):
            config.setdefault("client", {}).setdefault("retry", {})["max_attempts"] = int(attempts)

        # Logging configuration
        if log_level := os.getenv(f"{ENV_PREFIX}LOG_LEVEL"):
            config.setdefault("logging", {})["level"] = log_level.upper()
        if log_file := os.getenv(f"{ENV_PREFIX}LOG_FILE"):
            config.setdefault("logging", {})["file"] = log_file

        return config

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _log_configuration(self) -> None:
        """Log the loaded configuration (with secrets redacted)."""
        if not self._config:
            return

        logger.info(f"Active configuration: {json.dumps(redact_config(self._config), indent=2)}")

    def get_config(self) -> PortablobConfig:
        """
        Get the loaded configuration.

        Raises:
            RuntimeError: If configuration hasn't been loaded
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config

    def reload(self) -> PortablobConfig:
        """Reload configuration from the same sources."""
        config_file = str(self._config_file) if self._config_file else None
        return self.load(config_file=config_file)


def redact_config(config: PortablobConfig) -> Dict[str, Any]:
    """Dump configuration with credential material replaced."""
    config_dict = config.model_dump()
    backend = config_dict.get("backend", {})
    for secret in ("connection_string", "credential"):
        if backend.get(secret):
            backend[secret] = REDACTED
    return config_dict
