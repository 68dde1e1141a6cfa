"""
portablob core: configuration, logging, and resilience helpers.
"""

from .config_manager import ConfigManager, PortablobConfig
from .logging_config import configure_from, setup_logging
from .resilience import RetryPolicy, call_with_retry, with_timeout

__all__ = [
    "ConfigManager",
    "PortablobConfig",
    "setup_logging",
    "configure_from",
    "RetryPolicy",
    "call_with_retry",
    "with_timeout",
]
