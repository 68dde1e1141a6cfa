"""
Logging setup for portablob.

Records may carry object store context (operation, container, object, size,
error kind) attached with ``log_with_context``. The JSON formatter emits
those as top-level fields and the text formatter appends them as
``key=value`` pairs, so a transfer can be followed through the log by
container or object name. Azure credential material is stripped from
messages and context before any handler writes them.
"""

import json
import logging
import logging.handlers
import re
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Dict, Iterator, Optional

REDACTED = "***REDACTED***"

# Walkthrough run (or other caller-defined unit of work) a record belongs to
run_id: ContextVar[Optional[str]] = ContextVar("portablob_run_id", default=None)

# Context keys promoted to first-class fields, in rendering order
STORAGE_FIELDS = ("operation", "container", "object", "size", "error_kind")


class CredentialRedactor(logging.Filter):
    """
    Strip Azure credentials from log records.

    Covers connection-string keys, SAS signatures and Authorization headers
    in the rendered message and in string values of the attached context.
    """

    PATTERNS = [
        (re.compile(r'((?:AccountKey|SharedAccessSignature)=)[^;]+', re.IGNORECASE), r'\1' + REDACTED),
        (re.compile(r'([?&]sig=)[^&;\s]+', re.IGNORECASE), r'\1' + REDACTED),
        (re.compile(r'(Authorization:\s*)(?:Bearer\s+|SharedKey\s+)?\S+', re.IGNORECASE), r'\1' + REDACTED),
    ]

    @classmethod
    def redact(cls, text: str) -> str:
        for pattern, replacement in cls.PATTERNS:
            text = pattern.sub(replacement, text)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        # Render %-style args first so secrets passed as arguments are caught too
        if record.args:
            record.msg = record.getMessage()
            record.args = None
        if isinstance(record.msg, str):
            record.msg = self.redact(record.msg)

        context = getattr(record, "context", None)
        if context:
            record.context = {
                key: self.redact(value) if isinstance(value, str) else value
                for key, value in context.items()
            }
        return True


def _split_context(record: logging.LogRecord):
    """Return (storage fields, remaining context) for a record."""
    context = dict(getattr(record, "context", None) or {})
    fields = {key: context.pop(key) for key in STORAGE_FIELDS if key in context}
    return fields, context


class JSONFormatter(logging.Formatter):
    """One JSON object per line; storage context keys are top-level fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if current := run_id.get():
            entry["run_id"] = current

        fields, extra = _split_context(record)
        entry.update(fields)
        if extra:
            entry["context"] = extra

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Console format with the run id and storage context appended."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)

        fields, _ = _split_context(record)
        pairs = [f"{key}={value}" for key, value in fields.items()]
        if current := run_id.get():
            pairs.insert(0, f"run={current}")

        return f"{line} [{' '.join(pairs)}]" if pairs else line


def setup_logging(
    level: str = "INFO",
    format_type: str = "text",
    log_file: Optional[str] = None,
    rotation_size: int = 10 * 1024 * 1024,
    rotation_count: int = 5,
    module_levels: Optional[Dict[str, str]] = None,
    stream: Optional[IO[str]] = None,
) -> None:
    """
    Configure the root logger for portablob.

    Console output goes to ``stream`` (stderr by default) so command output
    on stdout stays clean. Calling this again replaces the handlers it
    installed earlier.

    Args:
        level: Default log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: "json" or "text"
        log_file: Optional path of a size-rotated log file
        rotation_size: Rotate the log file at this many bytes
        rotation_count: Number of rotated files to keep
        module_levels: Per-logger levels, e.g. {"portablob.client": "DEBUG"}
        stream: Console stream
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter: logging.Formatter = JSONFormatter() if format_type == "json" else TextFormatter()
    redactor = CredentialRedactor()

    handlers: list = [logging.StreamHandler(stream or sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=rotation_size,
            backupCount=rotation_count,
            encoding="utf-8",
        ))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(redactor)
        root_logger.addHandler(handler)

    for module_name, module_level in (module_levels or {}).items():
        logging.getLogger(module_name).setLevel(getattr(logging, module_level.upper()))

    # The Azure SDK logs every HTTP request at INFO
    logging.getLogger("azure").setLevel(logging.WARNING)

    root_logger.debug(
        f"Logging configured: level={level}, format={format_type}, file={log_file or '-'}"
    )


def configure_from(config: Any, stream: Optional[IO[str]] = None) -> None:
    """Apply a LoggingConfig model."""
    setup_logging(
        level=str(getattr(config.level, "value", config.level)),
        format_type=config.format,
        log_file=config.file,
        rotation_size=config.rotation_size,
        rotation_count=config.rotation_count,
        module_levels=config.module_levels,
        stream=stream,
    )


@contextmanager
def bind_run_id(value: str) -> Iterator[None]:
    """Tag every record logged inside the block with ``value``."""
    token = run_id.set(value)
    try:
        yield
    finally:
        run_id.reset(token)


def log_with_context(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """
    Log a message with object store context.

    Keys in STORAGE_FIELDS become first-class fields in both formats;
    anything else is kept under ``context`` in JSON output.
    """
    extra = {"context": context} if context else {}
    logger.log(level, message, extra=extra)
