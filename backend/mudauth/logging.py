"""structlog configuration for the auth service.

LOG_FORMAT picks the renderer: "json" for log aggregation, "console" (the
default) for humans. LOG_LEVEL is a stdlib level name, INFO when unset.
Event keys that can carry credentials are masked before any renderer runs.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from typing import Any

LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

_LOG_FORMATS = ("json", "console")
_REDACTED_KEYS = frozenset({"token", "nonce", "signature"})
_REDACTED = "[redacted]"


def _serialize_enums(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Log AuthErrorKind and friends by value."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def _redact_secrets(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    for key in _REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = _REDACTED
    return event_dict


def _is_test() -> bool:
    return "pytest" in sys.modules


def _log_format() -> str:
    value = os.environ.get("LOG_FORMAT", "").lower() or "console"
    if value not in _LOG_FORMATS:
        msg = f"Invalid LOG_FORMAT={value!r}. Must be 'json' or 'console'."
        raise ValueError(msg)
    return value


def _log_level() -> int:
    name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelNamesMapping().get(name)
    if level is None:
        msg = f"Invalid LOG_LEVEL={name!r}."
        raise ValueError(msg)
    return level


def _formatter(log_format: str, *, colors: bool) -> logging.Formatter:
    renderer = (
        structlog.processors.JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer(colors=colors)
    )
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )


def setup_logging(log_dir: Path | str | None = None, level: int | None = None) -> Path | None:
    """Route structlog through the root logger to stdout and, optionally, a log file.

    The file is named after the current UTC time inside log_dir. Its path is
    returned, or None when only stdout is used. File output is skipped under
    pytest.
    """
    log_format = _log_format()
    if level is None:
        level = _log_level()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _serialize_enums,
            _redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(_formatter(log_format, colors=sys.stdout.isatty()))
    handlers: list[logging.Handler] = [stdout_handler]

    log_path = None
    if log_dir is not None and not _is_test():
        log_path = Path(log_dir) / f"{datetime.now(tz=UTC).strftime(LOG_FILE_TIMESTAMP_FORMAT)}.log"
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(_formatter(log_format, colors=False))
        handlers.append(file_handler)

    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)
    root.setLevel(level)
    for handler in handlers:
        root.addHandler(handler)
    return log_path
