"""Root logging configuration with secret redaction."""

from __future__ import annotations

import logging
import re
import sys
from typing import Any, Optional, TextIO

REDACTED = "***REDACTED***"

_SENSITIVE_KEYS = (
    r"x-api-key|api[_-]?key|api[_-]?secret|secret|authorization"
    r"|signature|password|passwd|(?:access_|refresh_)?token"
)
# Matches ``key: value``, ``'key': 'value'`` and ``key=value`` forms.
_SENSITIVE_PATTERN = re.compile(
    r"(?P<prefix>[\"']?\b(?:" + _SENSITIVE_KEYS + r")\b[\"']?\s*[:=]\s*[\"']?(?:bearer\s+)?)"
    r"(?P<value>[^\"'&\s,;}\]]+)",
    re.IGNORECASE,
)

_HANDLER_MARKER = "_verisoul_root_handler"
_DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def redact(text: str) -> str:
    return _SENSITIVE_PATTERN.sub(lambda match: match.group("prefix") + REDACTED, text)


def _redact_record(record: logging.LogRecord) -> logging.LogRecord:
    if getattr(record, "_redacted", False):
        return record
    try:
        message = record.getMessage()
    except (TypeError, ValueError):
        # Left for the handler to report as a formatting error.
        return record
    cleaned = redact(message)
    if cleaned != message:
        record.msg = cleaned
        record.args = ()
    record._redacted = True  # type: ignore[attr-defined]
    return record


class SecretRedactingFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        _redact_record(record)
        return True


def _install_record_factory() -> None:
    current = logging.getLogRecordFactory()
    if getattr(current, "_redacting", False):
        return

    def factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
        return _redact_record(current(*args, **kwargs))

    factory._redacting = True  # type: ignore[attr-defined]
    logging.setLogRecordFactory(factory)


def _debug_to_logging_level(debug_level: int) -> int:
    if debug_level <= 0:
        return logging.WARNING
    if debug_level == 1:
        return logging.INFO
    return logging.DEBUG


def configure_logging(debug: int = 1, stream_target: Optional[TextIO] = None) -> logging.Logger:
    """Configure the root logger and redact credentials from every record.

    Redaction happens when a record is created, so handlers attached later to
    non-propagating loggers never see the secrets either.
    """

    _install_record_factory()
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream_target or sys.stderr)
    handler.setFormatter(logging.Formatter(_DEFAULT_FORMAT))
    handler.addFilter(SecretRedactingFilter())
    setattr(handler, _HANDLER_MARKER, True)
    root.addHandler(handler)

    level = _debug_to_logging_level(debug)
    root.setLevel(level)
    handler.setLevel(level)
    # httpx logs every request line at INFO.
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug >= 2 else logging.WARNING)
    return root


__all__ = ["REDACTED", "SecretRedactingFilter", "configure_logging", "redact"]
