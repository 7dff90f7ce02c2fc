from __future__ import annotations

import logging
import re
from typing import Any

# Structured records go to service.logging_utils when the service package is
# importable (normal deployment); otherwise they fall back to stdlib logging.
_logging_backend = None
try:
    from service import logging_utils as _svc_logging  # type: ignore

    _logging_backend = _svc_logging
except ImportError:
    _logging_backend = None

# Keys whose values never reach a log file
_REDACT_KEYS = {
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "authorization",
    "auth",
    "bearer",
    "cookie",
    "cookies",
    "set-cookie",
    "proxy",
    "proxy_url",
    "proxy_urls",
}

# user:pass@ inside any URL-looking string
_CREDS_RE = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)[^/@\s:]+:[^/@\s]+@", re.IGNORECASE)


def _scrub(value: Any) -> Any:
    if isinstance(value, dict):
        return _redact_record(value)
    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]
    if isinstance(value, str) and "@" in value:
        return _CREDS_RE.sub(r"\g<scheme>***@", value)
    return value


def _redact_record(record: dict[str, Any]) -> dict[str, Any]:
    """Copy of record with secret-like keys masked and URL credentials stripped (recursive)."""
    out: dict[str, Any] = {}
    for k, v in record.items():
        lk = str(k).lower()
        if lk in _REDACT_KEYS or lk.endswith("_secret") or lk.endswith("_password"):
            out[k] = "***REDACTED***"
        else:
            out[k] = _scrub(v)
    return out


def activity(record: dict[str, Any]) -> None:
    """
    Write an activity record to the project's logging utility if available.
    Falls back to stdlib logging as structured info.
    """
    payload = _redact_record(record)
    if _logging_backend and hasattr(_logging_backend, "write_activity_log"):
        try:
            _logging_backend.write_activity_log(payload)  # type: ignore[attr-defined]
            return
        except (OSError, TypeError, ValueError):
            # Fall through to std logging
            pass
    logging.getLogger("careers_crawl.activity").info(payload)


def error(record: dict[str, Any]) -> None:
    """
    Write an error record to the project's logging utility if available.
    Falls back to stdlib logging as structured error.
    """
    payload = _redact_record(record)
    if _logging_backend and hasattr(_logging_backend, "write_error_log"):
        try:
            _logging_backend.write_error_log(payload)  # type: ignore[attr-defined]
            return
        except (OSError, TypeError, ValueError):
            pass
    logging.getLogger("careers_crawl.error").error(payload)
