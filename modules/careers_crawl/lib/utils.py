from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from typing import Any

_WS_RE = re.compile(r"\s+")


def truthy(v: Any) -> bool:
    """
    Normalize common truthy inputs from env/kwargs.
    Accepts bools or strings like: '1', 'true', 'yes', 'on'.
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v != 0
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "on", "y", "t"}


def now_iso() -> str:
    """
    UTC ISO-8601 timestamp with 'Z' suffix.
    """
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def collapse_ws(s: Any) -> str:
    """Squash runs of whitespace (incl. NBSP/newlines) into single spaces."""
    if s is None:
        return ""
    return _WS_RE.sub(" ", str(s).replace("\xa0", " ")).strip()


def stable_id(*parts: Any, prefix: str = "job") -> str:
    """
    Deterministic fallback id for listings that carry no identifier of their own.
    Same (title, company, location, ...) always hashes to the same id.
    """
    raw = "|".join(collapse_ws(p).lower() for p in parts)
    digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]
    return f"{prefix}_{digest}"
