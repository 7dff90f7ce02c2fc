# service/runner.py
from __future__ import annotations

import importlib
import json
import logging
import os
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from service import logging_utils

# -----------------------------------------------------------------------------
# Config / Environment
# -----------------------------------------------------------------------------
# Local JSONL sink used when logging_utils cannot write
ACTIVITY_LOG_PATH = os.getenv("ACTIVITY_LOG_PATH", "/app/local/activity.log")

# Short module aliases accepted by the CLI
MODULE_ALIASES = {
    "careers_crawl": "modules.careers_crawl.main",
    "crawl": "modules.careers_crawl.main",
}

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
log = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def now_iso() -> str:
    return datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds")


def _maybe_bool(v: Any) -> Any:
    if isinstance(v, str):
        low = v.strip().lower()
        if low in ("true", "t", "yes", "y"):
            return True
        if low in ("false", "f", "no", "n"):
            return False
    return v


def _maybe_number(v: Any) -> Any:
    if isinstance(v, str):
        s = v.strip()
        if s and (s.isdigit() or (s.startswith("-") and s[1:].isdigit())):
            return int(s)
        try:
            return float(s)
        except ValueError:
            pass
    return v


def _normalize_kwargs_types(kwargs: dict[str, object] | None) -> dict[str, object]:
    """
    Normalize module kwargs:

      • For keys ending with "_env":
          - Treat the string value as an ENV VAR NAME (e.g., "CRAWL_PROXY_URLS").
          - Replace with os.getenv(<name>, "") and drop the "_env" suffix
            (proxy_urls_env="CRAWL_PROXY_URLS" -> proxy_urls=<value>).

      • For all other keys:
          - If a string looks like JSON ({...} or [...]), parse it.
          - Else coerce common bool/number string forms.
          - Leave non-strings unchanged.

    This runs right before module.run(**kwargs).
    """
    if not kwargs:
        return {}

    normalized: dict[str, object] = {}
    for k, v in kwargs.items():
        if isinstance(k, str) and k.endswith("_env") and isinstance(v, str):
            normalized[k[: -len("_env")]] = os.getenv(v.strip(), "")
            continue

        if isinstance(v, str):
            s = v.strip()
            # Prefer JSON if it looks like JSON
            if (s.startswith("{") and s.endswith("}")) or (s.startswith("[") and s.endswith("]")):
                try:
                    normalized[k] = json.loads(s)
                    continue
                except ValueError:
                    # fall through to bool/number coercion
                    pass
            nv = _maybe_bool(s)
            nv = _maybe_number(nv)
            normalized[k] = nv
        else:
            normalized[k] = v

    return normalized


def resolve_module_path(module: str) -> str:
    return MODULE_ALIASES.get(module.strip(), module.strip())


def _resolve_callable(module_path: str) -> Callable[..., Any]:
    """Import module and return its `run` callable."""
    mod = importlib.import_module(resolve_module_path(module_path))
    if not hasattr(mod, "run") or not callable(mod.run):
        raise AttributeError(f"Module {module_path!r} does not define a callable `run(**kwargs)`.")
    return mod.run  # type: ignore[no-any-return]


def _emit_activity_jsonl(record: dict[str, Any]) -> None:
    """Write a structured activity record either via logging_utils or to a JSONL file."""
    try:
        logging_utils.write_activity_log(record)
        return
    except (OSError, TypeError, ValueError) as e:
        log.warning("logging_utils.write_activity_log failed: %s", e)
    # Local JSONL fallback
    try:
        os.makedirs(os.path.dirname(ACTIVITY_LOG_PATH), exist_ok=True)
        with open(ACTIVITY_LOG_PATH, "a", encoding="utf-8") as f:
            f.write(json.dumps(logging_utils.redact(record), ensure_ascii=False, default=str) + "\n")
    except OSError as e:
        log.error("Failed to write activity JSONL: %s", e)


@dataclass
class RunResult:
    ok: bool
    message: str
    meta: dict[str, Any] | None = None


def _coerce_result(value: Any) -> RunResult:
    """
    Normalize module return into a RunResult.

    Acceptable shapes:
      - None   -> no output
      - dict   -> meta (a crawl summary, usually)
      - str    -> message
    """
    if value is None:
        return RunResult(ok=True, message="OK")
    if isinstance(value, dict):
        return RunResult(ok=True, message=str(value.get("message") or value.get("stop_reason") or "OK"), meta=value)
    if isinstance(value, str):
        return RunResult(ok=True, message=value)
    raise TypeError("Module return must be one of: None, dict, or str")


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------
def run_module_once(
    module: str,
    kwargs: dict[str, object] | None = None,
    trigger_type: str = "manual",
    job_context: dict[str, object] | None = None,
    timeout_sec: int | None = None,
) -> tuple[dict[str, Any] | None, str]:
    """
    Execute a module's run(**kwargs) once.

    Returns:
        (meta_or_none, run_id)
    Raises:
        Propagates exceptions from module execution (caller/CLI will catch and log).
    """
    run_id = uuid.uuid4().hex
    started_at = now_iso()

    context: dict[str, Any] = {
        "run_id": run_id,
        "module": module,
        "trigger_type": trigger_type,
        "started_at": started_at,
    }
    if job_context:
        context.update({k: v for k, v in job_context.items() if k not in context})

    kw = _normalize_kwargs_types(kwargs)
    run_callable = _resolve_callable(module)

    result: RunResult
    exc: BaseException | None = None

    def _invoke() -> Any:
        return run_callable(**kw)

    t0 = datetime.now()
    try:
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="runner") as pool:
            fut = pool.submit(_invoke)
            value = fut.result(timeout=timeout_sec) if timeout_sec else fut.result()
        result = _coerce_result(value)
    except FutureTimeout:
        exc = TimeoutError(f"Module run timed out after {timeout_sec}s")
        result = RunResult(ok=False, message=str(exc), meta={"timeout_sec": timeout_sec})
    except Exception as e:
        exc = e
        result = RunResult(ok=False, message=str(e), meta={"exception_type": type(e).__name__})
    duration_ms = int((datetime.now() - t0).total_seconds() * 1000)

    record: dict[str, Any] = {
        "ts": now_iso(),
        "run_id": run_id,
        "module": module,
        "trigger_type": trigger_type,
        "ok": result.ok,
        "message": result.message,
        "duration_ms": duration_ms,
        "context": context,
        "kwargs": kw,
        "meta": result.meta or {},
    }
    _emit_activity_jsonl(record)

    # If there was an exception, re-raise so CLI can handle exit code/logging
    if exc:
        raise exc

    return result.meta, run_id
