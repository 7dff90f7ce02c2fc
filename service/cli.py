# service/cli.py
"""
User-facing command-line entrypoints.

Subcommands
-----------
crawl [--keyword K] [--location L] [--start-url U ...] [--results N] ...
    - Runs one careers crawl via runner.run_module_once(...)
    - With --config, runs every crawl listed in the input file, in order
    - Prints the run summary (emitted vs requested, pages visited)

run MODULE [--kwargs k=v ...]
    - Executes any module's run(**kwargs) ad-hoc via runner.run_module_once(...)

list-crawls
    - Loads the input file via config_schema.load_config() and prints its crawls

validate-config
    - Loads/validates the input file and returns nonzero on error
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from modules.careers_crawl.lib.config import InvalidConfiguration
from service import config_schema as _config_schema
from service import logging_utils as L
from service import runner as _runner

LOG = logging.getLogger("service.cli")

CRAWL_MODULE = "modules.careers_crawl.main"


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _parse_kv_pairs(pairs: Iterable[str]) -> dict[str, Any]:
    """
    Parse key=value strings into a dict.
    - Values that look like JSON (true/false/null/number/object/array) are parsed.
    - Otherwise keep as raw strings.
    """
    out: dict[str, Any] = {}
    for raw in pairs:
        if "=" not in raw:
            raise argparse.ArgumentTypeError(f"--kwargs item must be key=value (got {raw!r})")
        k, v = raw.split("=", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            raise argparse.ArgumentTypeError(f"Invalid key in --kwargs item {raw!r}")
        try:
            out[k] = json.loads(v)
        except ValueError:
            out[k] = v
    return out


def _print_table(rows: Iterable[tuple[str, str]], headers: tuple[str, str] = ("ID", "DETAILS")) -> None:
    """Very simple two-column table printer."""
    rows = list(rows)
    w0 = max(len(headers[0]), *(len(r[0]) for r in rows)) if rows else len(headers[0])
    w1 = max(len(headers[1]), *(len(r[1]) for r in rows)) if rows else len(headers[1])
    sep = f"+-{'-' * w0}-+-{'-' * w1}-+"
    print(sep)
    print(f"| {headers[0].ljust(w0)} | {headers[1].ljust(w1)} |")
    print(sep)
    for c0, c1 in rows:
        print(f"| {c0.ljust(w0)} | {c1.ljust(w1)} |")
    print(sep)


def _now_iso():
    return datetime.now().astimezone().isoformat()


def _crawl_kwargs(args: argparse.Namespace) -> dict[str, Any]:
    """Only the flags the user actually set; defaults live in CrawlSettings."""
    mapping = {
        "keyword": args.keyword,
        "location": args.location,
        "date_filter": args.date_filter,
        "start_urls": args.start_url or None,
        "results_wanted": args.results,
        "max_pages": args.max_pages,
        "max_retries": args.max_retries,
        "request_delay": args.request_delay,
        "max_concurrency": args.concurrency,
        "proxy_urls": args.proxy or None,
        "sqlite_path": args.sqlite_path,
        "dataset_path": args.dataset,
    }
    kwargs = {k: v for k, v in mapping.items() if v is not None}
    if args.no_details:
        kwargs["collect_details"] = False
    return kwargs


def _print_summary(summary: dict[str, Any] | None, *, as_json: bool) -> None:
    summary = summary or {}
    if as_json:
        print(json.dumps(summary, indent=2, sort_keys=True))
        return
    wanted = summary.get("results_wanted")
    print(f"Jobs collected: {summary.get('emitted', 0)}/{wanted if wanted is not None else 'unlimited'}")
    print(f"Pages visited:  {summary.get('pages_visited', 0)}/{summary.get('max_pages')}")
    print(f"Unique ids:     {summary.get('unique_ids', 0)}")
    print(f"Stop reason:    {summary.get('stop_reason') or '-'}")


# ------------------------------ Subcommands ----------------------------------
def cmd_crawl(args: argparse.Namespace) -> int:
    start_time = time.monotonic()
    if args.config:
        try:
            cfg = _config_schema.load_config(args.config)
            _config_schema.validate(cfg)
        except _config_schema.ConfigError as e:
            print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
            return 2
        batches = [(c["id"], {k: v for k, v in c.items() if k != "id"}) for c in cfg["crawls"]]
        overrides = _crawl_kwargs(args)
        batches = [(cid, {**kw, **overrides}) for cid, kw in batches]
    else:
        batches = [("cli", _crawl_kwargs(args))]

    rc = 0
    for crawl_id, kwargs in batches:
        try:
            summary, run_id = _runner.run_module_once(
                module=CRAWL_MODULE,
                kwargs=kwargs,
                trigger_type="cli",
                job_context={"crawl_id": crawl_id},
            )
        except KeyboardInterrupt:
            return 130
        except InvalidConfiguration as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 2
        except Exception as e:
            print(f"FAILURE [{crawl_id}]: {e}", file=sys.stderr)
            L.write_error_log({
                "ts": _now_iso(),
                "where": "cli.crawl",
                "crawl_id": crawl_id,
                "error": repr(e),
                "duration_ms": int((time.monotonic() - start_time) * 1000),
            })
            rc = 1
            continue
        if len(batches) > 1:
            print(f"== {crawl_id} ({run_id}) ==")
        _print_summary(summary, as_json=args.json)
    return rc


def cmd_run(args: argparse.Namespace) -> int:
    start_time = time.monotonic()

    kwargs = _parse_kv_pairs(args.kwargs or [])
    LOG.debug("Run module %s with kwargs=%s", args.module, kwargs)

    try:
        meta, run_id = _runner.run_module_once(module=args.module, kwargs=kwargs, trigger_type="adhoc")
        duration_ms = int((time.monotonic() - start_time) * 1000)
        L.write_activity_log({
            "ts": _now_iso(),
            "event": "cli_run",
            "run_id": run_id,
            "module": args.module,
            "trigger_type": "adhoc",
            "kwargs": kwargs,
            "duration_ms": duration_ms,
        })
        if meta:
            print(json.dumps(meta, indent=2, sort_keys=True, default=str))
        print("DONE: Module run completed.")
        return 0

    except KeyboardInterrupt:
        return 130
    except Exception as e:
        duration_s = time.monotonic() - start_time
        print(f"FAILURE: {e}", file=sys.stderr)
        L.write_error_log({
            "ts": _now_iso(),
            "where": "cli.run",
            "module": args.module,
            "kwargs": kwargs,
            "error": repr(e),
            "duration_ms": int(duration_s * 1000),
        })
        return 1


def cmd_list_crawls(args: argparse.Namespace) -> int:
    try:
        cfg = _config_schema.load_config(args.config)
    except _config_schema.ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    rows = []
    for c in cfg["crawls"]:
        details = {k: v for k, v in c.items() if k != "id"}
        rows.append((c["id"], json.dumps(details, default=str, sort_keys=True)))
    if not rows:
        print("No crawls found in config.")
        return 0
    _print_table(rows, headers=("CRAWL", "INPUT"))
    return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        cfg = _config_schema.load_config(args.config)
        settings = _config_schema.validate(cfg)
        print(f"OK: configuration is valid ({len(settings)} crawl(s)).")
        return 0
    except KeyboardInterrupt:
        return 130
    except _config_schema.ConfigError as e:
        LOG.error("Configuration validation failed: %s", e)
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1


# ------------------------------- Argparse ------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="python -m service.cli",
        description="Careers crawl command-line tools",
    )
    p.add_argument(
        "--config",
        help="Path to a crawl input file (JSON/YAML; fallbacks to CONFIG_PATH env).",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # crawl
    sp = sub.add_parser("crawl", help="Run a careers crawl and print its summary.")
    sp.add_argument("--keyword", help="Search keyword (e.g. 'nurse').")
    sp.add_argument("--location", help="Location filter (e.g. 'Austin').")
    sp.add_argument("--date-filter", choices=["anytime", "24h", "7d", "30d"], help="Posted-date filter.")
    sp.add_argument("--start-url", action="append", help="Search results URL to start from (repeatable).")
    sp.add_argument("--results", help="Result quota (integer or 'unlimited').")
    sp.add_argument("--max-pages", type=int, help="Maximum listing pages to visit.")
    sp.add_argument("--max-retries", type=int, help="Retries per request.")
    sp.add_argument("--request-delay", type=float, help="Base delay before each request, seconds.")
    sp.add_argument("--concurrency", type=int, help="Worker count (1-5).")
    sp.add_argument("--proxy", action="append", help="Proxy URL (repeatable).")
    sp.add_argument("--sqlite-path", help="SQLite output path.")
    sp.add_argument("--dataset", help="Also append rows to this JSONL file.")
    sp.add_argument("--no-details", action="store_true", help="Skip detail-page fetches.")
    sp.add_argument("--json", action="store_true", help="Print the summary as JSON.")
    sp.set_defaults(func=cmd_crawl)

    # run
    sp = sub.add_parser("run", help="Execute a module ad-hoc via runner.run_module_once().")
    sp.add_argument("module", help="Module to run (e.g., careers_crawl or modules.careers_crawl.main).")
    sp.add_argument(
        "--kwargs",
        metavar="k=v",
        nargs="*",
        help="Extra keyword arguments for the module (JSON values supported).",
    )
    sp.set_defaults(func=cmd_run)

    # list-crawls
    sp = sub.add_parser("list-crawls", help="Print all crawls from the input file.")
    sp.set_defaults(func=cmd_list_crawls)

    # validate-config
    sp = sub.add_parser("validate-config", help="Verify the input file.")
    sp.set_defaults(func=cmd_validate_config)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
