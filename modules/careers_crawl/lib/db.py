from __future__ import annotations

import contextlib
import json
import os
import sqlite3
from typing import Any

from .logging_bridge import error as log_error
from .utils import now_iso

# ---- Public API -------------------------------------------------------------


def init_db(sqlite_path: str) -> None:
    """
    Ensure the SQLite database and schema exist.
    Safe to call multiple times.
    """
    _ensure_dir(sqlite_path)
    with contextlib.closing(_connect(sqlite_path)) as conn:
        _apply_pragmas(conn)
        _ensure_schema(conn)


def insert_listing(sqlite_path: str, row: dict[str, Any]) -> bool:
    """
    Store one output row keyed by its `id`.

    Returns True when the row was inserted, False when the id was already
    stored by an earlier run (INSERT OR IGNORE).
    """
    try:
        with contextlib.closing(_connect(sqlite_path)) as conn:
            _apply_pragmas(conn)
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            cur.execute(
                """
                INSERT OR IGNORE INTO listings
                  (external_id, title, company, location, url, date_posted,
                   search_keyword, search_location, extracted_from, payload, first_seen_utc)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(row["id"]),
                    str(row.get("title") or ""),
                    row.get("company"),
                    row.get("location"),
                    row.get("url"),
                    row.get("date_posted"),
                    row.get("_searchKeyword"),
                    row.get("_searchLocation"),
                    row.get("_extractedFrom"),
                    json.dumps(row, ensure_ascii=False, default=str),
                    now_iso(),
                ),
            )
            inserted = cur.rowcount == 1
            conn.commit()
    except Exception as e:
        # Surface to caller, but also log a structured error.
        log_error({
            "component": "careers_crawl.db",
            "op": "insert_listing",
            "sqlite_path": sqlite_path,
            "external_id": row.get("id"),
            "error": repr(e),
        })
        raise
    return inserted


def load_listings(sqlite_path: str) -> list[dict[str, Any]]:
    """Stored rows (decoded payloads) in insertion order; [] if DB missing."""
    if not os.path.exists(sqlite_path):
        return []
    with contextlib.closing(_connect(sqlite_path)) as conn:
        _apply_pragmas(conn)
        _ensure_schema(conn)
        cur = conn.execute("SELECT payload FROM listings ORDER BY rowid")
        return [json.loads(p) for (p,) in cur.fetchall()]


# ---- Nice-to-have helpers for tests & diagnostics --------------------------


def count_rows(sqlite_path: str) -> int:
    """Return total rows in listings table; 0 if DB missing/empty."""
    if not os.path.exists(sqlite_path):
        return 0
    with contextlib.closing(_connect(sqlite_path)) as conn:
        _apply_pragmas(conn)
        _ensure_schema(conn)
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) FROM listings")
        (n,) = cur.fetchone()
    return int(n or 0)


def reset_db(sqlite_path: str) -> None:
    """
    Remove the DB file (and WAL side files) entirely.
    Safe if it doesn't exist.
    """
    for suffix in ("", "-wal", "-shm"):
        with contextlib.suppress(FileNotFoundError):
            os.remove(sqlite_path + suffix)


# ---- Internal utilities -----------------------------------------------------


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


def _connect(sqlite_path: str) -> sqlite3.Connection:
    # Autocommit mode; transactions are opened explicitly.
    return sqlite3.connect(sqlite_path, timeout=30.0, isolation_level=None)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA temp_store=MEMORY;")
    conn.execute("PRAGMA cache_size=-8000;")  # approx 8MB cache


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS listings (
          external_id     TEXT PRIMARY KEY,
          title           TEXT NOT NULL,
          company         TEXT,
          location        TEXT,
          url             TEXT,
          date_posted     TEXT,
          search_keyword  TEXT,
          search_location TEXT,
          extracted_from  TEXT,
          payload         TEXT NOT NULL,
          first_seen_utc  TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_listings_search
          ON listings (search_keyword, search_location);
        """
    )
