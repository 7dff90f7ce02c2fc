"""
Output sinks. append() receives one emitted record; the crawl's ledger already
guarantees at most one append per external id within a run.
"""

from __future__ import annotations

import json
import os
import threading
from typing import Any, Protocol

from . import db
from .models import CandidateRecord


class Sink(Protocol):
    def append(self, record: CandidateRecord) -> None: ...


class MemorySink:
    """Keeps rows in memory (tests, dry runs)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.records: list[CandidateRecord] = []

    def append(self, record: CandidateRecord) -> None:
        with self._lock:
            self.records.append(record)

    @property
    def rows(self) -> list[dict[str, Any]]:
        with self._lock:
            return [r.to_output() for r in self.records]

    @property
    def ids(self) -> list[str]:
        with self._lock:
            return [r.external_id for r in self.records]


class JsonlSink:
    """One JSON object per line, appended under a lock."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()
        d = os.path.dirname(os.path.abspath(path))
        os.makedirs(d, exist_ok=True)

    def append(self, record: CandidateRecord) -> None:
        line = json.dumps(record.to_output(), ensure_ascii=False, default=str) + "\n"
        with self._lock, open(self.path, "a", encoding="utf-8") as fh:
            fh.write(line)


class SqliteSink:
    """Rows in the `listings` table; ids already stored by earlier runs are ignored."""

    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = sqlite_path
        self._lock = threading.Lock()
        self.inserted = 0
        self.ignored = 0
        db.init_db(sqlite_path)

    def append(self, record: CandidateRecord) -> None:
        with self._lock:
            if db.insert_listing(self.sqlite_path, record.to_output()):
                self.inserted += 1
            else:
                self.ignored += 1


class MultiSink:
    def __init__(self, *sinks: Sink) -> None:
        self.sinks = sinks

    def append(self, record: CandidateRecord) -> None:
        for s in self.sinks:
            s.append(record)
