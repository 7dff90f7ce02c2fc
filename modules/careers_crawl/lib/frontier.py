"""
Run-scoped crawl state shared by the workers.

Frontier: FIFO of pending FetchTasks with in-flight tracking, a LIST page ceiling
and close-to-cancel semantics.

DedupLedger: the set of emitted external ids plus pending claims, bounded by
the result quota. Check-then-mark is one critical section (try_claim).
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from enum import Enum

from .models import FetchTask, TaskKind

log = logging.getLogger(__name__)


class Frontier:
    def __init__(self, page_ceiling: int):
        if page_ceiling < 1:
            raise ValueError("page_ceiling must be >= 1")
        self.page_ceiling = int(page_ceiling)
        self._cond = threading.Condition()
        self._queue: deque[FetchTask] = deque()
        self._admitted: set[tuple[str, str]] = set()
        self._list_pages = 0
        self._in_flight = 0
        self._closed = False
        self._close_reason: str | None = None
        self._discarded = 0
        self._rejected = 0

    # ---- producers ----
    def enqueue(self, task: FetchTask) -> bool:
        """
        Add a task. Returns False when the frontier is closed, when a fresh
        LIST task would exceed the page ceiling, or when the same (kind, url)
        was already admitted. Retries (attempt > 0) of admitted tasks always pass.
        """
        with self._cond:
            if self._closed:
                return False
            fresh = task.attempt == 0
            if fresh:
                if task.key in self._admitted:
                    log.debug("Frontier: already admitted %s %s", task.kind.value, task.url)
                    return False
                if task.kind is TaskKind.LIST and self._list_pages >= self.page_ceiling:
                    self._rejected += 1
                    log.info("Frontier: page ceiling (%d) reached, not queueing %s", self.page_ceiling, task.url)
                    return False
                self._admitted.add(task.key)
                if task.kind is TaskKind.LIST:
                    self._list_pages += 1
            self._queue.append(task)
            self._cond.notify()
            return True

    # ---- consumers ----
    def dequeue(self, timeout: float | None = None) -> FetchTask | None:
        """
        Next task, or None once the frontier is closed or fully drained
        (queue empty and nothing in flight). Blocks while other workers still
        hold tasks that may enqueue follow-ups.
        """
        with self._cond:
            while True:
                if self._closed:
                    return None
                if self._queue:
                    self._in_flight += 1
                    return self._queue.popleft()
                if self._in_flight == 0:
                    return None
                if not self._cond.wait(timeout=timeout) and timeout is not None:
                    return None

    def task_done(self) -> None:
        with self._cond:
            self._in_flight = max(0, self._in_flight - 1)
            self._cond.notify_all()

    def close(self, reason: str) -> None:
        """Reject further enqueues, drop queued tasks and wake every waiter."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._close_reason = reason
            self._discarded = len(self._queue)
            self._queue.clear()
            log.info("Frontier closed (%s); %d queued tasks discarded", reason, self._discarded)
            self._cond.notify_all()

    # ---- introspection ----
    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    @property
    def close_reason(self) -> str | None:
        with self._cond:
            return self._close_reason

    @property
    def list_pages_admitted(self) -> int:
        with self._cond:
            return self._list_pages

    @property
    def ceiling_reached(self) -> bool:
        with self._cond:
            return self._list_pages >= self.page_ceiling

    @property
    def pending(self) -> int:
        with self._cond:
            return len(self._queue)

    @property
    def in_flight(self) -> int:
        with self._cond:
            return self._in_flight


class Claim(str, Enum):
    CLAIMED = "claimed"
    DUPLICATE = "duplicate"
    QUOTA_FULL = "quota_full"


class DedupLedger:
    """
    Emitted ids + pending claims for one run.

    Invariants: an id is emitted at most once; emitted never exceeds quota;
    emitted + pending never exceeds quota.
    """

    def __init__(self, quota: int):
        if quota < 1:
            raise ValueError("quota must be >= 1")
        self.quota = int(quota)
        self._lock = threading.Lock()
        self._emitted: set[str] = set()
        self._pending: set[str] = set()
        self._seen: set[str] = set()
        self._duplicates = 0

    def has_emitted(self, external_id: str) -> bool:
        with self._lock:
            return external_id in self._emitted

    def mark_emitted(self, external_id: str) -> bool:
        """Record an emission directly. False if already emitted or the quota is full."""
        with self._lock:
            self._seen.add(external_id)
            if external_id in self._emitted or len(self._emitted) >= self.quota:
                return False
            self._pending.discard(external_id)
            self._emitted.add(external_id)
            return True

    def try_claim(self, external_id: str) -> Claim:
        """Atomic check-and-reserve of one quota slot for external_id."""
        with self._lock:
            self._seen.add(external_id)
            if external_id in self._emitted or external_id in self._pending:
                self._duplicates += 1
                return Claim.DUPLICATE
            if len(self._emitted) + len(self._pending) >= self.quota:
                return Claim.QUOTA_FULL
            self._pending.add(external_id)
            return Claim.CLAIMED

    def confirm(self, external_id: str) -> int:
        """Turn a claim into an emission; returns the emitted count."""
        with self._lock:
            if external_id not in self._pending:
                raise KeyError(f"No pending claim for {external_id!r}")
            self._pending.discard(external_id)
            self._emitted.add(external_id)
            return len(self._emitted)

    def abandon(self, external_id: str) -> None:
        """Release a claim without emitting (sink failure, task dropped)."""
        with self._lock:
            self._pending.discard(external_id)

    @property
    def emitted_count(self) -> int:
        with self._lock:
            return len(self._emitted)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def unique_count(self) -> int:
        with self._lock:
            return len(self._seen)

    @property
    def duplicates(self) -> int:
        with self._lock:
            return self._duplicates

    @property
    def quota_reached(self) -> bool:
        with self._lock:
            return len(self._emitted) >= self.quota

    @property
    def slots_full(self) -> bool:
        with self._lock:
            return len(self._emitted) + len(self._pending) >= self.quota
