# tests/test_frontier_ledger.py
import threading

import pytest

from modules.careers_crawl.lib.frontier import Claim, DedupLedger, Frontier
from modules.careers_crawl.lib.models import CandidateRecord, FetchTask, TaskKind


def _list(n):
    return FetchTask(url=f"https://careers.example.com/jobs/results?page={n}", page_offset=n)


def _detail(n):
    seed = CandidateRecord(external_id=str(n), title=f"Nurse {n}")
    return FetchTask(url=f"https://careers.example.com/jobs/results/{n}", kind=TaskKind.DETAIL, seed=seed)


# ---------------------------------------------------------------------
# Frontier
# ---------------------------------------------------------------------
def test_page_ceiling_counts_list_tasks_only():
    f = Frontier(page_ceiling=2)
    assert f.enqueue(_list(1))
    assert f.enqueue(_list(2))
    assert not f.enqueue(_list(3))
    assert f.ceiling_reached
    assert f.list_pages_admitted == 2

    # DETAIL work and retries of admitted pages still go through
    assert f.enqueue(_detail(1))
    assert f.enqueue(_list(2).retry())
    assert f.pending == 4


def test_same_task_is_admitted_once():
    f = Frontier(page_ceiling=10)
    assert f.enqueue(_detail(5))
    assert not f.enqueue(_detail(5))
    assert f.pending == 1


def test_fifo_and_drain():
    f = Frontier(page_ceiling=10)
    f.enqueue(_list(1))
    f.enqueue(_detail(1))
    first = f.dequeue()
    assert first.url.endswith("page=1")
    assert f.in_flight == 1
    f.task_done()
    second = f.dequeue()
    assert second.kind is TaskKind.DETAIL
    f.task_done()
    # empty and nothing in flight -> drained
    assert f.dequeue() is None


def test_dequeue_waits_for_in_flight_follow_ups():
    f = Frontier(page_ceiling=10)
    f.enqueue(_list(1))
    held = f.dequeue()
    got = []

    waiter = threading.Thread(target=lambda: got.append(f.dequeue()))
    waiter.start()
    waiter.join(timeout=0.1)
    assert waiter.is_alive()  # blocked: a task is still in flight

    f.enqueue(_list(2))
    f.task_done()
    waiter.join(timeout=2)
    assert not waiter.is_alive()
    assert held.page_offset == 1
    assert got[0].page_offset == 2


def test_dequeue_timeout_returns_none():
    f = Frontier(page_ceiling=10)
    f.enqueue(_list(1))
    f.dequeue()
    assert f.dequeue(timeout=0.01) is None


def test_close_discards_and_rejects():
    f = Frontier(page_ceiling=10)
    f.enqueue(_list(1))
    f.enqueue(_list(2))
    f.close("quota_reached")
    assert f.closed
    assert f.close_reason == "quota_reached"
    assert f.pending == 0
    assert f.dequeue() is None
    assert not f.enqueue(_list(3))
    # first reason sticks
    f.close("other")
    assert f.close_reason == "quota_reached"


def test_close_wakes_blocked_workers():
    f = Frontier(page_ceiling=10)
    f.enqueue(_list(1))
    f.dequeue()
    got = []
    waiter = threading.Thread(target=lambda: got.append(f.dequeue()))
    waiter.start()
    f.close("pool_exhausted")
    waiter.join(timeout=2)
    assert got == [None]


def test_frontier_rejects_bad_ceiling():
    with pytest.raises(ValueError):
        Frontier(0)


# ---------------------------------------------------------------------
# DedupLedger
# ---------------------------------------------------------------------
def test_claim_confirm_abandon():
    ledger = DedupLedger(quota=2)
    assert ledger.try_claim("a") is Claim.CLAIMED
    assert ledger.try_claim("a") is Claim.DUPLICATE
    assert ledger.try_claim("b") is Claim.CLAIMED
    # both slots reserved
    assert ledger.try_claim("c") is Claim.QUOTA_FULL
    assert ledger.slots_full
    assert not ledger.quota_reached

    ledger.abandon("b")
    assert ledger.try_claim("c") is Claim.CLAIMED
    assert ledger.confirm("a") == 1
    assert ledger.confirm("c") == 2
    assert ledger.quota_reached
    assert ledger.has_emitted("a")
    assert not ledger.has_emitted("b")
    assert ledger.duplicates == 1
    assert ledger.unique_count == 3


def test_confirm_without_claim_raises():
    ledger = DedupLedger(quota=5)
    with pytest.raises(KeyError):
        ledger.confirm("nope")


def test_mark_emitted():
    ledger = DedupLedger(quota=1)
    assert ledger.mark_emitted("x")
    assert not ledger.mark_emitted("x")
    assert not ledger.mark_emitted("y")
    assert ledger.emitted_count == 1


def test_concurrent_claims_respect_quota_and_uniqueness():
    ledger = DedupLedger(quota=25)
    barrier = threading.Barrier(8)
    emitted = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        for i in range(100):
            key = f"job-{i}"
            if ledger.try_claim(key) is Claim.CLAIMED:
                ledger.confirm(key)
                with lock:
                    emitted.append(key)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(emitted) == 25
    assert len(set(emitted)) == 25
    assert ledger.emitted_count == 25
    assert ledger.pending_count == 0
