"""
Crawl orchestrator.

Features:
  - Bounded worker pool (ThreadPoolExecutor) draining a shared Frontier
  - Exclusive identity checkout, challenge detection and identity rotation
  - Ordered extraction strategies, DETAIL follow-ups for thin candidates
  - Atomic dedupe + quota via the DedupLedger; frontier closed at quota
  - Failure classification fed to the RetryController (backoff, re-enqueue)
  - Dependency injection for testability (transport, sink, sleep, rng)
  - Structured logging via `logging_bridge`
"""

from __future__ import annotations

import logging
import os
import random
import tempfile
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Protocol

from bs4 import BeautifulSoup

from . import challenge, logging_bridge
from .config import CrawlSettings
from .extract import ExtractionContext, ExtractionPipeline, extract_detail, sanitize
from .frontier import Claim, DedupLedger, Frontier
from .http_client import HttpTransport, NetworkError
from .identity import Identity, IdentityPool, PoolExhausted
from .models import CandidateRecord, FetchResponse, FetchTask, RunSummary, TaskKind
from .pagination import build_search_url, current_offset, resolve_next
from .ratelimit import TokenBucket
from .retry import FailureClass, RetryController, classify_network_error
from .sink import JsonlSink, MemorySink, MultiSink, Sink, SqliteSink
from .utils import now_iso

log = logging.getLogger(__name__)

COMPONENT = "careers_crawl.engine"


class Transport(Protocol):
    def fetch(self, url: str, identity: Identity, headers: dict[str, str] | None = None) -> FetchResponse: ...


# =============================================================================
# CRAWLER
# =============================================================================
class Crawler:
    """
    One crawl run. State (frontier, ledger, identities, counters) lives here and
    dies with the run.
    """

    def __init__(
        self,
        settings: CrawlSettings,
        *,
        transport: Transport | None = None,
        sink: Sink | None = None,
        pool: IdentityPool | None = None,
        limiter: TokenBucket | None = None,
        pipeline: ExtractionPipeline | None = None,
        retry: RetryController | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ):
        self.settings = settings
        self.rng = rng or random.Random()
        self.sleep = sleep
        self._owns_transport = transport is None
        self.transport = transport or HttpTransport(timeout=settings.timeout)
        if sink is None and not settings.skip_network:
            sink = default_sink(settings)
        self.sink = sink if sink is not None else MemorySink()
        self.pool = pool or IdentityPool(
            settings.identity_pool_size,
            proxies=settings.proxy_urls,
            max_uses=settings.identity_max_uses,
            max_errors=settings.identity_max_errors,
            mint_budget=settings.mint_budget,
            rng=self.rng,
        )
        self.limiter = limiter or TokenBucket(settings.max_requests_per_minute, sleep=self.sleep)
        self.pipeline = pipeline or ExtractionPipeline()
        self.retry = retry or RetryController(settings.max_retries, rng=self.rng)

        self.frontier = Frontier(settings.max_pages)
        self.ledger = DedupLedger(settings.results_wanted)
        self.summary = RunSummary(
            results_wanted=None if settings.unbounded else settings.results_wanted,
            max_pages=settings.max_pages,
        )
        self._lock = threading.Lock()
        self._visited: set[str] = set()
        self._fatal: PoolExhausted | None = None
        self._rng_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------
    def seeds(self) -> list[FetchTask]:
        s = self.settings
        urls = s.start_urls or (build_search_url(s.keyword, s.location, s.date_filter, base_url=s.base_url),)
        return [
            FetchTask(url=u, kind=TaskKind.LIST, page_offset=current_offset(u, s.page_param) or 1) for u in urls
        ]

    def run(self) -> RunSummary:
        start_ns = time.perf_counter_ns()
        s = self.settings
        described = s.describe()
        log.info("Starting crawl: %s", described)
        logging_bridge.activity({"component": COMPONENT, "op": "start", **described})

        if s.skip_network:
            self.summary.stop_reason = "skip_network"
            logging_bridge.activity({"component": COMPONENT, "op": "skipped", "reason": "skip_network"})
            return self.summary

        for task in self.seeds():
            log.info("Seed URL: %s", task.url)
            self.frontier.enqueue(task)

        try:
            with ThreadPoolExecutor(max_workers=s.max_concurrency, thread_name_prefix="crawl") as ex:
                futures = {ex.submit(self._worker, n): n for n in range(s.max_concurrency)}
                for fut in as_completed(futures):
                    fut.result()
        finally:
            if self._owns_transport and hasattr(self.transport, "close"):
                self.transport.close()

        self.summary.duration_s = (time.perf_counter_ns() - start_ns) / 1e9
        self._finish()
        if self._fatal is not None:
            raise self._fatal
        return self.summary

    # -------------------------------------------------------------------------
    # Worker loop
    # -------------------------------------------------------------------------
    def _worker(self, n: int) -> None:
        while True:
            task = self.frontier.dequeue()
            if task is None:
                return
            try:
                self._process(task)
            except PoolExhausted as e:
                self._drop_seed(task)
                with self._lock:
                    if self._fatal is None:
                        self._fatal = e
                log.error("Identity pool exhausted: %s", e)
                self.frontier.close("pool_exhausted")
            except Exception as e:
                # Contained per task; the run keeps going.
                self._drop_seed(task)
                log.exception("Worker %d: unexpected error on %s", n, task.url)
                logging_bridge.error({
                    "component": COMPONENT,
                    "op": "task",
                    "url": task.url,
                    "kind": task.kind.value,
                    "error": repr(e),
                })
                self._bump("failed_tasks")
            finally:
                self.frontier.task_done()

    def _drop_seed(self, task: FetchTask) -> None:
        if task.seed is not None:
            self.ledger.abandon(task.seed.external_id)

    def _process(self, task: FetchTask) -> None:
        self.retry.mark_in_flight(task)
        identity = self.pool.acquire()
        try:
            failure = self._attempt(task, identity)
        except BaseException:
            self.pool.release(identity, FailureClass.UNKNOWN.value)
            raise

        if failure is None:
            self.pool.release(identity)
            self.retry.mark_succeeded(task)
            return

        decision = self.retry.on_failure(task, failure)
        self.pool.release(identity, failure.value, rotate=decision.rotate)
        if not identity.active and hasattr(self.transport, "forget"):
            self.transport.forget(identity)

        if decision.retry and decision.task is not None:
            self.sleep(decision.delay)
            if self.frontier.enqueue(decision.task):
                return
            log.debug("Retry of %s dropped (frontier closed)", task.url)
            if task.seed is not None:
                self.ledger.abandon(task.seed.external_id)
            return

        self._bump("failed_tasks")
        logging_bridge.error({
            "component": COMPONENT,
            "op": "task_failed",
            "url": task.url,
            "kind": task.kind.value,
            "failure": failure.value,
            "attempts": task.attempt + 1,
        })
        if task.kind is TaskKind.DETAIL and task.seed is not None:
            # The list-page data is still a valid record.
            log.info("Detail fetch failed; saving list-page data for %s", task.seed.external_id)
            self._commit(task.seed)

    def _attempt(self, task: FetchTask, identity: Identity) -> FailureClass | None:
        """One fetch + handle. Returns the failure class, or None on success."""
        self._human_delay()
        self.limiter.acquire()
        try:
            resp = self.transport.fetch(task.url, identity)
        except NetworkError as e:
            failure = classify_network_error(e)
            log.warning("Request failed: %s (%s: %s)", task.url, failure.value, e)
            return failure
        except Exception as e:
            log.warning("Request failed: %s (unexpected: %r)", task.url, e)
            return FailureClass.UNKNOWN

        soup = BeautifulSoup(resp.body or "", "html.parser")
        detection = challenge.detect(soup, resp.final_url, task.url)
        if detection.blocked:
            self._bump("challenges")
            self.pool.retire(identity, f"challenge:{detection.reason}")
            log.warning("Anti-bot challenge detected on %s (%s)", task.url, detection.reason)
            logging_bridge.activity({
                "component": COMPONENT,
                "op": "challenge",
                "url": task.url,
                "final_url": resp.final_url,
                "verdict": detection.verdict.value,
                "reason": detection.reason,
                "identity": identity.id,
            })
            return FailureClass.CHALLENGE

        try:
            if task.kind is TaskKind.LIST:
                self._handle_list(task, soup, resp)
            else:
                self._handle_detail(task, soup, resp)
        except Exception as e:
            log.exception("Handling %s failed", task.url)
            logging_bridge.error({
                "component": COMPONENT,
                "op": f"handle_{task.kind.value}",
                "url": task.url,
                "error": repr(e),
            })
            return FailureClass.UNKNOWN
        return None

    # -------------------------------------------------------------------------
    # Page handlers
    # -------------------------------------------------------------------------
    def _handle_list(self, task: FetchTask, soup: BeautifulSoup, resp: FetchResponse) -> None:
        page_url = resp.final_url or task.url
        pages = self._count_page(task.url)
        title = soup.title.get_text(" ", strip=True) if soup.title else ""
        log.info("Processing page %d/%d: %s (title=%r)", pages, self.settings.max_pages, page_url, title)

        result = self.pipeline.run(soup, self._context(page_url))

        if result.empty:
            self._bump("empty_pages")
            log.warning("ExtractionEmpty: no candidates on %s; stopping this branch", page_url)
            logging_bridge.activity({
                "component": COMPONENT,
                "op": "extraction_empty",
                "url": page_url,
                "page_offset": task.page_offset,
                "stats": {
                    "divs": len(soup.find_all("div")),
                    "links": len(soup.find_all("a")),
                    "scripts": len(soup.find_all("script")),
                },
            })
            self._debug_dump(page_url, resp.body)
            nxt = self._next_page(soup, task)
            if nxt is not None:
                log.info("Not following %s after an empty page", nxt.url)
            return

        log.info("Extracted %d jobs via %s from %s", len(result.candidates), result.strategy, page_url)
        for cand in result.candidates:
            if self.frontier.closed:
                break
            if result.needs_detail and self._wants_detail(cand):
                self._spawn_detail(cand)
            else:
                self._emit(cand)

        if self.ledger.slots_full:
            log.info("Quota filled; not paginating past %s", page_url)
            return
        nxt = self._next_page(soup, task)
        if nxt is None:
            log.info("No more pages found after %s", page_url)
            return
        if self.frontier.enqueue(nxt):
            log.info("Added next page to queue: %s", nxt.url)

    def _handle_detail(self, task: FetchTask, soup: BeautifulSoup, resp: FetchResponse) -> None:
        seed = task.seed
        if seed is None:
            log.warning("DETAIL task without seed: %s", task.url)
            return
        self._bump("detail_fetches")
        fields = extract_detail(soup, self._context(resp.final_url or task.url))
        record = sanitize(seed.merged(fields)) or seed
        self._commit(record)

    # -------------------------------------------------------------------------
    # Emission
    # -------------------------------------------------------------------------
    def _wants_detail(self, cand: CandidateRecord) -> bool:
        return bool(
            self.settings.collect_details
            and cand.source_url
            and cand.source_url.startswith(("http://", "https://"))
        )

    def _spawn_detail(self, cand: CandidateRecord) -> None:
        claim = self.ledger.try_claim(cand.external_id)
        if claim is not Claim.CLAIMED:
            self._log_skip(cand, claim)
            return
        detail = FetchTask(url=cand.source_url or "", kind=TaskKind.DETAIL, seed=cand)
        if self.frontier.enqueue(detail):
            return
        if self.frontier.closed:
            self.ledger.abandon(cand.external_id)
        else:
            # Detail URL already queued for another listing; keep the list-page data.
            self._commit(cand)

    def _emit(self, cand: CandidateRecord) -> None:
        claim = self.ledger.try_claim(cand.external_id)
        if claim is not Claim.CLAIMED:
            self._log_skip(cand, claim)
            return
        self._commit(cand)

    def _commit(self, record: CandidateRecord) -> None:
        """Append a claimed record to the sink and confirm the claim."""
        try:
            self.sink.append(record)
        except Exception as e:
            self.ledger.abandon(record.external_id)
            log.error("Sink append failed for %s: %r", record.external_id, e)
            logging_bridge.error({
                "component": COMPONENT,
                "op": "sink_append",
                "external_id": record.external_id,
                "error": repr(e),
            })
            return
        n = self.ledger.confirm(record.external_id)
        wanted = "unlimited" if self.settings.unbounded else self.settings.results_wanted
        log.info("Job %d/%s saved: %r at %s", n, wanted, record.title, record.company)
        if self.ledger.quota_reached:
            self.frontier.close("quota_reached")

    def _log_skip(self, cand: CandidateRecord, claim: Claim) -> None:
        if claim is Claim.DUPLICATE:
            log.debug("Skipping duplicate job: %s", cand.external_id)
        else:
            log.debug("Quota full; skipping %s", cand.external_id)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------
    def _next_page(self, soup: BeautifulSoup, task: FetchTask) -> FetchTask | None:
        s = self.settings
        return resolve_next(soup, task, page_param=s.page_param, page_step=s.page_step, max_offset=s.max_offset)

    def _context(self, page_url: str) -> ExtractionContext:
        s = self.settings
        return ExtractionContext(
            page_url=page_url,
            fetched_at=now_iso(),
            keyword=s.keyword,
            location=s.location,
            date_filter=s.date_filter.value,
            default_company=s.default_company,
        )

    def _human_delay(self) -> None:
        s = self.settings
        with self._rng_lock:
            jitter = self.rng.uniform(0, s.delay_jitter) if s.delay_jitter > 0 else 0.0
        delay = s.request_delay + jitter
        if delay > 0:
            self.sleep(delay)

    def _bump(self, name: str, by: int = 1) -> int:
        with self._lock:
            value = getattr(self.summary, name) + by
            setattr(self.summary, name, value)
            return value

    def _count_page(self, url: str) -> int:
        """Count a LIST page once, however many attempts it takes."""
        with self._lock:
            if url not in self._visited:
                self._visited.add(url)
                self.summary.pages_visited += 1
            return self.summary.pages_visited

    def _debug_dump(self, url: str, body: str) -> None:
        if os.getenv("CAREERS_CRAWL_DEBUG") != "1":
            return
        dump = os.path.join(tempfile.gettempdir(), f"careers_crawl_empty_{self.summary.empty_pages}.html")
        try:
            with open(dump, "w", encoding="utf-8") as f:
                f.write(body)
            log.debug("Empty page dump: %s (url=%s, len=%d)", dump, url, len(body))
        except OSError as e:
            log.debug("Empty page dump failed: %s", e)

    def _finish(self) -> None:
        s = self.settings
        summary = self.summary
        summary.emitted = self.ledger.emitted_count
        summary.unique_ids = self.ledger.unique_count
        summary.duplicates = self.ledger.duplicates
        if self._fatal is not None:
            summary.stop_reason = "pool_exhausted"
        elif self.frontier.close_reason:
            summary.stop_reason = self.frontier.close_reason
        elif self.frontier.ceiling_reached:
            summary.stop_reason = "page_ceiling"
        else:
            summary.stop_reason = "frontier_exhausted"

        wanted = "unlimited" if s.unbounded else s.results_wanted
        log.info("Crawl finished (%s)", summary.stop_reason)
        log.info("  - Total jobs collected: %d/%s", summary.emitted, wanted)
        log.info("  - Unique jobs processed: %d", summary.unique_ids)
        log.info("  - Pages visited: %d/%d", summary.pages_visited, summary.max_pages)
        if not s.start_urls:
            log.info("  - Search keyword: %r", s.keyword)
            log.info("  - Search location: %r", s.location or "Not specified")

        if summary.emitted == 0:
            log.warning("No jobs were collected. This might be due to:")
            log.warning("   1. Anti-bot measures blocking requests")
            log.warning("   2. No jobs matching the search criteria")
            log.warning("   3. Changes in the careers page structure")
            log.warning("   4. The page requiring JavaScript rendering")
            log.warning("   5. Proxy or network issues")

        logging_bridge.activity({
            "component": COMPONENT,
            "op": "summary",
            **summary.as_dict(),
            "identities": self.pool.stats(),
            "tasks": self.retry.counts(),
        })


# =============================================================================
# DEFAULT SINK (PRODUCTION)
# =============================================================================
def default_sink(settings: CrawlSettings) -> Sink:
    """SQLite store, plus a JSONL dataset file when `dataset_path` is set."""
    sinks: list[Sink] = [SqliteSink(settings.sqlite_path)]
    if settings.dataset_path:
        sinks.append(JsonlSink(settings.dataset_path))
    return sinks[0] if len(sinks) == 1 else MultiSink(*sinks)


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================
def run_once(
    settings: CrawlSettings,
    *,
    transport: Transport | None = None,
    sink: Sink | None = None,
    sleep: Callable[[float], None] = time.sleep,
    rng: random.Random | None = None,
) -> RunSummary:
    """
    Run one complete crawl.

    Args:
        settings: validated CrawlSettings.
        transport / sink / sleep / rng: optional overrides (for testing).

    Returns:
        RunSummary. PoolExhausted propagates after the summary is logged.
    """
    crawler = Crawler(settings, transport=transport, sink=sink, sleep=sleep, rng=rng)
    return crawler.run()
