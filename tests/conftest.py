# tests/conftest.py
import json
import os
import tempfile
import threading
import types

import pytest
from freezegun import freeze_time

from modules.careers_crawl.lib.config import CrawlSettings
from modules.careers_crawl.lib.http_client import NetworkError
from modules.careers_crawl.lib.models import FetchResponse

BASE_URL = "https://careers.example.com/jobs/results"
HOST = "https://careers.example.com"


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or external services).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="cc-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    monkeypatch.delenv("CAREERS_CRAWL_DEBUG", raising=False)
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


@pytest.fixture
def no_sleep():
    """A sleep stand-in that records requested delays instead of waiting."""
    slept: list[float] = []

    def _sleep(seconds: float) -> None:
        slept.append(seconds)

    _sleep.calls = slept
    return _sleep


@pytest.fixture
def make_settings(tmp_path):
    """
    Build CrawlSettings for offline runs: no politeness delays, a fast rate
    limit, one worker and a per-test SQLite file. Override anything per call.
    """

    def _make(**overrides) -> CrawlSettings:
        kwargs = {
            "keyword": "nurse",
            "location": "Austin",
            "base_url": BASE_URL,
            "request_delay": 0,
            "delay_jitter": 0,
            "max_requests_per_minute": 60000,
            "max_concurrency": 1,
            "sqlite_path": str(tmp_path / "careers_crawl.db"),
        }
        kwargs.update(overrides)
        return CrawlSettings.from_env_and_kwargs(kwargs)

    return _make


# ---------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------
class FakeTransport:
    """
    URL -> response routing for offline crawls.

    A route value is a body string, a FetchResponse, an exception instance, or
    a list of those consumed in order (the last one repeats). Unknown URLs get
    `default` (an empty page unless overridden).
    """

    def __init__(self, routes=None, default="<html><body></body></html>"):
        self.routes = {url: (list(v) if isinstance(v, list) else v) for url, v in (routes or {}).items()}
        self.default = default
        self.calls = []
        self._identities = {}
        self._lock = threading.Lock()

    def fetch(self, url, identity, headers=None):
        with self._lock:
            self._identities.setdefault(identity.id, identity)
            snapshot = {i: ident.state for i, ident in self._identities.items()}
            self.calls.append(types.SimpleNamespace(url=url, identity=identity, states=snapshot))
            route = self.routes.get(url, self.default)
            if isinstance(route, list):
                item = route.pop(0) if len(route) > 1 else route[0]
            else:
                item = route
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, FetchResponse):
            return item
        return FetchResponse(status=200, final_url=url, body=item)

    def urls(self):
        with self._lock:
            return [c.url for c in self.calls]


@pytest.fixture
def fake_transport():
    return FakeTransport


@pytest.fixture
def http_error():
    def _make(status: int, url: str = ""):
        return NetworkError("http", f"HTTP {status} for {url}", status=status, url=url)

    return _make


# ---------------------------------------------------------------------
# HTML builders
# ---------------------------------------------------------------------
def _posting(job_id, title=None, company="Google", city="Austin"):
    return {
        "@type": "JobPosting",
        "title": title or f"Registered Nurse {job_id}",
        "identifier": {"@type": "PropertyValue", "name": company, "value": str(job_id)},
        "hiringOrganization": {"@type": "Organization", "name": company},
        "jobLocation": {
            "@type": "Place",
            "address": {
                "@type": "PostalAddress",
                "addressLocality": city,
                "addressRegion": "TX",
                "addressCountry": "US",
            },
        },
        "datePosted": "2025-01-01",
        "employmentType": "FULL_TIME",
        "url": f"{HOST}/jobs/results/{job_id}",
        "description": f"<p>Care for patients on ward {job_id}.</p>",
    }


def jsonld_page(ids, *, next_href=None, title="Jobs"):
    data = {"@context": "https://schema.org", "@graph": [_posting(i) for i in ids]}
    nxt = f'<a aria-label="Next page" href="{next_href}">Next</a>' if next_href else ""
    return (
        f"<html><head><title>{title}</title>"
        f'<script type="application/ld+json">{json.dumps(data)}</script></head>'
        f"<body><h1>Search results</h1>{nxt}</body></html>"
    )


def dom_page(jobs, *, next_href=None):
    """jobs: iterable of (job_id, title)."""
    items = "".join(
        f'<li role="listitem" data-job-id="{job_id}">'
        f"<h3>{title}</h3>"
        '<span class="company">Google</span>'
        '<span class="location">Austin, TX, USA</span>'
        f'<a href="/jobs/results/{job_id}-role">Learn more</a>'
        "<p>Full time nursing role on a busy ward.</p>"
        "</li>"
        for job_id, title in jobs
    )
    nxt = f'<a aria-label="Next page" href="{next_href}">Next</a>' if next_href else ""
    return f"<html><head><title>Jobs</title></head><body><ul>{items}</ul>{nxt}</body></html>"


def detail_page(job_id, *, description="Provide bedside care.", salary=120000):
    posting = _posting(job_id)
    posting["description"] = f"<div><p>{description}</p></div>"
    posting["baseSalary"] = {
        "@type": "MonetaryAmount",
        "currency": "USD",
        "value": {"@type": "QuantitativeValue", "value": salary, "unitText": "YEAR"},
    }
    posting["qualifications"] = "BSN; active RN license"
    return (
        "<html><head><title>Job details</title>"
        f'<script type="application/ld+json">{json.dumps(posting)}</script></head>'
        f"<body><h1>{posting['title']}</h1></body></html>"
    )


CHALLENGE_PAGE = (
    "<html><head><title>Sorry...</title></head><body>"
    "<p>Our systems have detected unusual traffic from your computer network.</p>"
    "</body></html>"
)

EMPTY_PAGE = "<html><head><title>Jobs</title></head><body><p>No matching results.</p></body></html>"


@pytest.fixture
def pages():
    return types.SimpleNamespace(
        base_url=BASE_URL,
        host=HOST,
        jsonld=jsonld_page,
        dom=dom_page,
        detail=detail_page,
        challenge=CHALLENGE_PAGE,
        empty=EMPTY_PAGE,
    )
