# tests/test_pagination.py
import random

import pytest
from bs4 import BeautifulSoup

from modules.careers_crawl.lib.config import DateFilter
from modules.careers_crawl.lib.models import FetchTask, TaskKind
from modules.careers_crawl.lib.pagination import build_search_url, current_offset, resolve_next, with_query_param

BASE = "https://careers.example.com/jobs/results"


def _task(page=1):
    return FetchTask(url=build_search_url("nurse", "Austin", page=page, base_url=BASE), page_offset=page)


def _soup(html=""):
    return BeautifulSoup(f"<html><body>{html}</body></html>", "html.parser")


# ---------------------------------------------------------------------
# URL building
# ---------------------------------------------------------------------
def test_build_search_url():
    assert build_search_url("nurse", "Austin", base_url=BASE) == f"{BASE}?q=nurse&location=Austin"
    assert (
        build_search_url("icu nurse", "Austin, TX", DateFilter.LAST_7D, page=3, base_url=BASE)
        == f"{BASE}?q=icu+nurse&location=Austin%2C+TX&posted_date=7&page=3"
    )
    assert build_search_url("sre", date_filter="24h", base_url=BASE) == f"{BASE}?q=sre&posted_date=1"


def test_build_search_url_default_target():
    url = build_search_url("nurse")
    assert url == "https://www.google.com/about/careers/applications/jobs/results?q=nurse"


@pytest.mark.parametrize(
    "url, expected",
    [
        (f"{BASE}?q=nurse", 1),
        (f"{BASE}?q=nurse&page=7", 7),
        (f"{BASE}?page=abc", None),
    ],
)
def test_current_offset(url, expected):
    assert current_offset(url) == expected


def test_with_query_param_replaces_in_place():
    assert with_query_param(f"{BASE}?page=2&q=x", "page", 3) == f"{BASE}?page=3&q=x"
    assert with_query_param(f"{BASE}?q=x", "page", 2) == f"{BASE}?q=x&page=2"


# ---------------------------------------------------------------------
# Next-page resolution
# ---------------------------------------------------------------------
def test_explicit_next_link_wins():
    soup = _soup('<a aria-label="Next page" href="?q=nurse&location=Austin&page=2">›</a>')
    nxt = resolve_next(soup, _task(1))
    assert nxt.url == f"{BASE}?q=nurse&location=Austin&page=2"
    assert nxt.page_offset == 2
    assert nxt.kind is TaskKind.LIST


def test_text_next_link():
    soup = _soup('<nav><a href="/jobs/results?q=nurse&page=5">Next</a></nav>')
    nxt = resolve_next(soup, _task(4))
    assert nxt.page_offset == 5


def test_stale_and_disabled_links_are_ignored():
    soup = _soup(
        '<a rel="next" href="?q=nurse&location=Austin&page=2">Next</a>'
        '<button aria-label="Next" disabled data-href="?q=nurse&location=Austin&page=9"></button>'
        '<a class="next disabled" href="?q=nurse&location=Austin&page=8">Next</a>'
    )
    nxt = resolve_next(soup, _task(3))
    # falls back to current + step
    assert nxt.page_offset == 4
    assert nxt.url == f"{BASE}?q=nurse&location=Austin&page=4"


def test_synthesized_page_respects_step_and_max_offset():
    nxt = resolve_next(_soup(), _task(1), page_step=10, max_offset=50)
    assert nxt.page_offset == 11
    assert resolve_next(_soup(), _task(45), page_step=10, max_offset=50) is None
    assert resolve_next(_soup(), _task(50), max_offset=50) is None


def test_link_past_max_offset_is_not_followed():
    soup = _soup('<a aria-label="Next" href="?q=nurse&location=Austin&page=99">Next</a>')
    assert resolve_next(soup, _task(10), max_offset=10) is None


def test_next_offset_is_strictly_increasing_and_bounded():
    rng = random.Random(20250101)
    for _ in range(300):
        current = rng.randint(1, 60)
        max_offset = rng.randint(1, 80)
        step = rng.randint(1, 5)
        links = "".join(
            f'<a aria-label="Next" href="?q=nurse&location=Austin&page={rng.randint(0, 90)}">Next</a>'
            for _ in range(rng.randint(0, 3))
        )
        nxt = resolve_next(_soup(links), _task(current), page_step=step, max_offset=max_offset)
        if nxt is not None:
            assert current < nxt.page_offset <= max_offset
            assert current_offset(nxt.url) == nxt.page_offset
