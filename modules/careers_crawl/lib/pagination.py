"""
Next-page resolution for LIST pages.

Offsets are the integer value of the pagination query parameter (1 when the
parameter is absent). A resolved next task always has an offset strictly greater
than the current one and never beyond `max_offset`.
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup, Tag

from .config import DEFAULT_BASE_URL, DateFilter
from .models import FetchTask, TaskKind
from .utils import collapse_ws

log = logging.getLogger(__name__)

NEXT_SELECTORS = (
    'a[aria-label*="Next"]',
    'a[aria-label*="next"]',
    'a[rel="next"]',
    'link[rel="next"]',
    "a.next",
    'button[aria-label*="Next"]',
    'button[aria-label*="next"]',
)

NEXT_TEXTS = frozenset({"next", "next page", "next ›", "next »", "›", "»"})


def build_search_url(
    keyword: str,
    location: str = "",
    date_filter: DateFilter | str = DateFilter.ANYTIME,
    page: int = 1,
    base_url: str = DEFAULT_BASE_URL,
) -> str:
    """Search results URL: q, location, posted_date (when filtered), page (when > 1)."""
    params: list[tuple[str, str]] = []
    if keyword:
        params.append(("q", keyword))
    if location:
        params.append(("location", location))
    days = DateFilter.parse(date_filter).posted_days
    if days:
        params.append(("posted_date", days))
    if page > 1:
        params.append(("page", str(page)))
    return f"{base_url}?{urlencode(params)}" if params else base_url


def current_offset(url: str, param: str = "page") -> int | None:
    """Integer value of `param` in url; 1 when absent, None when present but not an int."""
    values = [v for k, v in parse_qsl(urlsplit(url).query, keep_blank_values=True) if k == param]
    if not values:
        return 1
    try:
        return int(values[-1])
    except ValueError:
        return None


def with_query_param(url: str, param: str, value: int | str) -> str:
    """url with `param` set to value (replacing any existing occurrences, order kept)."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    out: list[tuple[str, str]] = []
    replaced = False
    for k, v in query:
        if k == param:
            if not replaced:
                out.append((k, str(value)))
                replaced = True
            continue
        out.append((k, v))
    if not replaced:
        out.append((param, str(value)))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(out), parts.fragment))


def _disabled(el: Tag) -> bool:
    if el.has_attr("disabled"):
        return True
    if str(el.get("aria-disabled") or "").lower() == "true":
        return True
    return "disabled" in (el.get("class") or [])


def _target(el: Tag) -> str:
    for attr in ("href", "data-href", "data-url"):
        val = str(el.get(attr) or "").strip()
        if val and not val.startswith(("javascript:", "#")):
            return val
    return ""


def _next_controls(soup: BeautifulSoup):
    for selector in NEXT_SELECTORS:
        for el in soup.select(selector):
            yield selector, el
    for el in soup.find_all("a"):
        if collapse_ws(el.get_text(" ", strip=True)).lower() in NEXT_TEXTS:
            yield "a:text(next)", el


def resolve_next(
    soup: BeautifulSoup,
    task: FetchTask,
    *,
    page_param: str = "page",
    page_step: int = 1,
    max_offset: int = 200,
) -> FetchTask | None:
    """
    Next LIST task after `task`, or None.

    (a) an explicit next control whose target offset is > current and <= max_offset;
    (b) otherwise current + page_step substituted into the pagination parameter.
    """
    current = task.page_offset

    for selector, el in _next_controls(soup):
        if _disabled(el):
            continue
        href = _target(el)
        if not href:
            continue
        url = urljoin(task.url, href)
        offset = current_offset(url, page_param)
        if offset is None or offset <= current or offset > max_offset:
            log.debug("Ignoring next control %s -> %s (offset %s, current %s)", selector, url, offset, current)
            continue
        log.info("Next page via %s: %s", selector, url)
        return FetchTask(url=url, kind=TaskKind.LIST, page_offset=offset)

    nxt = current + max(1, page_step)
    if nxt > max_offset:
        log.info("Pagination stopped at offset %d (max_offset=%d)", current, max_offset)
        return None
    url = with_query_param(task.url, page_param, nxt)
    log.info("Built next page URL: %s=%d", page_param, nxt)
    return FetchTask(url=url, kind=TaskKind.LIST, page_offset=nxt)
