# careers_crawl/extract/dom.py
"""
Selector-driven fallback for listing pages that carry no machine-readable data.

Container selectors are tried in order; the first selector that yields at least
one usable candidate wins. A container is accepted only when it mentions a
job-domain word (or the search keyword), holds at least one link, and its text
length falls within [MIN_TEXT, MAX_TEXT].
"""

from __future__ import annotations

import logging
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Tag

from ..models import CandidateRecord
from ..utils import collapse_ws, stable_id
from .base import ExtractionContext, Strategy, first_attr, first_successful, first_text
from .registry import register
from .sanitize import sanitize

log = logging.getLogger(__name__)

CONTAINER_SELECTORS = (
    "[data-job-id]",
    'li[role="listitem"]',
    ".VfPpkd-rymPhb",
    '[class*="job-"]',
    'div[class*="result"]',
    "article",
)

TITLE_SELECTORS = ("h3", "h2", "h4", '[class*="title"]', 'a[class*="job"]')
COMPANY_SELECTORS = ('[class*="company"]', '[class*="organization"]', '[class*="employer"]')
LOCATION_SELECTORS = ('[class*="location"]', '[class*="office"]', '[class*="place"]')
DESCRIPTION_SELECTORS = ("p", '[class*="description"]', '[class*="snippet"]')
TYPE_SELECTORS = ('[class*="employment"]', '[class*="type"]')
DATE_SELECTORS = ('[class*="date"]', '[class*="posted"]', "time")

MIN_TEXT = 20
MAX_TEXT = 5000

JOB_WORDS = (
    "job",
    "career",
    "position",
    "role",
    "hiring",
    "apply",
    "full-time",
    "full time",
    "part-time",
    "part time",
    "contract",
    "intern",
    "remote",
    "engineer",
    "developer",
    "manager",
    "analyst",
    "specialist",
    "designer",
    "scientist",
    "consultant",
    "nurse",
    "technician",
    "associate",
    "director",
    "qualifications",
)


def _link(el: Tag) -> Tag | None:
    if el.name == "a" and el.get("href"):
        return el
    return el.find("a", href=True)


def _keyword_terms(keyword: str) -> tuple[str, ...]:
    return tuple(w for w in collapse_ws(keyword).lower().split(" ") if len(w) > 2)


def accept_container(el: Tag, keyword: str = "") -> bool:
    """Content-quality gate for one candidate container."""
    text = collapse_ws(el.get_text(" ", strip=True))
    if not MIN_TEXT <= len(text) <= MAX_TEXT:
        return False
    if _link(el) is None:
        return False
    low = text.lower()
    return any(w in low for w in JOB_WORDS) or any(w in low for w in _keyword_terms(keyword))


def _id_from_url(url: str | None) -> str:
    if not url:
        return ""
    seg = urlsplit(url).path.rstrip("/").rsplit("/", 1)[-1]
    # Generic path tails are not identifiers.
    if seg.lower() in {"", "results", "jobs", "search", "careers", "apply"}:
        return ""
    return seg


@register
class DomHeuristicStrategy(Strategy):
    """Repeated listing containers found by an ordered selector list."""

    name = "dom"
    priority = 30

    def applies(self, soup: BeautifulSoup, ctx: ExtractionContext) -> bool:
        return soup.find("a", href=True) is not None

    def extract(self, soup: BeautifulSoup, ctx: ExtractionContext) -> list[CandidateRecord]:
        steps = [
            (sel, lambda s, c, sel=sel: s.select_one(sel) is not None, lambda s, c, sel=sel: self._from(sel, s, c))
            for sel in CONTAINER_SELECTORS
        ]
        selector, records = first_successful(steps, soup, ctx)
        if selector:
            log.info("DOM containers matched via %s (%d candidates)", selector, len(records))
        return records

    def _from(self, selector: str, soup: BeautifulSoup, ctx: ExtractionContext) -> list[CandidateRecord]:
        accepted: list[Tag] = []
        accepted_ids: set[int] = set()
        for el in soup.select(selector):
            # Nested matches of the same selector collapse into the outermost container.
            if any(id(p) in accepted_ids for p in el.parents):
                continue
            if accept_container(el, ctx.keyword):
                accepted.append(el)
                accepted_ids.add(id(el))

        # Only candidates that survive sanitizing count as a match for this selector.
        records: list[CandidateRecord] = []
        for el in accepted:
            rec = self._to_record(el, ctx)
            if rec is not None and sanitize(rec) is not None:
                records.append(rec)
        return records

    def _to_record(self, el: Tag, ctx: ExtractionContext) -> CandidateRecord | None:
        title = first_text(el, TITLE_SELECTORS)
        if len(title) < 3:
            return None
        link = _link(el)
        url = ctx.absolute(link.get("href") if link is not None else None)
        company = first_text(el, COMPANY_SELECTORS) or ctx.default_company
        location = first_text(el, LOCATION_SELECTORS)

        job_id = str(el.get("data-job-id") or "").strip() or first_attr(el, ("[data-job-id]",), ("data-job-id",))
        external_id = job_id or _id_from_url(url) or stable_id(title, company, location, url or "")

        date_posted = first_attr(el, ("time[datetime]", '[class*="date"][datetime]'), ("datetime",)) or first_text(
            el, DATE_SELECTORS
        )

        return CandidateRecord(
            external_id=external_id,
            title=title,
            company=company,
            location=location,
            date_posted=date_posted or None,
            employment_type=first_text(el, TYPE_SELECTORS) or None,
            description_text=first_text(el, DESCRIPTION_SELECTORS),
            source_url=url,
            strategy=self.name,
            provenance=ctx.provenance(),
        )
