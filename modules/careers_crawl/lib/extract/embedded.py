# careers_crawl/extract/embedded.py
"""
Listings hidden in inline script state (hydration payloads, __NEXT_DATA__,
`window.__INITIAL_STATE__ = {...}` assignments, `data: [...]` callbacks).

Payloads are decoded with json.JSONDecoder.raw_decode from each plausible start
position and walked to a bounded depth; any dict that carries both a title-like
key and an organisation-like key is treated as a listing.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator
from typing import Any

from bs4 import BeautifulSoup

from ..models import CandidateRecord
from ..utils import collapse_ws, stable_id
from .base import ExtractionContext, Strategy
from .registry import register

log = logging.getLogger(__name__)

MAX_DEPTH = 12
MAX_NODES = 50_000
MAX_SCRIPT_CHARS = 3_000_000

TITLE_KEYS = ("title", "jobTitle", "job_title", "positionTitle", "position")
ORG_KEYS = (
    "company",
    "companyName",
    "company_name",
    "hiringOrganization",
    "organization",
    "organizationName",
    "employer",
    "employerName",
)
ID_KEYS = ("id", "jobId", "job_id", "jobID", "reqId", "requisitionId", "postingId", "uuid")
URL_KEYS = ("url", "applyUrl", "apply_url", "jobUrl", "job_url", "link", "href", "canonicalUrl", "externalPath")
LOCATION_KEYS = ("location", "locations", "jobLocation", "locationName", "city", "formattedLocation")
DATE_KEYS = ("datePosted", "postedDate", "posted_at", "publishDate", "createdAt", "created")
SALARY_KEYS = ("salary", "compensation", "baseSalary", "pay", "salaryRange")
TYPE_KEYS = ("employmentType", "employment_type", "jobType", "schedule")
DESC_KEYS = ("description", "descriptionHtml", "summary", "snippet", "jobDescription")

# Where a JSON value may start inside a JS blob.
_START_RE = re.compile(
    r"""(?:
        (?:window|self|globalThis)\.[\w$.]+\s*=\s*     # window.__STATE__ =
      | \b(?:var|let|const)\s+[\w$]+\s*=\s*           # var x =
      | \bdata\s*:\s*                                  # AF_initDataCallback({data: ...
      | JSON\.parse\(\s*                               # JSON.parse('...') handled separately
    )(?=[\[{'"])""",
    re.VERBOSE,
)

_decoder = json.JSONDecoder()


def _script_payloads(soup: BeautifulSoup) -> Iterator[Any]:
    for script in soup.find_all("script"):
        stype = (script.get("type") or "").lower()
        if stype == "application/ld+json":
            continue
        raw = script.string or script.get_text() or ""
        if not raw.strip() or len(raw) > MAX_SCRIPT_CHARS:
            continue
        if stype in ("application/json", "text/json") or script.get("id") == "__NEXT_DATA__":
            try:
                yield json.loads(raw)
            except ValueError:
                log.debug("Embedded JSON script not decodable (id=%s)", script.get("id"))
            continue
        for m in _START_RE.finditer(raw):
            pos = m.end()
            if raw[pos] in "'\"":
                # JSON.parse('...') / data: '...' -> a JS string literal holding JSON
                try:
                    literal, _ = _decoder.raw_decode(raw, pos) if raw[pos] == '"' else (None, 0)
                except ValueError:
                    literal = None
                if isinstance(literal, str):
                    try:
                        yield json.loads(literal)
                    except ValueError:
                        pass
                continue
            try:
                value, _ = _decoder.raw_decode(raw, pos)
            except ValueError:
                continue
            yield value


def iter_listing_dicts(payload: Any) -> Iterator[dict[str, Any]]:
    """Depth- and size-bounded walk yielding dicts that look like listings."""
    stack: list[tuple[Any, int]] = [(payload, 0)]
    visited = 0
    while stack and visited < MAX_NODES:
        node, depth = stack.pop()
        visited += 1
        if isinstance(node, dict):
            if looks_like_listing(node):
                yield node
                continue
            if depth < MAX_DEPTH:
                stack.extend((v, depth + 1) for v in reversed(list(node.values())) if isinstance(v, (dict, list)))
        elif isinstance(node, list) and depth < MAX_DEPTH:
            stack.extend((v, depth + 1) for v in reversed(node) if isinstance(v, (dict, list)))


def _pick(node: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for k in keys:
        v = node.get(k)
        if v not in (None, "", [], {}):
            return v
    return None


def _flat(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, dict):
        for k in ("name", "displayName", "title", "text", "value", "formatted"):
            if isinstance(v.get(k), (str, int, float)):
                return collapse_ws(v[k])
        return ""
    if isinstance(v, list):
        return "; ".join(t for t in (_flat(x) for x in v[:10]) if t)
    if isinstance(v, bool):
        return ""
    return collapse_ws(v)


def looks_like_listing(node: dict[str, Any]) -> bool:
    title = _pick(node, TITLE_KEYS)
    if not isinstance(title, str) or not title.strip():
        return False
    return _flat(_pick(node, ORG_KEYS)) != ""


@register
class EmbeddedStateStrategy(Strategy):
    """Listing-shaped objects inside inline script payloads."""

    name = "embedded-state"
    priority = 20

    def applies(self, soup: BeautifulSoup, ctx: ExtractionContext) -> bool:
        return soup.find("script") is not None

    def extract(self, soup: BeautifulSoup, ctx: ExtractionContext) -> list[CandidateRecord]:
        records: list[CandidateRecord] = []
        seen: set[str] = set()
        for payload in _script_payloads(soup):
            for node in iter_listing_dicts(payload):
                rec = self._to_record(node, ctx)
                if rec.external_id in seen:
                    continue
                seen.add(rec.external_id)
                records.append(rec)
        return records

    def _to_record(self, node: dict[str, Any], ctx: ExtractionContext) -> CandidateRecord:
        title = _flat(_pick(node, TITLE_KEYS))
        company = _flat(_pick(node, ORG_KEYS)) or ctx.default_company
        location = _flat(_pick(node, LOCATION_KEYS))
        raw_url = _pick(node, URL_KEYS)
        url = ctx.absolute(raw_url if isinstance(raw_url, str) else None)
        raw_id = _pick(node, ID_KEYS)
        if isinstance(raw_id, (str, int)) and not isinstance(raw_id, bool) and str(raw_id).strip():
            external_id = collapse_ws(raw_id)
        else:
            external_id = stable_id(title, company, location, url or "")
        desc = _pick(node, DESC_KEYS)
        desc_s = desc if isinstance(desc, str) else _flat(desc)
        return CandidateRecord(
            external_id=external_id,
            title=title,
            company=company,
            location=location,
            date_posted=_flat(_pick(node, DATE_KEYS)) or None,
            salary=_flat(_pick(node, SALARY_KEYS)) or None,
            employment_type=_flat(_pick(node, TYPE_KEYS)) or None,
            description_text="" if "<" in desc_s else desc_s,
            description_html=desc_s if "<" in desc_s else None,
            source_url=url,
            strategy=self.name,
            provenance=ctx.provenance(),
        )
