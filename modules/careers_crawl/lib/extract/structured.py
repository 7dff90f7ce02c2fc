# careers_crawl/extract/structured.py
"""
schema.org JobPosting objects embedded as JSON-LD.

Handles the shapes seen in the wild:
  - a single object                     {"@type": "JobPosting", ...}
  - a top-level array                   [{...}, {...}]
  - a graph container                   {"@graph": [{...}, ...]}
  - multi-typed nodes                   {"@type": ["JobPosting", "Thing"], ...}
  - an ItemList wrapping postings       {"itemListElement": [{"item": {...}}]}
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Any

from bs4 import BeautifulSoup

from ..models import EXTRA_FIELDS, CandidateRecord
from ..utils import collapse_ws, stable_id
from .base import ExtractionContext, Strategy
from .registry import register

log = logging.getLogger(__name__)


def iter_json_ld(soup: BeautifulSoup) -> Iterator[Any]:
    """Decoded payload of every JSON-LD script; invalid JSON is skipped."""
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text() or ""
        raw = raw.strip()
        if not raw:
            continue
        try:
            yield json.loads(raw)
        except ValueError as e:
            log.debug("Failed to parse JSON-LD: %s", e)


def _is_job_posting(node: dict[str, Any]) -> bool:
    t = node.get("@type")
    if isinstance(t, list):
        return any(str(x).lower() == "jobposting" for x in t)
    return str(t or "").lower() == "jobposting"


def job_postings(soup: BeautifulSoup) -> list[dict[str, Any]]:
    """All JobPosting nodes in document order."""
    out: list[dict[str, Any]] = []
    for data in iter_json_ld(soup):
        queue = list(data) if isinstance(data, list) else [data]
        while queue:
            node = queue.pop(0)
            if not isinstance(node, dict):
                continue
            if _is_job_posting(node):
                out.append(node)
                continue
            graph = node.get("@graph")
            if isinstance(graph, list):
                queue.extend(graph)
            items = node.get("itemListElement")
            if isinstance(items, list):
                for it in items:
                    if isinstance(it, dict) and isinstance(it.get("item"), dict):
                        queue.append(it["item"])
                    else:
                        queue.append(it)
    return out


# ---- field helpers ---------------------------------------------------------


def _text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, dict):
        return collapse_ws(v.get("name") or v.get("value") or v.get("@value") or "")
    if isinstance(v, list):
        return ", ".join(t for t in (_text(x) for x in v) if t)
    return collapse_ws(v)


def _identifier(node: dict[str, Any]) -> str:
    ident = node.get("identifier")
    if isinstance(ident, dict):
        return collapse_ws(ident.get("value") or ident.get("name") or "")
    if isinstance(ident, (str, int)):
        return collapse_ws(ident)
    if isinstance(ident, list) and ident:
        return _identifier({"identifier": ident[0]})
    return ""


def _address_text(addr: Any) -> str:
    if isinstance(addr, str):
        return collapse_ws(addr)
    if not isinstance(addr, dict):
        return ""
    city = _text(addr.get("addressLocality"))
    region = _text(addr.get("addressRegion"))
    country = _text(addr.get("addressCountry"))
    return ", ".join(p for p in (city, region, country) if p)


def format_location(node: dict[str, Any]) -> str:
    places = node.get("jobLocation")
    if isinstance(places, dict):
        places = [places]
    names: list[str] = []
    if isinstance(places, list):
        for place in places:
            if isinstance(place, dict):
                txt = _address_text(place.get("address")) or _text(place.get("name"))
            else:
                txt = _text(place)
            if txt and txt not in names:
                names.append(txt)
    if str(node.get("jobLocationType") or "").upper() == "TELECOMMUTE" and "Remote" not in names:
        names.append("Remote")
    return "; ".join(names)


def _num(v: Any) -> str:
    if isinstance(v, float) and v.is_integer():
        v = int(v)
    if isinstance(v, (int, float)):
        return f"{v:,}"
    return collapse_ws(v)


def format_salary(base_salary: Any) -> str | None:
    """baseSalary (MonetaryAmount) -> 'USD 120,000-150,000 per YEAR'."""
    if base_salary is None:
        return None
    if isinstance(base_salary, (str, int, float)):
        return _num(base_salary) or None
    if not isinstance(base_salary, dict):
        return None
    currency = _text(base_salary.get("currency"))
    value = base_salary.get("value")
    unit = ""
    if isinstance(value, dict):
        unit = _text(value.get("unitText"))
        lo, hi, exact = value.get("minValue"), value.get("maxValue"), value.get("value")
        if lo is not None and hi is not None and lo != hi:
            amount = f"{_num(lo)}-{_num(hi)}"
        else:
            pick = next((x for x in (exact, lo, hi) if x is not None), None)
            amount = _num(pick) if pick is not None else ""
    else:
        amount = _num(value) if value is not None else ""
    if not amount:
        return None
    out = f"{currency} {amount}".strip()
    if unit:
        out = f"{out} per {unit}"
    return out


def _education(v: Any) -> str:
    if isinstance(v, dict):
        return _text(v.get("credentialCategory")) or _text(v)
    return _text(v)


def _experience(v: Any) -> str:
    if isinstance(v, dict):
        months = v.get("monthsOfExperience")
        if months is not None:
            return f"{_num(months)} months"
        return _text(v.get("description")) or _text(v)
    return _text(v)


def posting_fields(node: dict[str, Any]) -> dict[str, Any]:
    """Flat field dict for one JobPosting node (shared with detail pages)."""
    description = node.get("description")
    description = description if isinstance(description, str) else _text(description)
    employment = node.get("employmentType")
    if isinstance(employment, list):
        employment = ", ".join(collapse_ws(e) for e in employment if e)
    org = node.get("hiringOrganization")
    url = node.get("url") or node.get("sameAs")
    if isinstance(url, dict):
        url = url.get("@id") or url.get("url")
    return {
        "external_id": _identifier(node),
        "title": _text(node.get("title") or node.get("name")),
        "company": _text(org),
        "location": format_location(node),
        "date_posted": _text(node.get("datePosted")) or None,
        "salary": format_salary(node.get("baseSalary") or node.get("estimatedSalary")),
        "employment_type": collapse_ws(employment) or None,
        "description_html": description or None,
        "url": collapse_ws(url) if url else None,
        "valid_through": _text(node.get("validThrough")) or None,
        "responsibilities": _text(node.get("responsibilities")) or None,
        "qualifications": _text(node.get("qualifications")) or None,
        "education_requirements": _education(node.get("educationRequirements")) or None,
        "experience_requirements": _experience(node.get("experienceRequirements")) or None,
        "skills_required": _text(node.get("skills")) or None,
        "industry": _text(node.get("industry")) or None,
        "occupational_category": _text(node.get("occupationalCategory")) or None,
        "work_hours": _text(node.get("workHours")) or None,
    }


@register
class StructuredDataStrategy(Strategy):
    """JSON-LD JobPosting objects; complete enough to skip the detail fetch."""

    name = "json-ld"
    priority = 10
    needs_detail = False

    def applies(self, soup: BeautifulSoup, ctx: ExtractionContext) -> bool:
        return soup.find("script", attrs={"type": "application/ld+json"}) is not None

    def extract(self, soup: BeautifulSoup, ctx: ExtractionContext) -> list[CandidateRecord]:
        records: list[CandidateRecord] = []
        for node in job_postings(soup):
            f = posting_fields(node)
            if not f["title"]:
                continue
            url = ctx.absolute(f["url"]) or ctx.page_url
            company = f["company"] or ctx.default_company
            external_id = f["external_id"] or stable_id(f["title"], company, f["location"], url)
            records.append(
                CandidateRecord(
                    external_id=external_id,
                    title=f["title"],
                    company=company,
                    location=f["location"],
                    date_posted=f["date_posted"],
                    salary=f["salary"],
                    employment_type=f["employment_type"],
                    description_text="",
                    description_html=f["description_html"],
                    source_url=url,
                    strategy=self.name,
                    provenance=ctx.provenance(),
                    extras={k: f[k] for k in EXTRA_FIELDS if f[k]},
                )
            )
        return records
