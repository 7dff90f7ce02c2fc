# careers_crawl/extract/freetext.py
"""
Last-resort regex pass over the page's visible text.

Precision is best-effort: patterns only look for "<title> at <company> • <location>"
and "<title> - <company> - <location>" lines, capped at MAX_MATCHES.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup, Comment

from ..models import CandidateRecord
from ..utils import collapse_ws, stable_id
from .base import ExtractionContext, Strategy
from .registry import register

MAX_MATCHES = 10

_SKIP = frozenset({"script", "style", "noscript", "template", "head", "title"})

PATTERNS = (
    re.compile(
        r"^(?P<title>[^\n•·|]{3,120}?)\s+at\s+(?P<company>[^\n•·|]{2,80}?)\s*[•·|]\s*(?P<location>[^\n•·|]{2,80}?)$",
        re.MULTILINE,
    ),
    re.compile(
        r"^(?P<title>[^\n]{3,120}?)\s+[-–—]\s+(?P<company>[^\n\-–—]{2,80}?)\s+[-–—]\s+(?P<location>[^\n\-–—]{2,80}?)$",
        re.MULTILINE,
    ),
)


def text_lines(soup: BeautifulSoup) -> str:
    """Visible text, one text node per line."""
    lines = []
    for s in soup.find_all(string=True):
        if isinstance(s, Comment) or s.parent is None or s.parent.name in _SKIP:
            continue
        line = collapse_ws(s)
        if line:
            lines.append(line)
    return "\n".join(lines)


@register
class FreeTextStrategy(Strategy):
    name = "free-text"
    priority = 40
    needs_detail = False

    def extract(self, soup: BeautifulSoup, ctx: ExtractionContext) -> list[CandidateRecord]:
        text = text_lines(soup)
        records: list[CandidateRecord] = []
        seen: set[str] = set()
        for pattern in PATTERNS:
            for m in pattern.finditer(text):
                title = collapse_ws(m.group("title"))
                company = collapse_ws(m.group("company"))
                location = collapse_ws(m.group("location"))
                external_id = stable_id(title, company, location)
                if external_id in seen:
                    continue
                seen.add(external_id)
                records.append(
                    CandidateRecord(
                        external_id=external_id,
                        title=title,
                        company=company,
                        location=location,
                        source_url=ctx.page_url,
                        strategy=self.name,
                        provenance=ctx.provenance(),
                    )
                )
                if len(records) >= MAX_MATCHES:
                    return records
        return records
