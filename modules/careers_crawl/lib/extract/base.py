from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from ..models import CandidateRecord, Provenance
from ..utils import collapse_ws

T = TypeVar("T")


@dataclass(frozen=True)
class ExtractionContext:
    """Per-page inputs every strategy may need."""

    page_url: str
    fetched_at: str
    keyword: str = ""
    location: str = ""
    date_filter: str = "anytime"
    default_company: str = ""

    def provenance(self) -> Provenance:
        return Provenance(
            keyword=self.keyword or None,
            location=self.location or None,
            date_filter=self.date_filter,
            fetched_at=self.fetched_at,
            source_url=self.page_url,
        )

    def absolute(self, href: str | None) -> str | None:
        href = (href or "").strip()
        if not href or href.startswith(("javascript:", "mailto:", "#")):
            return None
        return href if href.startswith(("http://", "https://")) else urljoin(self.page_url, href)


class Strategy(ABC):
    """
    One extraction method in the fallback chain.

    Subclasses set `name` (stable label written to `_extractedFrom`) and
    `priority` (lower runs first), optionally override applies() as a cheap
    predicate, and implement extract().
    """

    name: str = ""
    priority: int = 100
    # Whether candidates from this strategy need a DETAIL fetch to be complete.
    needs_detail: bool = True

    def applies(self, soup: BeautifulSoup, ctx: ExtractionContext) -> bool:
        return True

    @abstractmethod
    def extract(self, soup: BeautifulSoup, ctx: ExtractionContext) -> list[CandidateRecord]:
        raise NotImplementedError


def first_successful(
    steps: Iterable[tuple[str, Callable[..., bool], Callable[..., Sequence[T]]]],
    *args: Any,
) -> tuple[str | None, list[T]]:
    """
    Evaluate (name, predicate, extractor) triples in order and return the first
    non-empty result as (name, items). (None, []) when nothing produced anything.
    """
    for name, predicate, extractor in steps:
        if not predicate(*args):
            continue
        items = list(extractor(*args))
        if items:
            return name, items
    return None, []


# ---- field-level selector chains -------------------------------------------


def first_text(el: Tag | BeautifulSoup, selectors: Sequence[str]) -> str:
    """Text of the first selector match with non-empty text."""
    for sel in selectors:
        for found in el.select(sel):
            txt = collapse_ws(found.get_text(" ", strip=True))
            if txt:
                return txt
    return ""


def first_attr(el: Tag | BeautifulSoup, selectors: Sequence[str], attrs: Sequence[str]) -> str:
    """First non-empty attribute (tried in `attrs` order) of the first matching element."""
    for sel in selectors:
        for found in el.select(sel):
            for attr in attrs:
                val = found.get(attr)
                if isinstance(val, list):
                    val = " ".join(val)
                if val and str(val).strip():
                    return str(val).strip()
    return ""
