"""
Ordered strategy chain for one fetched listing page.

The first strategy that yields at least one sanitized candidate wins; later
strategies are never merged in.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from bs4 import BeautifulSoup

from ..models import CandidateRecord
from . import registry
from .base import ExtractionContext, Strategy, first_successful
from .sanitize import sanitize

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractionResult:
    strategy: str | None
    candidates: list[CandidateRecord] = field(default_factory=list)
    needs_detail: bool = False

    @property
    def empty(self) -> bool:
        return not self.candidates


class ExtractionPipeline:
    def __init__(self, strategies: Sequence[Strategy] | None = None) -> None:
        if strategies is None:
            strategies = [cls() for cls in registry.ordered()]
        self.strategies = list(strategies)
        self._by_name = {s.name: s for s in self.strategies}

    @property
    def names(self) -> list[str]:
        return [s.name for s in self.strategies]

    def run(self, soup: BeautifulSoup, ctx: ExtractionContext) -> ExtractionResult:
        steps = [(s.name, s.applies, self._sanitized(s)) for s in self.strategies]
        name, candidates = first_successful(steps, soup, ctx)
        if name is None:
            log.debug("No strategy produced candidates for %s", ctx.page_url)
            return ExtractionResult(strategy=None)
        log.debug("Strategy %s produced %d candidates for %s", name, len(candidates), ctx.page_url)
        return ExtractionResult(
            strategy=name,
            candidates=candidates,
            needs_detail=self._by_name[name].needs_detail,
        )

    @staticmethod
    def _sanitized(strategy: Strategy):
        def run(soup: BeautifulSoup, ctx: ExtractionContext) -> list[CandidateRecord]:
            out: list[CandidateRecord] = []
            seen: set[str] = set()
            for raw in strategy.extract(soup, ctx):
                rec = sanitize(raw)
                if rec is None or rec.external_id in seen:
                    continue
                seen.add(rec.external_id)
                out.append(rec)
            return out

        return run
