from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

# Extra detail-page fields carried through to the output row when present.
EXTRA_FIELDS = (
    "valid_through",
    "responsibilities",
    "qualifications",
    "education_requirements",
    "experience_requirements",
    "skills_required",
    "industry",
    "occupational_category",
    "work_hours",
)

# Core fields a detail page may override on the seed record.
MERGEABLE_FIELDS = (
    "title",
    "company",
    "location",
    "date_posted",
    "salary",
    "employment_type",
    "description_text",
    "description_html",
)

SOURCE_LABEL = "google.com/careers"


class TaskKind(str, Enum):
    LIST = "list"
    DETAIL = "detail"


@dataclass(frozen=True)
class Provenance:
    """Where and under which search a record was found."""

    keyword: str | None
    location: str | None
    date_filter: str
    fetched_at: str
    source_url: str


@dataclass(frozen=True)
class CandidateRecord:
    """
    A single listing as extracted from one page (pre-dedupe, pre-quota).
    Immutable; detail-page data is folded in via merged().
    """

    external_id: str
    title: str
    company: str = ""
    location: str = ""
    date_posted: str | None = None
    salary: str | None = None
    employment_type: str | None = None
    description_text: str = ""
    description_html: str | None = None
    source_url: str | None = None
    strategy: str = ""
    provenance: Provenance | None = None
    extras: Mapping[str, Any] = field(default_factory=dict)

    def merged(self, detail: Mapping[str, Any]) -> CandidateRecord:
        """
        Return a copy with detail-page fields applied.
        A detail value wins only when present and non-empty.
        """
        changes: dict[str, Any] = {}
        for name in MERGEABLE_FIELDS:
            val = detail.get(name)
            if _present(val):
                changes[name] = val
        extras = dict(self.extras)
        for name in EXTRA_FIELDS:
            val = detail.get(name)
            if _present(val):
                extras[name] = val
        return replace(self, extras=extras, **changes)

    def with_provenance(self, provenance: Provenance) -> CandidateRecord:
        return replace(self, provenance=provenance)

    def to_output(self) -> dict[str, Any]:
        """Dataset row (one per emitted listing)."""
        prov = self.provenance
        row: dict[str, Any] = {
            "id": self.external_id,
            "title": self.title,
            "company": self.company or None,
            "location": self.location or "Not specified",
            "description_text": (self.description_text or "")[:500],
            "description_full": self.description_text or "",
            "description_html": self.description_html,
            "employment_type": self.employment_type or "Not specified",
            "date_posted": self.date_posted,
            "url": self.source_url,
            "salary": self.salary,
        }
        for name in EXTRA_FIELDS:
            row[name] = self.extras.get(name)
        row.update({
            "source": SOURCE_LABEL,
            "_extractedFrom": self.strategy,
            "_fetchedAt": prov.fetched_at if prov else None,
            "_scrapedUrl": prov.source_url if prov else None,
            "_searchKeyword": prov.keyword if prov else None,
            "_searchLocation": prov.location if prov else None,
            "_postedDateFilter": prov.date_filter if prov else None,
        })
        return row


@dataclass(frozen=True)
class FetchTask:
    """
    One unit of frontier work. Never mutated; retries are fresh tasks.
    - seed: the partial record a DETAIL fetch will complete (None for LIST)
    - attempt: 0 on first dispatch, +1 per retry
    """

    url: str
    kind: TaskKind = TaskKind.LIST
    page_offset: int = 1
    seed: CandidateRecord | None = None
    attempt: int = 0

    @property
    def key(self) -> tuple[str, str]:
        return (self.kind.value, self.url)

    def retry(self) -> FetchTask:
        return replace(self, attempt=self.attempt + 1)


@dataclass(frozen=True)
class FetchResponse:
    status: int
    final_url: str
    body: str
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass
class RunSummary:
    """Counters reported when a run terminates (never persisted)."""

    results_wanted: int | None
    max_pages: int
    emitted: int = 0
    pages_visited: int = 0
    unique_ids: int = 0
    duplicates: int = 0
    detail_fetches: int = 0
    failed_tasks: int = 0
    challenges: int = 0
    empty_pages: int = 0
    stop_reason: str = ""
    duration_s: float = 0.0

    @property
    def quota_reached(self) -> bool:
        return self.results_wanted is not None and self.emitted >= self.results_wanted

    @property
    def page_ceiling_reached(self) -> bool:
        return self.pages_visited >= self.max_pages

    def as_dict(self) -> dict[str, Any]:
        return {
            "results_wanted": self.results_wanted,
            "emitted": self.emitted,
            "pages_visited": self.pages_visited,
            "max_pages": self.max_pages,
            "unique_ids": self.unique_ids,
            "duplicates": self.duplicates,
            "detail_fetches": self.detail_fetches,
            "failed_tasks": self.failed_tasks,
            "challenges": self.challenges,
            "empty_pages": self.empty_pages,
            "quota_reached": self.quota_reached,
            "page_ceiling_reached": self.page_ceiling_reached,
            "stop_reason": self.stop_reason,
            "duration_s": round(self.duration_s, 3),
        }


def _present(val: Any) -> bool:
    if val is None:
        return False
    if isinstance(val, str):
        return bool(val.strip())
    if isinstance(val, (list, tuple, dict)):
        return bool(val)
    return True
