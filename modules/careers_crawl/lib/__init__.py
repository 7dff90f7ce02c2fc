# modules/careers_crawl/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .config import CrawlSettings, DateFilter, InvalidConfiguration
from .engine import Crawler, run_once
from .identity import PoolExhausted
from .models import CandidateRecord, FetchTask, RunSummary, TaskKind

__all__ = [
    "CandidateRecord",
    "CrawlSettings",
    "Crawler",
    "DateFilter",
    "FetchTask",
    "InvalidConfiguration",
    "PoolExhausted",
    "RunSummary",
    "TaskKind",
    "run_once",
]
