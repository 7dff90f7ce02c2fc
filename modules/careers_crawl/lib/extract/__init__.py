# careers_crawl/extract/__init__.py
from __future__ import annotations

# Importing the strategy modules registers them.
from . import dom, embedded, freetext, structured  # noqa: F401
from .base import ExtractionContext, Strategy, first_successful
from .detail import extract_detail
from .pipeline import ExtractionPipeline, ExtractionResult
from .sanitize import sanitize

__all__ = [
    "ExtractionContext",
    "ExtractionPipeline",
    "ExtractionResult",
    "Strategy",
    "extract_detail",
    "first_successful",
    "sanitize",
]
