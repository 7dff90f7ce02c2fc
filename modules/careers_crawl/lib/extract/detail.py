"""
Detail-page extraction: the fields a DETAIL fetch contributes to its seed record.

JSON-LD wins when present; otherwise a small selector fallback fills the
description, salary and qualifications.
"""

from __future__ import annotations

import logging
from typing import Any

from bs4 import BeautifulSoup

from .base import ExtractionContext, first_text
from .sanitize import strip_markup
from .structured import job_postings, posting_fields

log = logging.getLogger(__name__)

MAX_DESCRIPTION = 5000

DESCRIPTION_SELECTORS = ('[class*="description"]', '[role="article"]', "main", ".content")
SALARY_SELECTORS = ('[class*="salary"]', '[class*="compensation"]', '[class*="pay"]')
QUALIFICATION_SELECTORS = ('[class*="qualification"]', '[class*="requirement"]')
RESPONSIBILITY_SELECTORS = ('[class*="responsibilit"]', '[class*="duties"]')


def extract_detail(soup: BeautifulSoup, ctx: ExtractionContext) -> dict[str, Any]:
    """
    Field dict for CandidateRecord.merged(). Keys are left out (or None) when
    the page has nothing for them, so the seed's list-page values survive.
    """
    postings = job_postings(soup)
    if postings:
        f = posting_fields(postings[0])
        f.pop("external_id", None)
        f.pop("url", None)
        f["description_text"] = strip_markup(f.get("description_html"))
        log.debug("Detail fields from JSON-LD for %s", ctx.page_url)
        return f

    description = first_text(soup, DESCRIPTION_SELECTORS)[:MAX_DESCRIPTION]
    return {
        "description_text": description or None,
        "salary": first_text(soup, SALARY_SELECTORS) or None,
        "qualifications": first_text(soup, QUALIFICATION_SELECTORS) or None,
        "responsibilities": first_text(soup, RESPONSIBILITY_SELECTORS) or None,
    }
