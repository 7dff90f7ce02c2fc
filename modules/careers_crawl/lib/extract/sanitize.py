from __future__ import annotations

import re
from dataclasses import replace

from bs4 import BeautifulSoup

from ..models import CandidateRecord
from ..utils import collapse_ws

MIN_TITLE_LENGTH = 3
MAX_TITLE_LENGTH = 200

# Navigation / UI strings that DOM and text strategies tend to pick up as titles.
BOILERPLATE_TITLES = frozenset({
    "search",
    "search jobs",
    "search results",
    "next",
    "next page",
    "previous",
    "previous page",
    "prev",
    "more",
    "load more",
    "show more",
    "see more",
    "view all",
    "jobs",
    "careers",
    "filters",
    "filter",
    "sort by",
    "home",
    "menu",
    "sign in",
    "log in",
    "apply",
    "apply now",
    "share",
    "save",
    "saved jobs",
    "skip to main content",
    "back to top",
    "not specified",
    "untitled",
})

RELATIVE_TIME_RE = re.compile(
    r"""^(?:
        (?:posted\s+|active\s+|updated\s+)?
        (?:\d+\+?|an?|one|few)\s*
        (?:s|sec|secs|second|seconds|m|min|mins|minute|minutes|h|hr|hrs|hour|hours|
           d|day|days|w|wk|wks|week|weeks|mo|month|months|y|yr|yrs|year|years)
        \s+ago
      | today | yesterday | just\s+now | new | recently
      | posted\s+(?:today|yesterday)
    )\.?$""",
    re.IGNORECASE | re.VERBOSE,
)

_TEXT_FIELDS = ("title", "company", "location", "date_posted", "salary", "employment_type")


def strip_markup(html: str | None) -> str:
    """Text variant of an HTML fragment (block boundaries become spaces)."""
    if not html:
        return ""
    if "<" not in html:
        return collapse_ws(html)
    return collapse_ws(BeautifulSoup(html, "html.parser").get_text(" ", strip=True))


def is_boilerplate_title(title: str) -> bool:
    t = collapse_ws(title).lower().strip(" .:›»>|-")
    return t in BOILERPLATE_TITLES or bool(RELATIVE_TIME_RE.match(t))


def is_emittable(rec: CandidateRecord) -> bool:
    """Minimal validity: a real title of sensible length and an id."""
    title = rec.title or ""
    return bool(rec.external_id) and MIN_TITLE_LENGTH <= len(title) <= MAX_TITLE_LENGTH


def sanitize(rec: CandidateRecord) -> CandidateRecord | None:
    """
    Normalize whitespace, derive the text description, and reject candidates
    whose title is boilerplate or a bare relative-time phrase.
    Returns None for rejected candidates.
    """
    changes: dict[str, object] = {}
    for name in _TEXT_FIELDS:
        val = getattr(rec, name)
        if isinstance(val, str):
            cleaned = collapse_ws(val)
            changes[name] = cleaned if (cleaned or name in ("title", "company", "location")) else None

    html = rec.description_html
    text = rec.description_text
    if text and "<" in text and ">" in text:
        html = html or text
        text = strip_markup(text)
    elif not text and html:
        text = strip_markup(html)
    if html and "<" not in html:
        html = None
    changes["description_text"] = collapse_ws(text)
    changes["description_html"] = html.strip() if html else None

    out = replace(rec, **changes)
    if is_boilerplate_title(out.title):
        return None
    if not is_emittable(out):
        return None
    return out
