"""
Anti-automation page detection.

A single matched marker classifies the page as blocked. Blocked pages never
reach extraction.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Comment


class Verdict(str, Enum):
    OK = "ok"
    CHALLENGE = "challenge"
    REDIRECT_TO_GATE = "redirect_to_gate"


@dataclass(frozen=True)
class Detection:
    verdict: Verdict
    reason: str = ""

    @property
    def blocked(self) -> bool:
        return self.verdict is not Verdict.OK


OK = Detection(Verdict.OK)

# Lowercased phrases searched in the visible body text.
BODY_MARKERS = (
    "unusual traffic",
    "captcha",
    "not a robot",
    "are you a robot",
    "automated queries",
    "automated requests",
    "verify you are human",
    "verify that you are human",
    "security verification",
    "additional verification required",
    "before you continue to google",
    "checking your browser",
    "enable javascript and cookies to continue",
    "request blocked",
    "access denied",
)

TITLE_MARKERS = (
    "just a moment...",
    "attention required!",
    "sorry...",
    "before you continue",
    "access denied",
)

SELECTOR_MARKERS = (
    "form#captcha-form",
    "#recaptcha",
    ".g-recaptcha",
    "iframe[src*='recaptcha']",
    "iframe[src*='hcaptcha.com']",
    "iframe[src*='challenges.cloudflare.com']",
    "[data-sitekey]",
    "#cf-challenge-running",
    "form#challenge-form",
    ".cf-turnstile",
)

# Substrings of (host + path + query) that mark a verification / consent gate.
GATE_MARKERS = (
    "google.com/sorry/",
    "consent.google.",
    "/recaptcha/",
    "__cf_chl",
    "/cdn-cgi/challenge",
    "challenges.cloudflare.com",
    "checkpoint/challenge",
    "/authwall",
    "accounts.google.com/servicelogin",
)


_INVISIBLE = frozenset({"script", "style", "noscript", "template"})


def visible_text(root) -> str:
    """Whitespace-collapsed text of `root`, ignoring script/style payloads."""
    parts = [
        s
        for s in root.find_all(string=True)
        if not isinstance(s, Comment) and s.parent is not None and s.parent.name not in _INVISIBLE
    ]
    return " ".join(" ".join(parts).split())


def _gate_marker(url: str | None) -> str | None:
    if not url:
        return None
    p = urlsplit(url)
    haystack = f"{p.netloc}{p.path}?{p.query}".lower()
    for marker in GATE_MARKERS:
        if marker in haystack:
            return marker
    return None


def detect(
    document: str | BeautifulSoup,
    final_url: str | None = None,
    requested_url: str | None = None,
) -> Detection:
    """
    Classify a fetched page as OK, CHALLENGE or REDIRECT_TO_GATE.

    document: raw body or an already parsed soup
    final_url: URL after redirects
    requested_url: URL originally asked for (a gate is only a *redirect* if it differs)
    """
    marker = _gate_marker(final_url)
    if marker:
        if requested_url and _gate_marker(requested_url) != marker:
            return Detection(Verdict.REDIRECT_TO_GATE, f"url:{marker}")
        return Detection(Verdict.CHALLENGE, f"url:{marker}")

    soup = document if isinstance(document, BeautifulSoup) else BeautifulSoup(document or "", "html.parser")

    title_el = soup.find("title")
    title = (title_el.get_text(" ", strip=True) if title_el else "").lower()
    for marker in TITLE_MARKERS:
        if marker in title:
            return Detection(Verdict.CHALLENGE, f"title:{marker}")

    for selector in SELECTOR_MARKERS:
        if soup.select_one(selector) is not None:
            return Detection(Verdict.CHALLENGE, f"selector:{selector}")

    text = visible_text(soup.body or soup).lower()
    for marker in BODY_MARKERS:
        if marker in text:
            return Detection(Verdict.CHALLENGE, f"body:{marker}")

    return OK
