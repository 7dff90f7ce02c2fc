from __future__ import annotations

import sys
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .utils import truthy

DEFAULT_BASE_URL = "https://www.google.com/about/careers/applications/jobs/results"

# Sentinel for "no result quota"
UNBOUNDED = sys.maxsize


# -----------------------------
# Exceptions
# -----------------------------
class InvalidConfiguration(ValueError):
    """Raised when provided kwargs/env cannot form a valid CrawlSettings."""


# -----------------------------
# Models
# -----------------------------
class DateFilter(str, Enum):
    ANYTIME = "anytime"
    LAST_24H = "24h"
    LAST_7D = "7d"
    LAST_30D = "30d"

    @property
    def posted_days(self) -> str | None:
        """Value of the site's `posted_date` query parameter (None = no filter)."""
        return {
            DateFilter.ANYTIME: None,
            DateFilter.LAST_24H: "1",
            DateFilter.LAST_7D: "7",
            DateFilter.LAST_30D: "30",
        }[self]

    @classmethod
    def parse(cls, raw: Any) -> DateFilter:
        if isinstance(raw, DateFilter):
            return raw
        s = str(raw or "anytime").strip().lower()
        s = _DATE_FILTER_ALIASES.get(s, s)
        try:
            return cls(s)
        except ValueError as e:
            allowed = ", ".join(m.value for m in cls)
            raise InvalidConfiguration(f"'date_filter' must be one of: {allowed} (got {raw!r})") from e


_DATE_FILTER_ALIASES = {
    "": "anytime",
    "any": "anytime",
    "today": "24h",
    "1d": "24h",
    "last24hours": "24h",
    "week": "7d",
    "last7days": "7d",
    "month": "30d",
    "last30days": "30d",
}


@dataclass(frozen=True)
class CrawlSettings:
    """
    Immutable configuration for one crawl run.

    Either `keyword` or at least one start URL is required. When no start URL is
    given, the seed is the search URL built from keyword/location/date_filter.
    """

    # What to search
    keyword: str = ""
    location: str = ""
    date_filter: DateFilter = DateFilter.ANYTIME
    start_urls: tuple[str, ...] = ()
    base_url: str = DEFAULT_BASE_URL

    # Limits
    results_wanted: int = 100
    max_pages: int = 20
    max_retries: int = 3

    # Politeness
    request_delay: float = 2.0
    delay_jitter: float = 2.0
    max_requests_per_minute: int = 20
    max_concurrency: int = 3
    timeout: float = 30.0

    # Identities
    identity_pool_size: int = 5
    identity_max_uses: int = 50
    identity_max_errors: float = 3.0
    identity_budget: int = 0  # 0 -> 10 x pool size
    proxy_urls: tuple[str, ...] = ()

    # Pagination
    page_param: str = "page"
    page_step: int = 1
    max_offset: int = 200

    # Extraction / output
    collect_details: bool = True
    default_company: str = "Google"
    sqlite_path: str = "/app/local/state/careers_crawl.db"
    dataset_path: str | None = None
    skip_network: bool = False

    # ------------- convenience -------------
    @property
    def unbounded(self) -> bool:
        return self.results_wanted >= UNBOUNDED

    @property
    def mint_budget(self) -> int:
        return self.identity_budget or self.identity_pool_size * 10

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> CrawlSettings:
        """
        Build CrawlSettings from kwargs with validation.

        Accepts snake_case keys plus the camelCase names used by the hosted
        actor input (startUrl, maxRequestRetries, requestDelay [ms],
        collectDetails, proxyConfiguration.proxyUrls, posted_date).
        """
        kw = dict(kwargs or {})

        start_urls: list[str] = []
        for key in ("start_urls", "startUrls"):
            start_urls.extend(_as_url_list(kw.get(key)))
        for key in ("start_url", "startUrl"):
            u = str(kw.get(key) or "").strip()
            if u:
                start_urls.insert(0, u)

        if "request_delay" in kw and kw["request_delay"] is not None:
            request_delay = _to_float(kw["request_delay"], "request_delay")
        elif kw.get("requestDelay") is not None:
            request_delay = _to_float(kw["requestDelay"], "requestDelay") / 1000.0
        else:
            request_delay = 2.0

        proxy_urls = _as_url_list(kw.get("proxy_urls"))
        proxy_cfg = kw.get("proxyConfiguration")
        if isinstance(proxy_cfg, Mapping):
            proxy_urls.extend(_as_url_list(proxy_cfg.get("proxyUrls")))

        settings = cls(
            keyword=str(kw.get("keyword") or "").strip(),
            location=str(kw.get("location") or "").strip(),
            date_filter=DateFilter.parse(kw.get("date_filter", kw.get("posted_date"))),
            start_urls=tuple(dict.fromkeys(start_urls)),
            base_url=str(kw.get("base_url") or DEFAULT_BASE_URL).strip(),
            results_wanted=_parse_quota(kw.get("results_wanted", kw.get("results", 100))),
            max_pages=_to_int(_first(kw, "max_pages", "maxPages", default=20), "max_pages"),
            max_retries=_to_int(
                _first(kw, "max_retries", "maxRequestRetries", default=3), "max_retries", allow_zero=True
            ),
            request_delay=request_delay,
            delay_jitter=_to_float(_first(kw, "delay_jitter", default=2.0), "delay_jitter"),
            max_requests_per_minute=_to_int(
                _first(kw, "max_requests_per_minute", "maxRequestsPerMinute", default=20),
                "max_requests_per_minute",
            ),
            max_concurrency=_to_int(_first(kw, "max_concurrency", "maxConcurrency", default=3), "max_concurrency"),
            timeout=_to_float(_first(kw, "timeout", default=30.0), "timeout"),
            identity_pool_size=_to_int(_first(kw, "identity_pool_size", default=5), "identity_pool_size"),
            identity_max_uses=_to_int(_first(kw, "identity_max_uses", default=50), "identity_max_uses"),
            identity_max_errors=_to_float(_first(kw, "identity_max_errors", default=3.0), "identity_max_errors"),
            identity_budget=_to_int(_first(kw, "identity_budget", default=0), "identity_budget", allow_zero=True),
            proxy_urls=tuple(dict.fromkeys(proxy_urls)),
            page_param=str(kw.get("page_param") or "page").strip(),
            page_step=_to_int(_first(kw, "page_step", default=1), "page_step"),
            max_offset=_to_int(_first(kw, "max_offset", default=200), "max_offset"),
            collect_details=truthy(_first(kw, "collect_details", "collectDetails", default=True)),
            default_company=str(_first(kw, "default_company", default="Google")).strip(),
            sqlite_path=str(kw.get("sqlite_path") or "/app/local/state/careers_crawl.db"),
            dataset_path=(str(kw.get("dataset_path")).strip() or None) if kw.get("dataset_path") else None,
            skip_network=truthy(kw.get("skip_network")),
        )
        _validate_settings(settings)
        return settings

    def describe(self) -> dict[str, Any]:
        """Compact, log-friendly view of the settings (no proxy credentials)."""
        return {
            "keyword": self.keyword or None,
            "location": self.location or None,
            "date_filter": self.date_filter.value,
            "start_urls": list(self.start_urls),
            "results_wanted": None if self.unbounded else self.results_wanted,
            "max_pages": self.max_pages,
            "max_retries": self.max_retries,
            "request_delay": self.request_delay,
            "max_concurrency": self.max_concurrency,
            "identity_pool_size": self.identity_pool_size,
            "using_proxy": bool(self.proxy_urls),
            "collect_details": self.collect_details,
        }


# -----------------------------
# Helpers
# -----------------------------
def _first(kw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for k in keys:
        if kw.get(k) is not None:
            return kw[k]
    return default


def _as_url_list(value: Any) -> list[str]:
    """Accept a string, a list of strings, or a list of {"url": ...} objects."""
    if not value:
        return []
    if isinstance(value, str):
        return [u.strip() for u in value.split(",") if u.strip()]
    if not isinstance(value, (list, tuple)):
        raise InvalidConfiguration(f"Expected a list of URLs, got {type(value).__name__}.")
    out: list[str] = []
    for i, item in enumerate(value):
        if isinstance(item, Mapping):
            item = item.get("url")
        u = str(item or "").strip()
        if not u:
            raise InvalidConfiguration(f"URL list item[{i}] is empty.")
        out.append(u)
    return out


def _parse_quota(raw: Any) -> int:
    if raw is None:
        return UNBOUNDED
    if isinstance(raw, str) and raw.strip().lower() in {"", "unlimited", "all", "inf", "infinity"}:
        return UNBOUNDED
    n = _to_int(raw, "results_wanted")
    return n


def _to_int(value: Any, field: str, *, allow_zero: bool = False) -> int:
    if isinstance(value, bool):
        raise InvalidConfiguration(f"'{field}' must be an integer.")
    try:
        iv = int(value)
    except (TypeError, ValueError) as err:
        raise InvalidConfiguration(f"'{field}' must be an integer (got {value!r}).") from err
    if iv < 0 or (iv == 0 and not allow_zero):
        raise InvalidConfiguration(f"'{field}' must be >= {'0' if allow_zero else '1'} (got {iv}).")
    return iv


def _to_float(value: Any, field: str) -> float:
    try:
        fv = float(value)
    except (TypeError, ValueError) as err:
        raise InvalidConfiguration(f"'{field}' must be a number (got {value!r}).") from err
    if fv < 0:
        raise InvalidConfiguration(f"'{field}' must be >= 0 (got {fv}).")
    return fv


def _validate_settings(s: CrawlSettings) -> None:
    if not s.keyword and not s.start_urls:
        raise InvalidConfiguration('Either "start_url" or "keyword" is required.')

    for u in s.start_urls:
        if not u.lower().startswith(("http://", "https://")):
            raise InvalidConfiguration(f"Start URL must be absolute http(s): {u!r}")
    for p in s.proxy_urls:
        if "://" not in p:
            raise InvalidConfiguration(f"Proxy URL must include a scheme: {p!r}")

    if not 1 <= s.max_concurrency <= 5:
        raise InvalidConfiguration("'max_concurrency' must be between 1 and 5.")
    if s.identity_pool_size < s.max_concurrency:
        raise InvalidConfiguration("'identity_pool_size' must be >= 'max_concurrency'.")
    if s.identity_budget and s.identity_budget < s.identity_pool_size:
        raise InvalidConfiguration("'identity_budget' must be 0 or >= 'identity_pool_size'.")
    if s.identity_max_errors <= 0:
        raise InvalidConfiguration("'identity_max_errors' must be > 0.")
    if s.timeout <= 0:
        raise InvalidConfiguration("'timeout' must be > 0.")
    if not s.page_param:
        raise InvalidConfiguration("'page_param' cannot be empty.")
    if not s.sqlite_path.strip():
        raise InvalidConfiguration("'sqlite_path' cannot be empty.")
