from __future__ import annotations

from typing import Any

from .lib.config import CrawlSettings
from .lib.engine import run_once as _run_engine
from .lib.logging_bridge import activity as log_activity


def run(**kwargs: Any) -> dict[str, Any]:
    """
    Entry point for the 'careers_crawl' module.

    Accepts kwargs (from runner/CLI), including:
      keyword: str                    # or start_url / start_urls
      location: str = ""
      date_filter: str = "anytime"    # anytime | 24h | 7d | 30d
      results_wanted: int | None = 100
      max_pages: int = 20
      max_retries: int = 3
      request_delay: float = 2.0      # seconds (requestDelay: ms)
      collect_details: bool = True
      proxy_urls: list[str] = []
      sqlite_path: str = "/app/local/state/careers_crawl.db"
      dataset_path: str | None = None
      skip_network: bool = False

    Returns:
      The run summary as a dict (emitted vs requested, pages visited, ...).

    Raises:
      InvalidConfiguration before any request is made; PoolExhausted when
      every identity was burned.
    """
    settings = CrawlSettings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "careers_crawl.main",
        "op": "start",
        "keyword": settings.keyword or None,
        "location": settings.location or None,
        "start_urls": list(settings.start_urls),
        "flags": {
            "collect_details": settings.collect_details,
            "skip_network": settings.skip_network,
        },
    })

    summary = _run_engine(settings)
    return summary.as_dict()
