# service/config_schema.py
"""
Crawl input files.

An input file is either a single crawl input (the same keys `careers_crawl.run`
accepts) or a mapping with a "crawls" list of such inputs, each optionally
carrying an "id":

    {"keyword": "nurse", "location": "Austin", "results_wanted": 20}

    crawls:
      - id: austin-nurses
        keyword: nurse
        location: Austin
      - id: remote-sre
        start_url: https://www.google.com/about/careers/applications/jobs/results?q=sre
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any

import yaml

from modules.careers_crawl.lib.config import CrawlSettings, InvalidConfiguration

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the input file is invalid."""


@dataclass
class _LoadResult:
    """Internal convenience container (not required by callers)."""

    cfg: dict[str, Any]
    source: str


def load_config(path: str | None = None) -> dict[str, Any]:
    """
    Load a crawl input file.

    Resolution order:
      1) Explicit `path` argument (if provided)
      2) os.environ['CONFIG_PATH'] (if set)
      3) Internal default (empty "crawls" list)

    Returns:
        dict with a normalized "crawls" list.
    """
    resolved_path = path or os.environ.get("CONFIG_PATH")
    if not resolved_path:
        logger.info("CONFIG_PATH not provided; using empty default config.")
        return {"crawls": []}

    cfg = _read_any(resolved_path).cfg
    return _normalize(cfg)


def validate(cfg: dict[str, Any]) -> list[CrawlSettings]:
    """
    Validate every crawl input. Raise ConfigError on any problem.
    Returns the built settings (in file order).
    """
    if not isinstance(cfg, dict):
        raise ConfigError("Config must be a dict.")
    crawls = cfg.get("crawls")
    if not isinstance(crawls, list):
        raise ConfigError("'crawls' must be a list.")

    out: list[CrawlSettings] = []
    seen_ids: set[str] = set()
    for idx, crawl in enumerate(crawls):
        if not isinstance(crawl, dict):
            raise ConfigError(f"Crawl at index {idx} must be an object/dict.")
        crawl_id = _derive_crawl_id(crawl, idx)
        if crawl_id in seen_ids:
            raise ConfigError(f"Duplicate crawl id '{crawl_id}'.")
        seen_ids.add(crawl_id)

        kwargs = {k: v for k, v in crawl.items() if k != "id"}
        try:
            out.append(CrawlSettings.from_env_and_kwargs(kwargs))
        except InvalidConfiguration as e:
            raise ConfigError(f"Crawl '{crawl_id}': {e}") from e
    return out


def _normalize(cfg: Any) -> dict[str, Any]:
    if not isinstance(cfg, dict):
        raise ConfigError("Top-level config must be a mapping/object.")
    if "crawls" in cfg:
        crawls = cfg["crawls"]
        if not isinstance(crawls, list):
            raise ConfigError("'crawls' must be a list.")
    else:
        crawls = [cfg]

    normalized: list[dict[str, Any]] = []
    for idx, crawl in enumerate(crawls):
        if not isinstance(crawl, dict):
            raise ConfigError(f"Crawl at index {idx} must be an object/dict.")
        crawl_copy = dict(crawl)
        crawl_copy["id"] = _derive_crawl_id(crawl_copy, idx)
        normalized.append(crawl_copy)
    return {"crawls": normalized}


def _derive_crawl_id(crawl: dict[str, Any], idx: int) -> str:
    # id | keyword → id
    for key in ("id", "keyword"):
        v = crawl.get(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return f"crawl_{idx}"


def _read_any(path: str) -> _LoadResult:
    lower = path.lower()
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {path}: {e}") from e

    if lower.endswith(".json"):
        try:
            return _LoadResult(cfg=json.loads(text), source=path)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if lower.endswith(".yml") or lower.endswith(".yaml"):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Top-level YAML must be a mapping/object.")
        return _LoadResult(cfg=data, source=path)

    # Try JSON as a fallback if extension is unknown
    try:
        return _LoadResult(cfg=json.loads(text), source=path)
    except json.JSONDecodeError:
        pass

    raise ConfigError(f"Unsupported config format for {path}. Use .json or .yml/.yaml.")
