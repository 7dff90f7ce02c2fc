# tests/test_config.py
import json

import pytest

from modules.careers_crawl.lib.config import UNBOUNDED, CrawlSettings, DateFilter, InvalidConfiguration
from service import config_schema


# ---------------------------------------------------------------------
# CrawlSettings
# ---------------------------------------------------------------------
def test_defaults_from_keyword():
    s = CrawlSettings.from_env_and_kwargs({"keyword": " nurse ", "location": "Austin"})
    assert s.keyword == "nurse"
    assert s.results_wanted == 100
    assert s.max_pages == 20
    assert s.max_retries == 3
    assert s.date_filter is DateFilter.ANYTIME
    assert s.collect_details is True
    assert s.mint_budget == 50


def test_keyword_or_start_url_required():
    with pytest.raises(InvalidConfiguration, match="start_url"):
        CrawlSettings.from_env_and_kwargs({"location": "Austin"})


def test_actor_style_inputs():
    s = CrawlSettings.from_env_and_kwargs({
        "startUrl": "https://careers.example.com/jobs/results?q=sre",
        "results_wanted": "unlimited",
        "maxRequestRetries": 5,
        "requestDelay": 1500,
        "collectDetails": "false",
        "posted_date": "7d",
        "proxyConfiguration": {"proxyUrls": ["http://user:pw@proxy:8080"]},
    })
    assert s.start_urls == ("https://careers.example.com/jobs/results?q=sre",)
    assert s.results_wanted == UNBOUNDED
    assert s.unbounded
    assert s.max_retries == 5
    assert s.request_delay == 1.5
    assert s.collect_details is False
    assert s.date_filter is DateFilter.LAST_7D
    assert s.proxy_urls == ("http://user:pw@proxy:8080",)
    assert s.describe()["results_wanted"] is None
    assert s.describe()["using_proxy"] is True


@pytest.mark.parametrize("raw, expected", [("24h", "1"), ("today", "1"), ("week", "7"), ("30d", "30"), ("", None)])
def test_date_filter_aliases(raw, expected):
    assert DateFilter.parse(raw).posted_days == expected


@pytest.mark.parametrize(
    "overrides",
    [
        {"date_filter": "yesterday-ish"},
        {"max_concurrency": 6},
        {"max_concurrency": 4, "identity_pool_size": 3},
        {"results_wanted": 0},
        {"results_wanted": "lots"},
        {"max_pages": -1},
        {"request_delay": -2},
        {"start_url": "careers.example.com/jobs"},
        {"proxy_urls": ["proxy:8080"]},
        {"identity_budget": 2},
    ],
)
def test_invalid_inputs(overrides):
    with pytest.raises(InvalidConfiguration):
        CrawlSettings.from_env_and_kwargs({"keyword": "nurse", **overrides})


def test_settings_are_frozen():
    s = CrawlSettings.from_env_and_kwargs({"keyword": "nurse"})
    with pytest.raises(AttributeError):
        s.keyword = "x"


# ---------------------------------------------------------------------
# Input files
# ---------------------------------------------------------------------
def test_load_yaml_crawls(tmp_path):
    p = tmp_path / "crawls.yaml"
    p.write_text(
        "crawls:\n"
        "  - id: austin-nurses\n"
        "    keyword: nurse\n"
        "    location: Austin\n"
        "  - keyword: sre\n"
        "    results_wanted: 10\n",
        encoding="utf-8",
    )
    cfg = config_schema.load_config(str(p))
    assert [c["id"] for c in cfg["crawls"]] == ["austin-nurses", "sre"]
    settings = config_schema.validate(cfg)
    assert [s.keyword for s in settings] == ["nurse", "sre"]
    assert settings[1].results_wanted == 10


def test_load_single_json_input(tmp_path, monkeypatch):
    p = tmp_path / "input.json"
    p.write_text(json.dumps({"startUrls": [{"url": "https://careers.example.com/jobs/results?q=x"}]}), encoding="utf-8")
    monkeypatch.setenv("CONFIG_PATH", str(p))
    cfg = config_schema.load_config()
    assert cfg["crawls"][0]["id"] == "crawl_0"
    assert config_schema.validate(cfg)[0].start_urls == ("https://careers.example.com/jobs/results?q=x",)


def test_no_config_path_is_empty():
    assert config_schema.load_config() == {"crawls": []}


def test_duplicate_ids_rejected(tmp_path):
    cfg = {"crawls": [{"id": "a", "keyword": "x"}, {"id": "a", "keyword": "y"}]}
    with pytest.raises(config_schema.ConfigError, match="Duplicate"):
        config_schema.validate(cfg)


def test_invalid_crawl_is_reported_with_its_id():
    with pytest.raises(config_schema.ConfigError, match="'bad'"):
        config_schema.validate({"crawls": [{"id": "bad", "keyword": "x", "max_concurrency": 9}]})


def test_missing_and_malformed_files(tmp_path):
    with pytest.raises(config_schema.ConfigError, match="not found"):
        config_schema.load_config(str(tmp_path / "nope.yaml"))
    bad = tmp_path / "bad.json"
    bad.write_text("{oops", encoding="utf-8")
    with pytest.raises(config_schema.ConfigError, match="Invalid JSON"):
        config_schema.load_config(str(bad))
