# tests/test_sink_db.py
import contextlib
import json
import sqlite3

from modules.careers_crawl.lib import db
from modules.careers_crawl.lib.models import CandidateRecord, Provenance
from modules.careers_crawl.lib.sink import JsonlSink, MemorySink, MultiSink, SqliteSink


def _record(external_id="r1", **kw):
    prov = Provenance(
        keyword="nurse",
        location="Austin",
        date_filter="anytime",
        fetched_at="2025-01-01T00:00:00Z",
        source_url="https://careers.example.com/jobs/results?q=nurse",
    )
    base = dict(
        external_id=external_id,
        title="Registered Nurse",
        company="Google",
        location="Austin, TX",
        description_text="x" * 800,
        source_url=f"https://careers.example.com/jobs/results/{external_id}",
        strategy="json-ld",
        provenance=prov,
    )
    base.update(kw)
    return CandidateRecord(**base)


# ---------------------------------------------------------------------
# Output row shape
# ---------------------------------------------------------------------
def test_output_row_shape():
    row = _record(location="", employment_type=None, extras={"qualifications": "RN"}).to_output()
    assert row["id"] == "r1"
    assert len(row["description_text"]) == 500
    assert len(row["description_full"]) == 800
    assert row["location"] == "Not specified"
    assert row["employment_type"] == "Not specified"
    assert row["qualifications"] == "RN"
    assert row["valid_through"] is None
    assert row["source"] == "google.com/careers"
    assert row["_extractedFrom"] == "json-ld"
    assert row["_searchKeyword"] == "nurse"
    assert row["_postedDateFilter"] == "anytime"


def test_merge_keeps_seed_values_for_blank_detail_fields():
    seed = _record(salary="USD 1")
    merged = seed.merged({"salary": "", "location": "Remote", "industry": "Health"})
    assert merged.salary == "USD 1"
    assert merged.location == "Remote"
    assert merged.extras["industry"] == "Health"
    assert seed.location == "Austin, TX"


# ---------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------
def test_sqlite_sink_ignores_known_ids(tmp_path, frozen_utc):
    path = str(tmp_path / "state" / "crawl.db")
    sink = SqliteSink(path)
    sink.append(_record("a"))
    sink.append(_record("b"))
    sink.append(_record("a", title="Changed"))

    assert (sink.inserted, sink.ignored) == (2, 1)
    assert db.count_rows(path) == 2
    rows = db.load_listings(path)
    assert [r["id"] for r in rows] == ["a", "b"]
    assert rows[0]["title"] == "Registered Nurse"

    with contextlib.closing(sqlite3.connect(path)) as conn:
        (first_seen,) = conn.execute("SELECT first_seen_utc FROM listings WHERE external_id='a'").fetchone()
    assert first_seen == "2025-01-01T00:00:00Z"


def test_db_helpers_on_missing_file(tmp_path):
    path = str(tmp_path / "missing.db")
    assert db.count_rows(path) == 0
    assert db.load_listings(path) == []
    db.reset_db(path)  # no error


def test_reset_db_removes_files(tmp_path):
    path = str(tmp_path / "crawl.db")
    db.init_db(path)
    db.insert_listing(path, _record().to_output())
    db.reset_db(path)
    assert db.count_rows(path) == 0


# ---------------------------------------------------------------------
# Other sinks
# ---------------------------------------------------------------------
def test_jsonl_and_multi_sink(tmp_path):
    path = tmp_path / "out" / "dataset.jsonl"
    mem = MemorySink()
    sink = MultiSink(mem, JsonlSink(str(path)))
    sink.append(_record("a"))
    sink.append(_record("b"))

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [r["id"] for r in lines] == ["a", "b"]
    assert mem.ids == ["a", "b"]
    assert mem.rows[1]["url"] == "https://careers.example.com/jobs/results/b"
