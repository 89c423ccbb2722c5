import pytest

from conftest import FakeJobSource, make_hit, page
from jobhunter.db.repo_jobs import count_jobs, get_job_by_external_id
from jobhunter.services import ingest as ingest_module
from jobhunter.services.ingest import IngestionPipeline, parse_results


def _pipeline(con, source, max_pages=5, sleep=None):
    return IngestionPipeline(con, source, max_pages=max_pages, page_delay_s=0.5, sleep=sleep or (lambda s: None))


def test_two_page_scenario_reports_new_records_and_stops_on_empty_page(con):
    source = FakeJobSource([
        page(make_hit("a1"), make_hit("a2"), make_hit("a3")),
        page(),
    ])

    new = _pipeline(con, source).ingest("engineer", "Denver", 25)

    assert new == 3
    assert len(source.calls) == 2
    assert [c.page for c in source.calls] == [1, 2]
    assert all(c.query == "engineer" and c.location == "Denver" for c in source.calls)
    assert count_jobs(con) == 3


def test_ingesting_same_payload_twice_is_idempotent(con):
    payload = page(make_hit("x1"), make_hit("x2"))

    first = _pipeline(con, FakeJobSource([payload]), max_pages=1).ingest("q", "l", 10)
    size_after_first = count_jobs(con)
    second = _pipeline(con, FakeJobSource([payload]), max_pages=1).ingest("q", "l", 10)

    assert first == 2
    assert second == 0
    assert count_jobs(con) == size_after_first


def test_ids_repeated_across_pages_are_stored_once(con):
    source = FakeJobSource([
        page(make_hit("d1"), make_hit("d2")),
        page(make_hit("d2"), make_hit("d3"), make_hit("d3")),
    ])

    result = _pipeline(con, source, max_pages=2).ingest_detailed("q", "l", 10)

    assert result.new == 3
    assert result.skipped_duplicate == 2
    assert count_jobs(con) == 3
    rows = con.execute("SELECT external_id, COUNT(*) AS c FROM jobs GROUP BY external_id").fetchall()
    assert all(r["c"] == 1 for r in rows)


@pytest.mark.parametrize("empty_page", [1, 2, 3, 4])
def test_pagination_stops_at_first_empty_results_page(con, empty_page):
    pages = [page(make_hit(f"p{i}")) for i in range(1, empty_page)] + [page()] + [page(make_hit("never"))]
    source = FakeJobSource(pages)

    _pipeline(con, source, max_pages=5).ingest("q", "l", 10)

    assert len(source.calls) == empty_page
    assert get_job_by_external_id(con, "never") is None


def test_short_page_is_not_a_stop_signal(con):
    source = FakeJobSource([
        page(make_hit("s1")),
        page(make_hit("s2")),
        page(make_hit("s3")),
    ])

    new = _pipeline(con, source, max_pages=3).ingest("q", "l", 10)

    assert new == 3
    assert len(source.calls) == 3


def test_page_budget_caps_fetches(con):
    source = FakeJobSource([page(make_hit(f"b{i}")) for i in range(10)])

    new = _pipeline(con, source, max_pages=5).ingest("q", "l", 10)

    assert new == 5
    assert len(source.calls) == 5


def test_records_without_external_id_are_rejected(con):
    no_id = make_hit("ignored")
    del no_id["id"]
    blank_id = make_hit("  ")
    source = FakeJobSource([page(no_id, blank_id, make_hit("ok1"), "not-a-record")])

    result = _pipeline(con, source, max_pages=1).ingest_detailed("q", "l", 10)

    assert result.new == 1
    assert result.skipped_no_id == 3
    assert count_jobs(con) == 1


def test_bad_pages_are_logged_and_skipped(con):
    source = FakeJobSource([
        "",
        "{not json",
        RuntimeError("upstream 503"),
        page(make_hit("late1")),
        page(),
    ])

    result = _pipeline(con, source, max_pages=5).ingest_detailed("q", "l", 10)

    assert result.new == 1
    assert result.page_errors == 2
    assert len(source.calls) == 5


def test_missing_or_non_array_results_count_as_empty():
    assert parse_results('{"count": 0}') == []
    assert parse_results('{"results": {"id": 1}}') == []
    assert parse_results("[1, 2]") == []
    with pytest.raises(ValueError):
        parse_results("<html>")


def test_persistence_error_on_one_page_rolls_back_and_continues(con, monkeypatch):
    real_insert = ingest_module.insert_jobs
    calls = {"n": 0}

    def flaky_insert(c, jobs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("disk full")
        return real_insert(c, jobs)

    monkeypatch.setattr(ingest_module, "insert_jobs", flaky_insert)
    source = FakeJobSource([
        page(make_hit("f1", company="Lost Co")),
        page(make_hit("f2")),
        page(),
    ])

    result = _pipeline(con, source).ingest_detailed("q", "l", 10)

    assert result.new == 1
    assert result.page_errors == 1
    assert get_job_by_external_id(con, "f1") is None
    assert get_job_by_external_id(con, "f2") is not None
    # lookup rows created for the failed page were rolled back with it
    assert con.execute("SELECT 1 FROM companies WHERE name='Lost Co'").fetchone() is None


def test_sleeps_between_pages(con):
    slept = []
    source = FakeJobSource([page(make_hit("z1")), page(make_hit("z2")), page()])

    _pipeline(con, source, sleep=slept.append).ingest("q", "l", 10)

    assert slept == [0.5, 0.5]


def test_lookups_are_found_or_created_once(con):
    source = FakeJobSource([
        page(
            make_hit("l1", company="Acme Corp", location="Denver, Colorado", category="it-jobs"),
            make_hit("l2", company="Acme Corp", location="Denver, Colorado", category="it-jobs"),
            make_hit("l3", company="Beta LLC", location="Boulder, Colorado", category="sales-jobs"),
        )
    ])

    _pipeline(con, source, max_pages=1).ingest("q", "l", 10)

    assert con.execute("SELECT COUNT(*) FROM companies").fetchone()[0] == 2
    assert con.execute("SELECT COUNT(*) FROM locations").fetchone()[0] == 2
    cat = con.execute("SELECT name FROM categories WHERE tag='sales-jobs'").fetchone()
    assert cat["name"] == "SALES JOBS"
    loc = con.execute("SELECT city, state, country FROM locations WHERE display_name='Denver, Colorado'").fetchone()
    assert (loc["city"], loc["state"], loc["country"]) == ("Denver", "Colorado", "US")


def test_mapped_posting_fields(con):
    source = FakeJobSource([page(make_hit("m1", title="Data Engineer", lat=39.7, lon=-104.9))])

    _pipeline(con, source, max_pages=1).ingest("q", "l", 10)

    job = get_job_by_external_id(con, "m1")
    assert job["title"] == "Data Engineer"
    assert job["source"] == "Adzuna"
    assert job["salary_min"] == 90000.0
    assert job["job_url"] == "https://jobs.example.com/m1"
    assert job["created_date"].startswith("2024-03-10T12:00:00")
    assert job["date_found"]
    loc = con.execute("SELECT latitude, longitude FROM locations WHERE id=?", (job["location_id"],)).fetchone()
    assert (loc["latitude"], loc["longitude"]) == (39.7, -104.9)
