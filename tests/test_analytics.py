from datetime import date, datetime, timedelta, timezone

from formcraft.analytics import (
    csv_headers_and_rows,
    decode_cursor,
    encode_cursor,
    field_fill_rates,
    filter_submissions,
    paginate,
    submission_progress,
    submission_stats,
    submissions_by_day,
    weekly_change,
)

BASE = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


def _submission(submission_id, data, is_complete=False, hours_ago=0):
    return {
        "id": submission_id,
        "form_id": "form-1",
        "data": data,
        "is_complete": is_complete,
        "created_at": BASE - timedelta(hours=hours_ago),
    }


def test_progress_counts_non_empty_answers():
    item = submission_progress(_submission("a", {"name": "Ada", "nickname": ""}), 2)
    assert item["answered_fields"] == 1
    assert item["progress"] == 50
    assert submission_progress(_submission("b", {}), 0)["progress"] == 0


def test_stats():
    submissions = [
        _submission("a", {"name": "Ada", "nickname": "A"}, is_complete=True),
        _submission("b", {"name": "Bob"}),
        _submission("c", {}),
    ]
    stats = submission_stats(submissions, 2)
    assert stats == {
        "total_submissions": 3,
        "complete_submissions": 1,
        "partial_submissions": 2,
        "completion_rate": 33,
        "average_completion_percentage": 25,
    }
    assert submission_stats([], 2)["completion_rate"] == 0


def test_submissions_by_day_buckets():
    submissions = [
        _submission("a", {}, is_complete=True),
        _submission("b", {}, hours_ago=24),
        _submission("c", {}, hours_ago=24 * 60),
    ]
    days = submissions_by_day(submissions, days=7, today=date(2024, 5, 10))
    assert len(days) == 7
    assert days[-1] == {"date": "2024-05-10", "complete": 1, "partial": 0, "total": 1}
    assert days[-2]["partial"] == 1
    assert sum(day["total"] for day in days) == 2


def test_weekly_change():
    submissions = [_submission("a", {}), _submission("b", {}, hours_ago=24 * 10)]
    assert weekly_change(submissions, now=BASE) == 0
    assert weekly_change([_submission("a", {})], now=BASE) == 100
    assert weekly_change([], now=BASE) == 0


def test_field_fill_rates(document):
    submissions = [
        _submission("a", {"name": "Ada", "nickname": "A"}),
        _submission("b", {"name": "Bob"}),
    ]
    rates = field_fill_rates(document, submissions)
    assert [(item["id"], item["rate"]) for item in rates] == [("name", 100), ("nickname", 50)]
    assert field_fill_rates(document, []) == []


def test_filter_submissions():
    submissions = [
        _submission("a", {"name": "Ada Lovelace"}, is_complete=True),
        _submission("b", {"name": "Bob"}, hours_ago=48),
    ]
    assert [s["id"] for s in filter_submissions(submissions, {"status": "complete"})] == ["a"]
    assert [s["id"] for s in filter_submissions(submissions, {"status": "partial"})] == ["b"]
    assert [s["id"] for s in filter_submissions(submissions, {"q": "lovelace"})] == ["a"]
    since = (BASE - timedelta(hours=1)).isoformat()
    assert [s["id"] for s in filter_submissions(submissions, {"submitted_from": since})] == ["a"]


def test_filter_submissions_by_form_version():
    submissions = [
        {**_submission("a", {}), "form_version": 2},
        {**_submission("b", {}), "form_version": 3},
        {**_submission("c", {}), "form_version": 5},
    ]
    assert [s["id"] for s in filter_submissions(submissions, {"form_version": "3"})] == ["b"]
    assert [s["id"] for s in filter_submissions(submissions, {"form_version": ["2", "5"]})] == ["a", "c"]
    assert [s["id"] for s in filter_submissions(submissions, {"form_version": "2,3"})] == ["a", "b"]
    assert len(filter_submissions(submissions, {"form_version": []})) == 3
    assert filter_submissions(submissions, {"form_version": "9"}) == []


def test_cursor_round_trip_and_garbage():
    cursor = encode_cursor(BASE, "abc")
    assert decode_cursor(cursor) == (BASE, "abc")
    assert decode_cursor("not-a-cursor") is None


def test_paginate_walks_all_items():
    submissions = [_submission(f"s{i}", {}, hours_ago=i) for i in range(5)]
    page, next_cursor = paginate(submissions, None, 2)
    assert [s["id"] for s in page] == ["s0", "s1"]
    seen = [s["id"] for s in page]
    while next_cursor:
        page, next_cursor = paginate(submissions, decode_cursor(next_cursor), 2)
        seen.extend(s["id"] for s in page)
    assert seen == ["s0", "s1", "s2", "s3", "s4"]


def test_csv_rows_follow_document_order(document):
    headers, rows = csv_headers_and_rows(document, [_submission("a", {"nickname": "A"}, is_complete=True)])
    assert headers == ["id", "created_at", "is_complete", "Name", "Nickname"]
    assert rows == [["a", BASE.isoformat(), "true", "", "A"]]
