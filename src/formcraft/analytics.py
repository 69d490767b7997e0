from __future__ import annotations

import base64
from datetime import date, datetime, timedelta
from typing import Any

from formcraft.fields import field_label
from formcraft.utils import ensure_aware, now_utc
from formcraft.validation import interactive_fields


def _percent(part: float, whole: float) -> int:
    if whole <= 0:
        return 0
    # Half-up rounding; percentages are never negative.
    return int(part / whole * 100 + 0.5)


def answered_count(submission: dict[str, Any]) -> int:
    return sum(1 for value in (submission.get("data") or {}).values() if value not in (None, ""))


def submission_progress(submission: dict[str, Any], total_fields: int) -> dict[str, Any]:
    answered = answered_count(submission)
    return {
        **submission,
        "progress": _percent(answered, total_fields),
        "answered_fields": answered,
        "total_fields": total_fields,
    }


def submission_stats(submissions: list[dict[str, Any]], total_fields: int) -> dict[str, int]:
    total = len(submissions)
    complete = sum(1 for item in submissions if item.get("is_complete"))
    partial = [item for item in submissions if not item.get("is_complete")]
    average = 0
    if partial and total_fields > 0:
        progress = sum(answered_count(item) / total_fields * 100 for item in partial)
        average = int(progress / len(partial) + 0.5)
    return {
        "total_submissions": total,
        "complete_submissions": complete,
        "partial_submissions": len(partial),
        "completion_rate": _percent(complete, total),
        "average_completion_percentage": average,
    }


def submissions_by_day(
    submissions: list[dict[str, Any]], days: int = 30, today: date | None = None
) -> list[dict[str, Any]]:
    today = today or now_utc().date()
    buckets: dict[str, dict[str, int]] = {}
    for offset in range(days - 1, -1, -1):
        key = (today - timedelta(days=offset)).isoformat()
        buckets[key] = {"complete": 0, "partial": 0}
    for submission in submissions:
        created_at = submission.get("created_at")
        if not isinstance(created_at, datetime):
            continue
        key = ensure_aware(created_at).date().isoformat()
        bucket = buckets.get(key)
        if bucket is None:
            continue
        bucket["complete" if submission.get("is_complete") else "partial"] += 1
    return [
        {"date": key, **counts, "total": counts["complete"] + counts["partial"]}
        for key, counts in buckets.items()
    ]


def submissions_by_hour(submissions: list[dict[str, Any]]) -> list[dict[str, int]]:
    counts = [0] * 24
    for submission in submissions:
        created_at = submission.get("created_at")
        if isinstance(created_at, datetime):
            counts[ensure_aware(created_at).hour] += 1
    return [{"hour": hour, "count": count} for hour, count in enumerate(counts)]


def weekly_change(submissions: list[dict[str, Any]], now: datetime | None = None) -> int:
    now = ensure_aware(now or now_utc())
    one_week_ago = now - timedelta(days=7)
    two_weeks_ago = now - timedelta(days=14)
    this_week = 0
    last_week = 0
    for submission in submissions:
        created_at = submission.get("created_at")
        if not isinstance(created_at, datetime):
            continue
        created_at = ensure_aware(created_at)
        if created_at >= one_week_ago:
            this_week += 1
        elif created_at >= two_weeks_ago:
            last_week += 1
    if last_week == 0:
        return 100 if this_week > 0 else 0
    return round((this_week - last_week) / last_week * 100)


def field_fill_rates(
    document: list[dict[str, Any]], submissions: list[dict[str, Any]], limit: int = 10
) -> list[dict[str, Any]]:
    if not submissions:
        return []
    rates: list[dict[str, Any]] = []
    for element in interactive_fields(document):
        filled = sum(
            1 for item in submissions if (item.get("data") or {}).get(element["id"]) not in (None, "")
        )
        rates.append(
            {
                "id": element["id"],
                "label": field_label(element),
                "filled": filled,
                "rate": _percent(filled, len(submissions)),
            }
        )
    rates.sort(key=lambda item: item["rate"], reverse=True)
    return rates[:limit]


def form_analytics(
    document: list[dict[str, Any]], submissions: list[dict[str, Any]]
) -> dict[str, Any]:
    total_fields = len(interactive_fields(document))
    return {
        "stats": submission_stats(submissions, total_fields),
        "by_day": submissions_by_day(submissions),
        "by_hour": submissions_by_hour(submissions),
        "weekly_change": weekly_change(submissions),
        "field_fill_rates": field_fill_rates(document, submissions),
    }


def parse_query_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def parse_form_versions(value: Any) -> set[int]:
    """Accept a list of values or a comma-separated string of version numbers."""
    if value is None:
        return set()
    raw = value if isinstance(value, (list, tuple, set)) else [value]
    versions: set[int] = set()
    for item in raw:
        for part in str(item).split(","):
            part = part.strip()
            if part.isascii() and part.isdigit():
                versions.add(int(part))
    return versions


def filter_submissions(
    submissions: list[dict[str, Any]], query_params: dict[str, Any]
) -> list[dict[str, Any]]:
    status = str(query_params.get("status", "")).strip().lower()
    q = str(query_params.get("q", "")).strip().lower()
    from_dt = parse_query_datetime(query_params.get("submitted_from"))
    to_dt = parse_query_datetime(query_params.get("submitted_to"))
    versions = parse_form_versions(query_params.get("form_version"))

    filtered: list[dict[str, Any]] = []
    for submission in submissions:
        if status == "complete" and not submission.get("is_complete"):
            continue
        if status == "partial" and submission.get("is_complete"):
            continue
        if versions and submission.get("form_version") not in versions:
            continue
        created_at = submission.get("created_at")
        if isinstance(created_at, datetime) and (from_dt or to_dt):
            created_value = ensure_aware(created_at)
            if from_dt and created_value < ensure_aware(from_dt):
                continue
            if to_dt and created_value > ensure_aware(to_dt):
                continue
        if q:
            combined = " ".join(str(value) for value in (submission.get("data") or {}).values())
            if q not in combined.lower():
                continue
        filtered.append(submission)
    return filtered


def encode_cursor(created_at: datetime, submission_id: str) -> str:
    value = f"{ensure_aware(created_at).isoformat()}|{submission_id}"
    return base64.urlsafe_b64encode(value.encode("utf-8")).decode("utf-8")


def decode_cursor(cursor: str) -> tuple[datetime, str] | None:
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("utf-8")).decode("utf-8")
        created_at_raw, submission_id = raw.split("|", 1)
        created_at = datetime.fromisoformat(created_at_raw)
        return ensure_aware(created_at), submission_id
    except (ValueError, UnicodeDecodeError):
        return None


def paginate(
    submissions: list[dict[str, Any]], cursor: tuple[datetime, str] | None, limit: int
) -> tuple[list[dict[str, Any]], str | None]:
    ordered = sorted(
        submissions, key=lambda item: (ensure_aware(item["created_at"]), item["id"]), reverse=True
    )
    if cursor:
        cursor_dt, cursor_id = cursor
        ordered = [
            item
            for item in ordered
            if ensure_aware(item["created_at"]) < cursor_dt
            or (ensure_aware(item["created_at"]) == cursor_dt and item["id"] < cursor_id)
        ]
    page = ordered[:limit]
    next_cursor = None
    if len(page) == limit and len(ordered) > limit:
        last = page[-1]
        next_cursor = encode_cursor(last["created_at"], last["id"])
    return page, next_cursor


def value_to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def csv_headers_and_rows(
    document: list[dict[str, Any]], submissions: list[dict[str, Any]]
) -> tuple[list[str], list[list[str]]]:
    fields = interactive_fields(document)
    headers = ["id", "created_at", "is_complete"] + [field_label(field) for field in fields]
    rows: list[list[str]] = []
    for submission in submissions:
        data = submission.get("data") or {}
        created_at = submission.get("created_at")
        row = [
            submission["id"],
            ensure_aware(created_at).isoformat() if isinstance(created_at, datetime) else "",
            value_to_text(bool(submission.get("is_complete"))),
        ]
        row.extend(value_to_text(data.get(field["id"])) for field in fields)
        rows.append(row)
    return headers, rows
