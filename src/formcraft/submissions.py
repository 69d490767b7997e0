"""Respondent submission lifecycle.

A respondent session writes one submission record. The first write freezes
the published document into ``form_content_snapshot`` so later edits to the
form never change how existing answers are read or validated.
"""

from __future__ import annotations

import logging
from typing import Any

from formcraft.errors import Conflict, NotFound, SubmissionInvalid
from formcraft.realtime import SubmissionFeed
from formcraft.schema import SUBMISSION_SCHEMA, check_schema
from formcraft.utils import new_ulid, now_utc
from formcraft.validation import clean_answers, invalid_fields

logger = logging.getLogger(__name__)


def submission_document(submission: dict[str, Any], form: dict[str, Any]) -> list[dict[str, Any]]:
    """Document a submission is read against: its snapshot, else the live form."""
    snapshot = submission.get("form_content_snapshot")
    if snapshot is not None:
        return snapshot
    return form.get("published_content") or form.get("content") or []


def save_submission(
    storage: Any,
    form: dict[str, Any],
    payload: dict[str, Any],
    feed: SubmissionFeed | None = None,
) -> dict[str, Any]:
    check_schema(SUBMISSION_SCHEMA, payload, "submission")
    if not form.get("published") or form.get("published_content") is None:
        raise NotFound("Form is not published")

    session_id = payload["session_id"]
    is_complete = bool(payload.get("is_complete", False))
    existing = storage.submissions.get_by_session(form["id"], session_id)
    if existing and existing["is_complete"]:
        raise Conflict("Submission already completed")

    if existing and existing.get("form_content_snapshot") is not None:
        snapshot = existing["form_content_snapshot"]
        form_version = existing.get("form_version")
    else:
        snapshot = form["published_content"]
        form_version = form.get("published_version")

    previous = existing["data"] if existing else {}
    data = {**clean_answers(snapshot, previous), **clean_answers(snapshot, payload["data"])}

    if is_complete:
        errors = invalid_fields(snapshot, data)
        if errors:
            raise SubmissionInvalid("Submission has invalid fields", errors)

    total_sections = max(len(snapshot), 1)
    last_section_index = min(int(payload.get("last_section_index", 0)), total_sections - 1)
    now = now_utc()

    if existing:
        updates: dict[str, Any] = {
            "data": data,
            "is_complete": is_complete,
            "last_section_index": last_section_index,
            "total_sections": total_sections,
            "updated_at": now,
        }
        if existing.get("form_content_snapshot") is None:
            updates["form_content_snapshot"] = snapshot
            updates["form_version"] = form_version
        record = storage.submissions.update_submission(existing["id"], updates)
        event = "UPDATE"
    else:
        storage.submissions.create_submission(
            {
                "id": new_ulid(),
                "form_id": form["id"],
                "session_id": session_id,
                "data": data,
                "is_complete": is_complete,
                "last_section_index": last_section_index,
                "total_sections": total_sections,
                "form_version": form_version,
                "form_content_snapshot": snapshot,
                "created_at": now,
                "updated_at": now,
            }
        )
        record = storage.submissions.get_by_session(form["id"], session_id)
        event = "INSERT"

    if is_complete:
        logger.info("Submission completed: form=%s session=%s", form["id"], session_id)
    if feed is not None and record is not None:
        feed.publish(event, record)
    return record or {}


def delete_submission(
    storage: Any, submission_id: str, feed: SubmissionFeed | None = None
) -> dict[str, Any]:
    submission = storage.submissions.get_submission(submission_id)
    if not submission:
        raise NotFound(f"Submission not found: {submission_id}")
    storage.submissions.delete_submission(submission_id)
    logger.info("Deleted submission: %s", submission_id)
    if feed is not None:
        feed.publish("DELETE", submission)
    return submission
