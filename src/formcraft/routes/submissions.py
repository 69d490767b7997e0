from __future__ import annotations

import csv
import io

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from formcraft.analytics import (
    csv_headers_and_rows,
    decode_cursor,
    filter_submissions,
    form_analytics,
    paginate,
    submission_progress,
)
from formcraft.errors import FormcraftError, NotFound, SchemaValidationFailure
from formcraft.routes.deps import current_user, owned_form, submission_output
from formcraft.submissions import delete_submission, submission_document
from formcraft.validation import interactive_fields

router = APIRouter()

DEFAULT_LIMIT = 50
MAX_LIMIT = 500


def _query(request: Request) -> dict[str, object]:
    params: dict[str, object] = dict(request.query_params)
    params["form_version"] = request.query_params.getlist("form_version")
    return params


def _limit(request: Request) -> int:
    raw = request.query_params.get("limit")
    if raw in (None, ""):
        return DEFAULT_LIMIT
    try:
        limit = int(raw)
    except ValueError as exc:
        raise SchemaValidationFailure("limit must be an integer") from exc
    if limit < 1:
        raise SchemaValidationFailure("limit must be positive")
    return min(limit, MAX_LIMIT)


@router.get("/api/forms/{form_id}/submissions", tags=["api/submissions"])
async def api_list_submissions(form_id: str, request: Request) -> JSONResponse:
    storage = request.app.state.storage
    form = owned_form(request, form_id)
    submissions = storage.submissions.list_submissions(form_id)
    filtered = filter_submissions(submissions, _query(request))

    cursor = None
    cursor_raw = request.query_params.get("cursor")
    if cursor_raw:
        cursor = decode_cursor(cursor_raw)
        if cursor is None:
            raise FormcraftError("Invalid cursor")
    page, next_cursor = paginate(filtered, cursor, _limit(request))

    items = []
    for submission in page:
        total_fields = len(interactive_fields(submission_document(submission, form)))
        items.append(submission_output(submission_progress(submission, total_fields)))
    headers: dict[str, str] = {}
    if next_cursor:
        headers["X-Next-Cursor"] = next_cursor
    return JSONResponse(items, headers=headers)


@router.get("/api/forms/{form_id}/submissions/export", tags=["api/submissions"])
async def api_export_submissions(form_id: str, request: Request) -> PlainTextResponse:
    storage = request.app.state.storage
    form = owned_form(request, form_id)
    submissions = filter_submissions(
        storage.submissions.list_submissions(form_id), _query(request)
    )
    document = form.get("published_content") or form["content"]
    headers, rows = csv_headers_and_rows(document, submissions)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(headers)
    writer.writerows(rows)
    return PlainTextResponse(
        output.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=submissions-{form_id}.csv"},
    )


@router.get("/api/forms/{form_id}/analytics", tags=["api/submissions"])
async def api_form_analytics(form_id: str, request: Request) -> JSONResponse:
    storage = request.app.state.storage
    form = owned_form(request, form_id)
    submissions = storage.submissions.list_submissions(form_id)
    document = form.get("published_content") or form["content"]
    return JSONResponse(form_analytics(document, submissions))


@router.delete("/api/submissions/{submission_id}", tags=["api/submissions"])
async def api_delete_submission(submission_id: str, request: Request) -> JSONResponse:
    storage = request.app.state.storage
    user_id = current_user(request)
    submission = storage.submissions.get_submission(submission_id)
    form = storage.forms.get_form(submission["form_id"]) if submission else None
    if not submission or not form or form.get("user_id") != user_id:
        raise NotFound(f"Submission not found: {submission_id}")
    delete_submission(storage, submission_id, feed=request.app.state.feed)
    return JSONResponse({"status": "deleted"})
