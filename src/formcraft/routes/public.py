from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from formcraft.errors import NotFound, SchemaValidationFailure
from formcraft.routes.deps import read_json, submission_output
from formcraft.submissions import save_submission

router = APIRouter()


def _published_form(request: Request, share_url: str) -> dict[str, Any]:
    form = request.app.state.storage.forms.get_form_by_share_url(share_url)
    if not form or not form.get("published") or form.get("published_content") is None:
        raise NotFound("Form not found")
    return form


@router.get("/api/public/forms/{share_url}", tags=["public"])
async def api_public_form(share_url: str, request: Request) -> JSONResponse:
    form = _published_form(request, share_url)
    return JSONResponse(
        {
            "id": form["id"],
            "name": form["name"],
            "description": form.get("description", ""),
            "content": form["published_content"],
            "version": form.get("published_version"),
        }
    )


@router.post("/api/public/forms/{share_url}/submissions", tags=["public"])
async def api_submit_form(share_url: str, request: Request) -> JSONResponse:
    form = _published_form(request, share_url)
    payload = await read_json(request)
    if not isinstance(payload, dict):
        raise SchemaValidationFailure("Request body must be an object")
    submission = save_submission(
        request.app.state.storage, form, payload, feed=request.app.state.feed
    )
    return JSONResponse(
        {
            "id": submission["id"],
            "session_id": submission["session_id"],
            "is_complete": submission["is_complete"],
            "last_section_index": submission["last_section_index"],
            "total_sections": submission["total_sections"],
            "form_version": submission.get("form_version"),
            "updated_at": submission_output(submission)["updated_at"],
        }
    )
