from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from formcraft.commands import apply_command, apply_commands
from formcraft.document import new_document
from formcraft.errors import NotFound, SchemaValidationFailure
from formcraft.routes.deps import (
    current_user,
    form_output,
    form_version_output,
    owned_form,
    read_json,
)
from formcraft.utils import new_share_token, new_ulid, now_utc

logger = logging.getLogger(__name__)

router = APIRouter()


def _text(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key, "")
    if not isinstance(value, str):
        raise SchemaValidationFailure(f"{key} must be a string")
    return value.strip()


@router.get("/api/forms", tags=["api/forms"])
async def api_list_forms(request: Request) -> JSONResponse:
    storage = request.app.state.storage
    forms = storage.forms.list_forms(current_user(request))
    return JSONResponse([form_output(form) for form in forms])


@router.post("/api/forms", tags=["api/forms"])
async def api_create_form(request: Request) -> JSONResponse:
    storage = request.app.state.storage
    user_id = current_user(request)
    payload = await read_json(request)
    if not isinstance(payload, dict):
        raise SchemaValidationFailure("Request body must be an object")
    name = _text(payload, "name")
    if not name:
        raise SchemaValidationFailure("name is required")

    form_id = new_ulid()
    now = now_utc()
    storage.forms.create_form(
        {
            "id": form_id,
            "user_id": user_id,
            "share_url": new_share_token(),
            "name": name,
            "description": _text(payload, "description"),
            "content": new_document(),
            "version": 1,
            "published": False,
            "created_at": now,
            "updated_at": now,
        }
    )
    logger.info("Created form: %s", form_id)
    form = storage.forms.get_form(form_id)
    return JSONResponse(form_output(form or {}), status_code=201)


@router.get("/api/forms/{form_id}", tags=["api/forms"])
async def api_get_form(form_id: str, request: Request) -> JSONResponse:
    return JSONResponse(form_output(owned_form(request, form_id)))


@router.patch("/api/forms/{form_id}", tags=["api/forms"])
async def api_update_form(form_id: str, request: Request) -> JSONResponse:
    storage = request.app.state.storage
    owned_form(request, form_id)
    payload = await read_json(request)
    if not isinstance(payload, dict):
        raise SchemaValidationFailure("Request body must be an object")
    updates: dict[str, Any] = {}
    if "name" in payload:
        name = _text(payload, "name")
        if not name:
            raise SchemaValidationFailure("name is required")
        updates["name"] = name
    if "description" in payload:
        updates["description"] = _text(payload, "description")
    updates["updated_at"] = now_utc()
    updated = storage.forms.update_form(form_id, updates)
    return JSONResponse(form_output(updated))


@router.put("/api/forms/{form_id}/content", tags=["api/forms"])
async def api_save_content(form_id: str, request: Request) -> JSONResponse:
    storage = request.app.state.storage
    form = owned_form(request, form_id)
    payload = await read_json(request)
    sections = payload.get("content") if isinstance(payload, dict) else payload
    document = apply_command(form["content"], "replaceForm", {"sections": sections})
    updated = storage.forms.save_content(form_id, document)
    logger.info("Saved form content: %s (version %s)", form_id, updated["version"])
    return JSONResponse(form_output(updated))


@router.post("/api/forms/{form_id}/commands", tags=["api/forms"])
async def api_apply_commands(form_id: str, request: Request) -> JSONResponse:
    storage = request.app.state.storage
    form = owned_form(request, form_id)
    payload = await read_json(request)
    if isinstance(payload, dict) and "commands" in payload:
        if not isinstance(payload["commands"], list):
            raise SchemaValidationFailure("commands must be a list")
        document = apply_commands(form["content"], payload["commands"])
    elif isinstance(payload, dict) and isinstance(payload.get("command"), str):
        document = apply_command(form["content"], payload["command"], payload.get("payload", {}))
    else:
        raise SchemaValidationFailure("Expected a command or a commands list")
    updated = storage.forms.save_content(form_id, document)
    logger.info("Applied commands to form: %s (version %s)", form_id, updated["version"])
    return JSONResponse(form_output(updated))


@router.post("/api/forms/{form_id}/publish", tags=["api/forms"])
async def api_publish_form(form_id: str, request: Request) -> JSONResponse:
    storage = request.app.state.storage
    owned_form(request, form_id)
    published = storage.forms.publish(form_id, created_by=current_user(request))
    logger.info("Published form: %s (version %s)", form_id, published["published_version"])
    return JSONResponse(form_output(published))


@router.get("/api/forms/{form_id}/versions", tags=["api/forms"])
async def api_list_versions(form_id: str, request: Request) -> JSONResponse:
    storage = request.app.state.storage
    owned_form(request, form_id)
    versions = storage.versions.list_versions(form_id)
    return JSONResponse([form_version_output(version) for version in versions])


@router.post("/api/forms/{form_id}/versions/{version}/restore", tags=["api/forms"])
async def api_restore_version(form_id: str, version: int, request: Request) -> JSONResponse:
    storage = request.app.state.storage
    owned_form(request, form_id)
    record = storage.versions.get_version(form_id, version)
    if not record:
        raise NotFound(f"Form version not found: {version}")
    # Restored content is a new draft; it goes live on the next publish.
    updated = storage.forms.save_content(form_id, record["content"])
    logger.info(
        "Restored form %s from version %s (now version %s)", form_id, version, updated["version"]
    )
    return JSONResponse(form_output(updated))


@router.delete("/api/forms/{form_id}", tags=["api/forms"])
async def api_delete_form(form_id: str, request: Request) -> JSONResponse:
    storage = request.app.state.storage
    user_id = current_user(request)
    owned_form(request, form_id)
    for submission in storage.submissions.list_submissions(form_id):
        storage.submissions.delete_submission(submission["id"])
    storage.chat.delete_session(user_id, form_id)
    storage.forms.delete_form(form_id)
    logger.info("Deleted form: %s", form_id)
    return JSONResponse({"status": "deleted"})
