from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import Request

from formcraft.errors import NotFound, SchemaValidationFailure
from formcraft.utils import to_iso


def current_user(request: Request) -> str:
    return request.app.state.auth_provider.current_user(request)


async def read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise SchemaValidationFailure("Request body is not valid JSON") from exc


def owned_form(request: Request, form_id: str) -> dict[str, Any]:
    user_id = current_user(request)
    form = request.app.state.storage.forms.get_form(form_id)
    if not form or form.get("user_id") != user_id:
        raise NotFound(f"Form not found: {form_id}")
    return form


def _iso_or_none(value: Any) -> str | None:
    return to_iso(value) if isinstance(value, datetime) else None


def form_output(form: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": form["id"],
        "share_url": form["share_url"],
        "name": form["name"],
        "description": form.get("description", ""),
        "content": form.get("content", []),
        "version": form.get("version", 1),
        "published": bool(form.get("published")),
        "published_version": form.get("published_version"),
        "published_at": _iso_or_none(form.get("published_at")),
        "created_at": _iso_or_none(form.get("created_at")),
        "updated_at": _iso_or_none(form.get("updated_at")),
    }


def form_version_output(version: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": version["id"],
        "form_id": version["form_id"],
        "version": version["version"],
        "name": version.get("name", ""),
        "description": version.get("description", ""),
        "content": version.get("content", []),
        "created_by": version.get("created_by"),
        "created_at": _iso_or_none(version.get("created_at")),
    }


def submission_output(submission: dict[str, Any]) -> dict[str, Any]:
    output = {
        key: value
        for key, value in submission.items()
        if key not in {"created_at", "updated_at"}
    }
    output["created_at"] = _iso_or_none(submission.get("created_at"))
    output["updated_at"] = _iso_or_none(submission.get("updated_at"))
    return output


def chat_message_output(message: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": message["id"],
        "session_id": message["session_id"],
        "role": message["role"],
        "content": message["content"],
        "tool_invocations": message.get("tool_invocations"),
        "actions_applied": bool(message.get("actions_applied")),
        "created_at": _iso_or_none(message.get("created_at")),
    }
