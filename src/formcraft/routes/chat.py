from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from formcraft.commands import apply_tool_invocations
from formcraft.document import documents_equal
from formcraft.errors import Conflict, NotFound, SchemaValidationFailure
from formcraft.routes.deps import (
    chat_message_output,
    current_user,
    form_output,
    owned_form,
    read_json,
)
from formcraft.schema import CHAT_MESSAGE_SCHEMA, check_schema
from formcraft.utils import new_ulid, now_utc

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_or_create_session(storage: Any, user_id: str, form_id: str) -> dict[str, Any]:
    session = storage.chat.get_session(user_id, form_id)
    if session:
        return session
    now = now_utc()
    storage.chat.create_session(
        {"id": new_ulid(), "user_id": user_id, "form_id": form_id, "created_at": now, "updated_at": now}
    )
    return storage.chat.get_session(user_id, form_id)


@router.get("/api/forms/{form_id}/chat", tags=["api/chat"])
async def api_get_chat(form_id: str, request: Request) -> JSONResponse:
    storage = request.app.state.storage
    owned_form(request, form_id)
    session = _get_or_create_session(storage, current_user(request), form_id)
    messages = storage.chat.list_messages(session["id"])
    return JSONResponse(
        {
            "session_id": session["id"],
            "form_id": form_id,
            "messages": [chat_message_output(message) for message in messages],
        }
    )


@router.post("/api/forms/{form_id}/chat/messages", tags=["api/chat"])
async def api_create_chat_message(form_id: str, request: Request) -> JSONResponse:
    storage = request.app.state.storage
    owned_form(request, form_id)
    payload = await read_json(request)
    check_schema(CHAT_MESSAGE_SCHEMA, payload, "chat message")
    if payload.get("tool_invocations") and payload["role"] != "assistant":
        raise SchemaValidationFailure("Only assistant messages carry tool invocations")

    session = _get_or_create_session(storage, current_user(request), form_id)
    message = {
        "id": new_ulid(),
        "session_id": session["id"],
        "role": payload["role"],
        "content": payload["content"],
        "tool_invocations": payload.get("tool_invocations"),
        "actions_applied": False,
        "created_at": now_utc(),
    }
    storage.chat.create_message(message)
    storage.chat.touch_session(session["id"])
    return JSONResponse(chat_message_output(message), status_code=201)


@router.post("/api/forms/{form_id}/chat/messages/{message_id}/apply", tags=["api/chat"])
async def api_apply_chat_message(form_id: str, message_id: str, request: Request) -> JSONResponse:
    storage = request.app.state.storage
    form = owned_form(request, form_id)
    session = storage.chat.get_session(current_user(request), form_id)
    message = storage.chat.get_message(message_id)
    if not session or not message or message["session_id"] != session["id"]:
        raise NotFound(f"Chat message not found: {message_id}")
    if message["actions_applied"]:
        raise Conflict("Message actions were already applied")
    if not message.get("tool_invocations"):
        raise SchemaValidationFailure("Message has no tool invocations")

    document, results = apply_tool_invocations(form["content"], message["tool_invocations"])
    if not documents_equal(document, form["content"]):
        form = storage.forms.save_content(form_id, document)
        logger.info("Applied chat actions to form: %s (version %s)", form_id, form["version"])
    storage.chat.mark_actions_applied(message_id)
    return JSONResponse({"form": form_output(form), "results": results})


@router.delete("/api/forms/{form_id}/chat", tags=["api/chat"])
async def api_clear_chat(form_id: str, request: Request) -> JSONResponse:
    storage = request.app.state.storage
    owned_form(request, form_id)
    storage.chat.delete_session(current_user(request), form_id)
    return JSONResponse({"status": "deleted"})
