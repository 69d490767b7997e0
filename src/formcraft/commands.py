"""Mutation commands shared by the builder API and the AI tool-calling layer.

A command is a name plus a camelCase payload, exactly as a tool call
carries it. Each payload is checked against its JSON Schema before the
matching document operation runs, so a malformed command never reaches
the document.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from formcraft import document as doc
from formcraft.errors import FormcraftError, SchemaValidationFailure
from formcraft.schema import COMMAND_SCHEMAS, check_schema

logger = logging.getLogger(__name__)

Handler = Callable[[list[dict[str, Any]], dict[str, Any]], list[dict[str, Any]]]


def _add_elements_to_section(document: list[dict[str, Any]], payload: dict[str, Any]) -> list[dict[str, Any]]:
    return doc.add_elements_to_section(
        document,
        payload["sectionId"],
        payload["elements"],
        payload.get("insertAfterFieldId"),
    )


def _add_fields(document: list[dict[str, Any]], payload: dict[str, Any]) -> list[dict[str, Any]]:
    # Target: explicit section, else the anchor's section, else the first section.
    section_id = payload.get("sectionId")
    anchor = payload.get("insertAfterFieldId")
    if not section_id and anchor:
        try:
            section_id = doc.find_field(document, anchor)[0]["id"]
        except FormcraftError:
            section_id = None
    if not section_id:
        section_id = document[0]["id"]
    return doc.add_elements_to_section(document, section_id, payload["elements"], anchor)


def _create_section(document: list[dict[str, Any]], payload: dict[str, Any]) -> list[dict[str, Any]]:
    return doc.create_section(document, payload["section"], payload.get("insertAfterSectionId"))


def _add_section(document: list[dict[str, Any]], payload: dict[str, Any]) -> list[dict[str, Any]]:
    section = {key: payload[key] for key in ("title", "description", "showTitle", "elements") if key in payload}
    return doc.create_section(document, section, payload.get("insertAfterSectionId"))


def _delete_fields(document: list[dict[str, Any]], payload: dict[str, Any]) -> list[dict[str, Any]]:
    return doc.delete_fields(document, payload["fieldIds"])


def _update_field(document: list[dict[str, Any]], payload: dict[str, Any]) -> list[dict[str, Any]]:
    return doc.update_field(document, payload["fieldId"], payload["updates"])


def _replace_form(document: list[dict[str, Any]], payload: dict[str, Any]) -> list[dict[str, Any]]:
    return doc.replace_form(document, payload["sections"])


def _reorder_fields(document: list[dict[str, Any]], payload: dict[str, Any]) -> list[dict[str, Any]]:
    return doc.reorder_fields(document, payload["sectionId"], payload["fieldIds"])


def _reorder_sections(document: list[dict[str, Any]], payload: dict[str, Any]) -> list[dict[str, Any]]:
    return doc.reorder_sections(document, payload["sectionIds"])


def _update_section(document: list[dict[str, Any]], payload: dict[str, Any]) -> list[dict[str, Any]]:
    return doc.update_section(document, payload["sectionId"], payload["updates"])


def _delete_section(document: list[dict[str, Any]], payload: dict[str, Any]) -> list[dict[str, Any]]:
    return doc.delete_section(document, payload["sectionId"])


def _move_field(document: list[dict[str, Any]], payload: dict[str, Any]) -> list[dict[str, Any]]:
    return doc.move_field(
        document, payload["fieldId"], payload["toSectionId"], payload.get("insertAfterFieldId")
    )


HANDLERS: dict[str, Handler] = {
    "addElementsToSection": _add_elements_to_section,
    "addFields": _add_fields,
    "createSection": _create_section,
    "addSection": _add_section,
    "deleteFields": _delete_fields,
    "updateField": _update_field,
    "replaceForm": _replace_form,
    "reorderFields": _reorder_fields,
    "reorderSections": _reorder_sections,
    "updateSection": _update_section,
    "deleteSection": _delete_section,
    "moveField": _move_field,
}

if set(HANDLERS) != set(COMMAND_SCHEMAS):
    raise RuntimeError("Command handlers and schemas are out of sync")


def apply_command(
    document: list[dict[str, Any]], name: str, payload: Any
) -> list[dict[str, Any]]:
    handler = HANDLERS.get(name)
    if handler is None:
        raise SchemaValidationFailure(f"Unknown command: {name}")
    check_schema(COMMAND_SCHEMAS[name], payload, f"{name} command")
    updated = handler(document, payload)
    doc.check_invariants(updated)
    return updated


def apply_commands(
    document: list[dict[str, Any]], commands: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """Apply ``[{"command": name, "payload": {...}}, ...]`` all-or-nothing."""
    current = document
    for index, item in enumerate(commands):
        if not isinstance(item, dict) or not isinstance(item.get("command"), str):
            raise SchemaValidationFailure("Invalid command batch", [f"{index}: missing command name"])
        current = apply_command(current, item["command"], item.get("payload", {}))
    return current


def apply_tool_invocations(
    document: list[dict[str, Any]], invocations: list[dict[str, Any]]
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Apply AI tool calls one by one.

    A failing invocation is reported in the result list and skipped; the
    invocations after it still run against the last good document.
    """
    current = document
    results: list[dict[str, Any]] = []
    for invocation in invocations:
        name = str(invocation.get("toolName", ""))
        try:
            current = apply_command(current, name, invocation.get("input"))
        except FormcraftError as exc:
            logger.warning("Tool invocation %s rejected: %s", name, exc.message)
            results.append({"toolName": name, "success": False, "error": exc.to_detail()})
            continue
        results.append({"toolName": name, "success": True})
    return current, results
