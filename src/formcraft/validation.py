from __future__ import annotations

from typing import Any

from formcraft.document import iter_fields
from formcraft.fields import field_label, is_interactive, validate_value
from formcraft.utils import dumps_json


def interactive_fields(document: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        element
        for _, element in iter_fields(document)
        if is_interactive(element)
    ]


def validate_submission(document: list[dict[str, Any]], answers: dict[str, Any]) -> dict[str, bool]:
    """Map each interactive field id, in document order, to pass/fail."""
    return {
        element["id"]: validate_value(element, answers.get(element["id"], ""))
        for element in interactive_fields(document)
    }


def is_acceptable(result: dict[str, bool]) -> bool:
    return all(result.values())


def invalid_fields(document: list[dict[str, Any]], answers: dict[str, Any]) -> list[dict[str, Any]]:
    errors: list[dict[str, Any]] = []
    for element in interactive_fields(document):
        value = answers.get(element["id"], "")
        if validate_value(element, value):
            continue
        attrs = element.get("extraAttributes") or {}
        code = "required" if attrs.get("required") and value in (None, "") else "invalid"
        errors.append({"field": element["id"], "label": field_label(element), "code": code})
    return errors


def clean_answers(document: list[dict[str, Any]], answers: dict[str, Any]) -> dict[str, str]:
    """Keep answers for interactive fields only, as strings."""
    allowed = {element["id"] for element in interactive_fields(document)}
    cleaned: dict[str, str] = {}
    for key, value in answers.items():
        if key not in allowed or value is None:
            continue
        if isinstance(value, bool):
            cleaned[key] = "true" if value else "false"
        elif isinstance(value, (list, dict)):
            cleaned[key] = dumps_json(value)
        else:
            cleaned[key] = str(value)
    return cleaned
