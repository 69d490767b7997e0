from __future__ import annotations

from typing import Any

from jsonschema import Draft7Validator

from formcraft.errors import SchemaValidationFailure

ALIGN_VALUES = ["left", "center", "right"]

_STRING = {"type": "string"}
_BOOLEAN = {"type": "boolean"}
_OPTIONS = {"type": "array", "items": {"type": "string"}}


def _attributes(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": False,
    }


def _input_attributes(**extra: Any) -> dict[str, Any]:
    properties: dict[str, Any] = {
        "label": _STRING,
        "helperText": _STRING,
        "required": _BOOLEAN,
        "placeholder": _STRING,
    }
    properties.update(extra)
    return properties


ATTRIBUTE_SCHEMAS: dict[str, dict[str, Any]] = {
    "TextField": _attributes(_input_attributes(), ["label", "required"]),
    "Number": _attributes(_input_attributes(), ["label", "required"]),
    "TextArea": _attributes(
        _input_attributes(
            showHelperText=_BOOLEAN,
            rows={"type": "integer", "minimum": 1, "maximum": 20},
        ),
        ["label", "required"],
    ),
    "Date": _attributes(
        {
            "label": _STRING,
            "helperText": _STRING,
            "required": _BOOLEAN,
            "includeTime": _BOOLEAN,
        },
        ["label", "required"],
    ),
    "Checkbox": _attributes(
        {"label": _STRING, "helperText": _STRING, "required": _BOOLEAN},
        ["label", "required"],
    ),
    "Select": _attributes(_input_attributes(options=_OPTIONS), ["label", "required", "options"]),
    "Email": _attributes(_input_attributes(), ["label", "required"]),
    "Phone": _attributes(_input_attributes(), ["label", "required"]),
    "RadioGroup": _attributes(
        {
            "label": _STRING,
            "helperText": _STRING,
            "showHelperText": _BOOLEAN,
            "required": _BOOLEAN,
            "options": {**_OPTIONS, "minItems": 2},
        },
        ["label", "required", "options"],
    ),
    "CheckboxGroup": _attributes(
        {
            "label": _STRING,
            "helperText": _STRING,
            "required": _BOOLEAN,
            "minSelect": {"type": "integer", "minimum": 0},
            "maxSelect": {"type": "integer", "minimum": 0},
            "options": {**_OPTIONS, "minItems": 2},
        },
        ["label", "required", "options"],
    ),
    "Rating": _attributes(
        {
            "label": _STRING,
            "helperText": _STRING,
            "required": _BOOLEAN,
            "maxRating": {"type": "integer", "minimum": 3, "maximum": 10},
            "ratingStyle": {"type": "string", "enum": ["stars", "numbers"]},
        },
        ["label", "required", "maxRating", "ratingStyle"],
    ),
    "YesNo": _attributes(
        {
            "label": _STRING,
            "helperText": _STRING,
            "required": _BOOLEAN,
            "yesLabel": _STRING,
            "noLabel": _STRING,
        },
        ["label", "required"],
    ),
    "Heading": _attributes(
        {
            "title": _STRING,
            "subtitle": _STRING,
            "level": {"type": "string", "enum": ["h1", "h2", "h3", "h4"]},
            "align": {"type": "string", "enum": ALIGN_VALUES},
        },
        ["title", "level"],
    ),
    "RichText": _attributes(
        {"content": _STRING, "align": {"type": "string", "enum": ALIGN_VALUES}},
        ["content"],
    ),
}

FIELD_TYPE_NAMES = list(ATTRIBUTE_SCHEMAS.keys())

_ID = {"type": "string", "minLength": 1}
_ID_LIST = {"type": "array", "items": _ID}

ELEMENT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": _ID,
        "type": {"type": "string", "enum": FIELD_TYPE_NAMES},
        "extraAttributes": {"type": "object"},
    },
    "required": ["type"],
    "additionalProperties": False,
}

SECTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": _ID,
        "title": _STRING,
        "description": _STRING,
        "showTitle": _BOOLEAN,
        "elements": {"type": "array", "items": ELEMENT_SCHEMA},
    },
    "required": ["title"],
    "additionalProperties": False,
}

_SECTION_UPDATES = {
    "type": "object",
    "properties": {"title": _STRING, "description": _STRING, "showTitle": _BOOLEAN},
    "additionalProperties": False,
}


def _command(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": False,
    }


COMMAND_SCHEMAS: dict[str, dict[str, Any]] = {
    "addElementsToSection": _command(
        {
            "sectionId": _ID,
            "elements": {"type": "array", "items": ELEMENT_SCHEMA},
            "insertAfterFieldId": _ID,
        },
        ["sectionId", "elements"],
    ),
    "addFields": _command(
        {
            "elements": {"type": "array", "items": ELEMENT_SCHEMA},
            "insertAfterFieldId": _ID,
            "sectionId": _ID,
        },
        ["elements"],
    ),
    "createSection": _command(
        {"section": SECTION_SCHEMA, "insertAfterSectionId": _ID},
        ["section"],
    ),
    "addSection": _command(
        {
            "title": _STRING,
            "description": _STRING,
            "showTitle": _BOOLEAN,
            "insertAfterSectionId": _ID,
            "elements": {"type": "array", "items": ELEMENT_SCHEMA},
        },
        ["title"],
    ),
    "deleteFields": _command({"fieldIds": _ID_LIST}, ["fieldIds"]),
    "updateField": _command(
        {
            "fieldId": _ID,
            "updates": {
                "type": "object",
                "properties": {
                    "type": {"type": "string", "enum": FIELD_TYPE_NAMES},
                    "extraAttributes": {"type": "object"},
                },
                "additionalProperties": False,
            },
        },
        ["fieldId", "updates"],
    ),
    "replaceForm": _command(
        {"sections": {"type": "array", "items": SECTION_SCHEMA, "minItems": 1}},
        ["sections"],
    ),
    "reorderFields": _command({"sectionId": _ID, "fieldIds": _ID_LIST}, ["sectionId", "fieldIds"]),
    "reorderSections": _command({"sectionIds": _ID_LIST}, ["sectionIds"]),
    "updateSection": _command({"sectionId": _ID, "updates": _SECTION_UPDATES}, ["sectionId", "updates"]),
    "deleteSection": _command({"sectionId": _ID}, ["sectionId"]),
    "moveField": _command(
        {"fieldId": _ID, "toSectionId": _ID, "insertAfterFieldId": _ID},
        ["fieldId", "toSectionId"],
    ),
}

_VALIDATORS: dict[int, Draft7Validator] = {}


def _validator(schema: dict[str, Any]) -> Draft7Validator:
    key = id(schema)
    validator = _VALIDATORS.get(key)
    if validator is None:
        validator = Draft7Validator(schema)
        _VALIDATORS[key] = validator
    return validator


def schema_errors(schema: dict[str, Any], payload: Any) -> list[str]:
    validator = _validator(schema)
    errors = sorted(validator.iter_errors(payload), key=lambda err: list(err.path))
    messages: list[str] = []
    for err in errors:
        path = ".".join(str(part) for part in err.path)
        messages.append(f"{path}: {err.message}" if path else err.message)
    return messages


def check_schema(schema: dict[str, Any], payload: Any, what: str) -> None:
    errors = schema_errors(schema, payload)
    if errors:
        raise SchemaValidationFailure(f"Invalid {what}", errors)


SUBMISSION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "session_id": _ID,
        "data": {"type": "object"},
        "is_complete": _BOOLEAN,
        "last_section_index": {"type": "integer", "minimum": 0},
    },
    "required": ["session_id", "data"],
    "additionalProperties": False,
}

TOOL_INVOCATION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "toolName": {"type": "string", "minLength": 1},
        "input": {"type": "object"},
    },
    "required": ["toolName", "input"],
}

CHAT_MESSAGE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "role": {"type": "string", "enum": ["user", "assistant"]},
        "content": _STRING,
        "tool_invocations": {"type": "array", "items": TOOL_INVOCATION_SCHEMA},
    },
    "required": ["role", "content"],
    "additionalProperties": False,
}
