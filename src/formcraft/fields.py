"""Field type registry.

Every field placed in a form is a plain dict::

    {"id": "...", "type": "TextField", "extraAttributes": {...}}

The type tag selects a :class:`FieldTypeDefinition` which knows the default
attributes, the attribute schema and the value validation rule. Adding a
field type means adding a ``FieldType`` member, an attribute schema and a
registry entry; the module refuses to import if one of them is missing.
"""

from __future__ import annotations

import copy
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

import orjson

from formcraft.errors import UnknownFieldType
from formcraft.schema import ATTRIBUTE_SCHEMAS, check_schema

PHONE_PATTERN = re.compile(r"^[+]?[(]?[0-9]{1,4}[)]?(?:[-\s.]?[(]?[0-9]{1,9}[)]?){1,4}$")
PHONE_SEPARATORS = re.compile(r"[\s\-.()+]")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_MIN_DIGITS = 7
NUMBER_PATTERN = re.compile(r"^-?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?$", re.ASCII)
RATING_PATTERN = re.compile(r"^\d+$", re.ASCII)


class FieldType(str, Enum):
    TEXT_FIELD = "TextField"
    NUMBER = "Number"
    TEXTAREA = "TextArea"
    DATE = "Date"
    CHECKBOX = "Checkbox"
    SELECT = "Select"
    EMAIL = "Email"
    PHONE = "Phone"
    RADIO_GROUP = "RadioGroup"
    CHECKBOX_GROUP = "CheckboxGroup"
    RATING = "Rating"
    YES_NO = "YesNo"
    HEADING = "Heading"
    RICH_TEXT = "RichText"


Validator = Callable[[dict[str, Any], str], bool]


@dataclass(frozen=True)
class FieldTypeDefinition:
    type: FieldType
    label: str
    interactive: bool
    defaults: dict[str, Any]
    validate: Validator

    @property
    def attributes_schema(self) -> dict[str, Any]:
        return ATTRIBUTE_SCHEMAS[self.type.value]

    def construct(self, field_id: str) -> dict[str, Any]:
        return {
            "id": field_id,
            "type": self.type.value,
            "extraAttributes": copy.deepcopy(self.defaults),
        }


def _attrs(instance: dict[str, Any]) -> dict[str, Any]:
    return instance.get("extraAttributes") or {}


def _is_required(instance: dict[str, Any]) -> bool:
    return bool(_attrs(instance).get("required"))


def _validate_text(instance: dict[str, Any], value: str) -> bool:
    if _is_required(instance):
        return len(value) > 0
    return True


def _validate_number(instance: dict[str, Any], value: str) -> bool:
    if not value:
        return not _is_required(instance)
    if not NUMBER_PATTERN.fullmatch(value):
        return False
    return math.isfinite(float(value))


def _validate_email(instance: dict[str, Any], value: str) -> bool:
    if not value:
        return not _is_required(instance)
    return bool(EMAIL_PATTERN.fullmatch(value))


def _validate_checkbox(instance: dict[str, Any], value: str) -> bool:
    if _is_required(instance):
        return value == "true"
    return True


def _validate_yes_no(instance: dict[str, Any], value: str) -> bool:
    if _is_required(instance):
        return value in {"yes", "no"}
    return True


def _validate_phone(instance: dict[str, Any], value: str) -> bool:
    if not value:
        return not _is_required(instance)
    cleaned = PHONE_SEPARATORS.sub("", value)
    if len(cleaned) < PHONE_MIN_DIGITS:
        return False
    return bool(PHONE_PATTERN.fullmatch(value))


def _selected_values(value: str) -> list[Any]:
    if not value:
        return []
    try:
        parsed = orjson.loads(value)
    except orjson.JSONDecodeError:
        return []
    return parsed if isinstance(parsed, list) else []


def _validate_checkbox_group(instance: dict[str, Any], value: str) -> bool:
    attrs = _attrs(instance)
    selected = _selected_values(value)
    if attrs.get("required") and not selected:
        return False
    min_select = attrs.get("minSelect") or 0
    max_select = attrs.get("maxSelect") or 0
    if min_select > 0 and len(selected) < min_select:
        return False
    if max_select > 0 and len(selected) > max_select:
        return False
    return True


def _validate_rating(instance: dict[str, Any], value: str) -> bool:
    if not value:
        return not _is_required(instance)
    if not RATING_PATTERN.fullmatch(value):
        return False
    rating = int(value)
    max_rating = _attrs(instance).get("maxRating") or 5
    return 1 <= rating <= max_rating


def _always_valid(instance: dict[str, Any], value: str) -> bool:
    return True


REGISTRY: dict[FieldType, FieldTypeDefinition] = {
    FieldType.TEXT_FIELD: FieldTypeDefinition(
        type=FieldType.TEXT_FIELD,
        label="Text Field",
        interactive=True,
        defaults={
            "label": "Text Field",
            "helperText": "Helper text",
            "required": False,
            "placeholder": "Value here...",
        },
        validate=_validate_text,
    ),
    FieldType.NUMBER: FieldTypeDefinition(
        type=FieldType.NUMBER,
        label="Number Field",
        interactive=True,
        defaults={
            "label": "Number Field",
            "helperText": "Helper text",
            "required": False,
            "placeholder": "0",
        },
        validate=_validate_number,
    ),
    FieldType.TEXTAREA: FieldTypeDefinition(
        type=FieldType.TEXTAREA,
        label="Text Area",
        interactive=True,
        defaults={
            "label": "Text Area",
            "helperText": "Helper text",
            "showHelperText": False,
            "required": False,
            "placeholder": "Value here...",
            "rows": 3,
        },
        validate=_validate_text,
    ),
    FieldType.DATE: FieldTypeDefinition(
        type=FieldType.DATE,
        label="Date Field",
        interactive=True,
        defaults={
            "label": "Date Field",
            "helperText": "Pick a date",
            "required": False,
            "includeTime": False,
        },
        # Only presence is checked; the input surface owns the date format.
        validate=_validate_text,
    ),
    FieldType.CHECKBOX: FieldTypeDefinition(
        type=FieldType.CHECKBOX,
        label="Checkbox",
        interactive=True,
        defaults={"label": "Checkbox", "helperText": "Check this box", "required": False},
        validate=_validate_checkbox,
    ),
    FieldType.SELECT: FieldTypeDefinition(
        type=FieldType.SELECT,
        label="Select Field",
        interactive=True,
        defaults={
            "label": "Select Field",
            "helperText": "Choose an option",
            "required": False,
            "placeholder": "Value here...",
            "options": [],
        },
        validate=_validate_text,
    ),
    FieldType.EMAIL: FieldTypeDefinition(
        type=FieldType.EMAIL,
        label="Email",
        interactive=True,
        defaults={
            "label": "Email",
            "helperText": "Enter your email address",
            "required": False,
            "placeholder": "name@example.com",
        },
        validate=_validate_email,
    ),
    FieldType.PHONE: FieldTypeDefinition(
        type=FieldType.PHONE,
        label="Phone Number",
        interactive=True,
        defaults={
            "label": "Phone Number",
            "helperText": "Enter your phone number",
            "required": False,
            "placeholder": "+1 (555) 000-0000",
        },
        validate=_validate_phone,
    ),
    FieldType.RADIO_GROUP: FieldTypeDefinition(
        type=FieldType.RADIO_GROUP,
        label="Single Choice",
        interactive=True,
        defaults={
            "label": "Single Choice",
            "helperText": "Select one option",
            "showHelperText": False,
            "required": False,
            "options": ["Option 1", "Option 2", "Option 3"],
        },
        validate=_validate_text,
    ),
    FieldType.CHECKBOX_GROUP: FieldTypeDefinition(
        type=FieldType.CHECKBOX_GROUP,
        label="Multiple Choice",
        interactive=True,
        defaults={
            "label": "Multiple Choice",
            "helperText": "Select all that apply",
            "required": False,
            "minSelect": 0,
            "maxSelect": 0,
            "options": ["Option 1", "Option 2", "Option 3"],
        },
        validate=_validate_checkbox_group,
    ),
    FieldType.RATING: FieldTypeDefinition(
        type=FieldType.RATING,
        label="Rating",
        interactive=True,
        defaults={
            "label": "Rating",
            "helperText": "Rate your experience",
            "required": False,
            "maxRating": 5,
            "ratingStyle": "stars",
        },
        validate=_validate_rating,
    ),
    FieldType.YES_NO: FieldTypeDefinition(
        type=FieldType.YES_NO,
        label="Yes / No",
        interactive=True,
        defaults={
            "label": "Yes / No",
            "helperText": "",
            "required": False,
            "yesLabel": "Yes",
            "noLabel": "No",
        },
        validate=_validate_yes_no,
    ),
    FieldType.HEADING: FieldTypeDefinition(
        type=FieldType.HEADING,
        label="Heading",
        interactive=False,
        defaults={"title": "Heading", "subtitle": "", "level": "h2", "align": "left"},
        validate=_always_valid,
    ),
    FieldType.RICH_TEXT: FieldTypeDefinition(
        type=FieldType.RICH_TEXT,
        label="Rich Text",
        interactive=False,
        defaults={
            "content": "Add your content here. You can use **bold**, *italic*, and other markdown formatting.",
            "align": "left",
        },
        validate=_always_valid,
    ),
}

_missing = {member.value for member in FieldType} ^ set(ATTRIBUTE_SCHEMAS)
_missing |= {member.value for member in FieldType if member not in REGISTRY}
if _missing:
    raise RuntimeError(f"Field registry is incomplete: {sorted(_missing)}")


def get_definition(field_type: Any) -> FieldTypeDefinition:
    try:
        return REGISTRY[FieldType(field_type)]
    except (ValueError, KeyError):
        raise UnknownFieldType(field_type) from None


def construct(field_type: Any, field_id: str) -> dict[str, Any]:
    return get_definition(field_type).construct(field_id)


def is_interactive(instance: dict[str, Any]) -> bool:
    return get_definition(instance.get("type")).interactive


def validate_value(instance: dict[str, Any], value: Any) -> bool:
    """Apply the type's validation rule. Never raises; bad input is invalid."""
    try:
        definition = get_definition(instance.get("type"))
    except UnknownFieldType:
        return False
    if value is None:
        value = ""
    if not isinstance(value, str):
        return False
    return definition.validate(instance, value)


def validate_attributes(field_type: Any, attributes: Any) -> None:
    definition = get_definition(field_type)
    check_schema(definition.attributes_schema, attributes, f"{definition.type.value} attributes")


def with_defaults(field_type: Any, attributes: dict[str, Any] | None) -> dict[str, Any]:
    """Fill attributes missing from ``attributes`` with the type's defaults."""
    merged = copy.deepcopy(get_definition(field_type).defaults)
    merged.update(attributes or {})
    return merged


def field_label(instance: dict[str, Any]) -> str:
    attrs = _attrs(instance)
    return str(attrs.get("label") or attrs.get("title") or instance.get("type") or "")
