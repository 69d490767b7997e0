"""Form document model.

A document is a list of section dicts::

    [{"id": ..., "title": ..., "description": ..., "showTitle": False,
      "elements": [{"id": ..., "type": ..., "extraAttributes": {...}}, ...]}]

Every operation here takes a document and returns a new one. Inputs are
never mutated, so callers can keep the previous value for diffing or undo.
Operations raise before building anything, which leaves the caller's
document untouched on failure.
"""

from __future__ import annotations

import copy
from collections import Counter
from typing import Any, Callable, Iterable, Iterator

import orjson

from formcraft.errors import (
    DuplicateId,
    FieldNotFound,
    FormcraftError,
    ReorderSetMismatch,
    SchemaValidationFailure,
    SectionNotFound,
)
from formcraft.fields import get_definition, validate_attributes, with_defaults
from formcraft.utils import new_ulid

IdFactory = Callable[[], str]

SECTION_KEYS = ("title", "description", "showTitle")


def new_section(section_id: str, title: str | None = None) -> dict[str, Any]:
    return {
        "id": section_id,
        "title": title or "Untitled Section",
        "description": "",
        "showTitle": False,
        "elements": [],
    }


def new_document(id_factory: IdFactory = new_ulid) -> list[dict[str, Any]]:
    return [new_section(id_factory(), "Section 1")]


def iter_fields(document: list[dict[str, Any]]) -> Iterator[tuple[dict[str, Any], dict[str, Any]]]:
    for section in document:
        for element in section.get("elements", []):
            yield section, element


def field_ids(document: list[dict[str, Any]]) -> list[str]:
    return [element["id"] for _, element in iter_fields(document)]


def section_ids(document: list[dict[str, Any]]) -> list[str]:
    return [section["id"] for section in document]


def find_section(document: list[dict[str, Any]], section_id: str) -> dict[str, Any]:
    for section in document:
        if section["id"] == section_id:
            return section
    raise SectionNotFound(section_id)


def find_field(document: list[dict[str, Any]], field_id: str) -> tuple[dict[str, Any], dict[str, Any]]:
    for section, element in iter_fields(document):
        if element["id"] == field_id:
            return section, element
    raise FieldNotFound(field_id)


def _duplicates(ids: Iterable[str]) -> list[str]:
    return sorted(key for key, count in Counter(ids).items() if count > 1)


def check_invariants(document: list[dict[str, Any]]) -> None:
    if not document:
        raise FormcraftError("A form needs at least one section")
    duplicated = _duplicates(section_ids(document)) + _duplicates(field_ids(document))
    if duplicated:
        raise DuplicateId(duplicated)


def _build_element(raw: dict[str, Any], field_id: str) -> dict[str, Any]:
    field_type = raw.get("type")
    definition = get_definition(field_type)
    attributes = with_defaults(field_type, raw.get("extraAttributes"))
    validate_attributes(field_type, attributes)
    return {"id": field_id, "type": definition.type.value, "extraAttributes": attributes}


def _build_section(
    raw: dict[str, Any],
    section_id: str,
    element_id: Callable[[dict[str, Any]], str],
) -> dict[str, Any]:
    title = raw.get("title")
    if title is not None and not isinstance(title, str):
        raise SchemaValidationFailure("Invalid section", ["title: must be a string"])
    section = new_section(section_id, title)
    section["description"] = str(raw.get("description") or "")
    section["showTitle"] = bool(raw.get("showTitle", False))
    section["elements"] = [_build_element(item, element_id(item)) for item in raw.get("elements") or []]
    return section


def _insert_after(items: list[Any], new_items: list[Any], anchor_id: str | None) -> list[Any]:
    """Insert after the item with ``anchor_id``; append when the anchor is absent."""
    result = list(items)
    position = len(result)
    if anchor_id:
        for index, item in enumerate(result):
            if item["id"] == anchor_id:
                position = index + 1
                break
    result[position:position] = new_items
    return result


def _replace_section(
    document: list[dict[str, Any]], section_id: str, elements: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    return [
        {**section, "elements": elements} if section["id"] == section_id else section
        for section in document
    ]


def add_elements_to_section(
    document: list[dict[str, Any]],
    section_id: str,
    elements: list[dict[str, Any]],
    insert_after_field_id: str | None = None,
    id_factory: IdFactory = new_ulid,
) -> list[dict[str, Any]]:
    section = find_section(document, section_id)
    new_elements = [_build_element(raw, id_factory()) for raw in elements]
    merged = _insert_after(section["elements"], new_elements, insert_after_field_id)
    return _replace_section(document, section_id, merged)


def create_section(
    document: list[dict[str, Any]],
    section: dict[str, Any],
    insert_after_section_id: str | None = None,
    id_factory: IdFactory = new_ulid,
) -> list[dict[str, Any]]:
    section_id = section.get("id")
    if not section_id or section_id in section_ids(document):
        section_id = id_factory()
    built = _build_section(section, section_id, lambda _raw: id_factory())
    return _insert_after(document, [built], insert_after_section_id)


def delete_fields(document: list[dict[str, Any]], ids: Iterable[str]) -> list[dict[str, Any]]:
    targets = set(ids)
    return [
        {**section, "elements": [el for el in section["elements"] if el["id"] not in targets]}
        for section in document
    ]


def _shared_attributes(old_type: str, new_type: str, attributes: dict[str, Any]) -> dict[str, Any]:
    old_props = set(get_definition(old_type).attributes_schema["properties"])
    new_props = set(get_definition(new_type).attributes_schema["properties"])
    shared = old_props & new_props
    return {key: value for key, value in attributes.items() if key in shared}


def update_field(
    document: list[dict[str, Any]], field_id: str, updates: dict[str, Any]
) -> list[dict[str, Any]]:
    section, element = find_field(document, field_id)
    partial = updates.get("extraAttributes") or {}
    old_type = element["type"]
    new_type = updates.get("type") or old_type
    definition = get_definition(new_type)

    if definition.type.value != old_type:
        attributes = with_defaults(
            new_type, _shared_attributes(old_type, definition.type.value, element["extraAttributes"])
        )
    else:
        attributes = copy.deepcopy(element["extraAttributes"])
    attributes.update(partial)
    validate_attributes(new_type, attributes)

    updated = {**element, "type": definition.type.value, "extraAttributes": attributes}
    elements = [updated if el["id"] == field_id else el for el in section["elements"]]
    return _replace_section(document, section["id"], elements)


def _check_permutation(current: list[str], proposed: list[str]) -> None:
    if len(proposed) == len(current) and Counter(proposed) == Counter(current):
        return
    current_set = set(current)
    proposed_set = set(proposed)
    missing = [item for item in current if item not in proposed_set]
    unexpected = [item for item in proposed if item not in current_set]
    unexpected += _duplicates(proposed)
    raise ReorderSetMismatch(missing, unexpected)


def reorder_fields(
    document: list[dict[str, Any]], section_id: str, ids: list[str]
) -> list[dict[str, Any]]:
    section = find_section(document, section_id)
    _check_permutation([el["id"] for el in section["elements"]], ids)
    by_id = {el["id"]: el for el in section["elements"]}
    return _replace_section(document, section_id, [by_id[item] for item in ids])


def reorder_sections(document: list[dict[str, Any]], ids: list[str]) -> list[dict[str, Any]]:
    _check_permutation(section_ids(document), ids)
    by_id = {section["id"]: section for section in document}
    return [by_id[item] for item in ids]


def replace_form(
    document: list[dict[str, Any]],
    sections: list[dict[str, Any]],
    id_factory: IdFactory = new_ulid,
) -> list[dict[str, Any]]:
    if not sections:
        raise FormcraftError("A form needs at least one section")
    supplied_sections = [raw["id"] for raw in sections if raw.get("id")]
    supplied_fields = [
        item["id"] for raw in sections for item in raw.get("elements") or [] if item.get("id")
    ]
    duplicated = _duplicates(supplied_sections) + _duplicates(supplied_fields)
    if duplicated:
        raise DuplicateId(duplicated)

    replaced = [
        _build_section(
            raw,
            raw.get("id") or id_factory(),
            lambda item: item.get("id") or id_factory(),
        )
        for raw in sections
    ]
    check_invariants(replaced)
    return replaced


def update_section(
    document: list[dict[str, Any]], section_id: str, updates: dict[str, Any]
) -> list[dict[str, Any]]:
    find_section(document, section_id)
    changes = {key: updates[key] for key in SECTION_KEYS if key in updates}
    return [{**section, **changes} if section["id"] == section_id else section for section in document]


def delete_section(document: list[dict[str, Any]], section_id: str) -> list[dict[str, Any]]:
    find_section(document, section_id)
    if len(document) == 1:
        raise FormcraftError("Cannot delete the last section")
    return [section for section in document if section["id"] != section_id]


def move_field(
    document: list[dict[str, Any]],
    field_id: str,
    to_section_id: str,
    insert_after_field_id: str | None = None,
) -> list[dict[str, Any]]:
    source, element = find_field(document, field_id)
    find_section(document, to_section_id)
    if insert_after_field_id == field_id:
        # Anchored on itself: stays put within its section, else appended.
        if source["id"] == to_section_id:
            return document
        insert_after_field_id = None
    without = delete_fields(document, [field_id])
    target = find_section(without, to_section_id)
    merged = _insert_after(target["elements"], [element], insert_after_field_id)
    return _replace_section(without, to_section_id, merged)


def dumps_document(document: list[dict[str, Any]]) -> str:
    return orjson.dumps(document).decode("utf-8")


def loads_document(value: str | bytes | list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    """Decode stored content; an empty value yields an empty list."""
    if value is None or value == "" or value == b"":
        return []
    if isinstance(value, list):
        return value
    decoded = orjson.loads(value)
    if not isinstance(decoded, list):
        raise FormcraftError("Stored form content must be a list of sections")
    return decoded


def normalize_document(
    document: list[dict[str, Any]] | None, id_factory: IdFactory = new_ulid
) -> list[dict[str, Any]]:
    """Guarantee the one-section minimum for loaded content."""
    if not document:
        return new_document(id_factory)
    return document


def documents_equal(left: list[dict[str, Any]], right: list[dict[str, Any]]) -> bool:
    return orjson.dumps(left) == orjson.dumps(right)
