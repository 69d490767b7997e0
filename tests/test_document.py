import copy

import pytest

from formcraft import document as doc
from formcraft.errors import (
    DuplicateId,
    FieldNotFound,
    FormcraftError,
    ReorderSetMismatch,
    SchemaValidationFailure,
    SectionNotFound,
    UnknownFieldType,
)
from formcraft.fields import validate_value


def _assert_unique(document):
    assert len(set(doc.section_ids(document))) == len(document)
    ids = doc.field_ids(document)
    assert len(set(ids)) == len(ids)


def test_new_document_has_one_section(id_factory):
    document = doc.new_document(id_factory)
    assert len(document) == 1
    assert document[0]["id"] == "id-1"
    assert document[0]["title"] == "Section 1"
    assert document[0]["elements"] == []


def test_add_required_text_field(id_factory):
    document = [doc.new_section("S1")]
    result = doc.add_elements_to_section(
        document,
        "S1",
        [{"type": "TextField", "extraAttributes": {"label": "Name", "required": True}}],
        id_factory=id_factory,
    )
    elements = result[0]["elements"]
    assert len(elements) == 1
    assert elements[0]["type"] == "TextField"
    assert elements[0]["extraAttributes"]["required"] is True
    assert elements[0]["extraAttributes"]["label"] == "Name"
    assert document[0]["elements"] == []


def test_add_elements_after_anchor(document, id_factory):
    result = doc.add_elements_to_section(
        document, "A", [{"type": "Email"}], insert_after_field_id="name", id_factory=id_factory
    )
    assert [el["id"] for el in result[0]["elements"]] == ["name", "id-1", "nickname"]


def test_add_elements_stale_anchor_appends(document, id_factory):
    result = doc.add_elements_to_section(
        document, "A", [{"type": "Email"}], insert_after_field_id="gone", id_factory=id_factory
    )
    assert [el["id"] for el in result[0]["elements"]] == ["name", "nickname", "id-1"]


def test_add_elements_errors(document):
    with pytest.raises(SectionNotFound):
        doc.add_elements_to_section(document, "missing", [{"type": "TextField"}])
    with pytest.raises(UnknownFieldType):
        doc.add_elements_to_section(document, "A", [{"type": "Signature"}])


def test_create_section_positions(document, id_factory):
    result = doc.create_section(document, {"title": "Middle"}, "A", id_factory=id_factory)
    assert doc.section_ids(result) == ["A", "id-1", "B"]
    appended = doc.create_section(document, {"title": "Last"}, id_factory=id_factory)
    assert doc.section_ids(appended) == ["A", "B", "id-2"]


def test_create_section_replaces_colliding_ids(document, id_factory):
    result = doc.create_section(
        document,
        {"id": "A", "title": "Copy", "elements": [{"id": "name", "type": "TextField"}]},
        id_factory=id_factory,
    )
    _assert_unique(result)
    assert result[-1]["elements"][0]["id"] != "name"


def test_delete_fields_is_idempotent(document):
    once = doc.delete_fields(document, ["nickname", "unknown"])
    twice = doc.delete_fields(once, ["nickname", "unknown"])
    assert once == twice
    assert doc.field_ids(once) == ["name", "intro"]


def test_update_field_makes_checkbox_required():
    document = [doc.new_section("S1")]
    document[0]["elements"] = [
        {"id": "agree", "type": "Checkbox", "extraAttributes": {"label": "Agree", "helperText": "", "required": False}}
    ]
    result = doc.update_field(document, "agree", {"extraAttributes": {"required": True}})
    _, instance = doc.find_field(result, "agree")
    assert validate_value(instance, "false") is False
    assert validate_value(instance, "true") is True
    assert document[0]["elements"][0]["extraAttributes"]["required"] is False


def test_update_field_type_change_keeps_shared_attributes(document):
    result = doc.update_field(document, "name", {"type": "Email"})
    _, element = doc.find_field(result, "name")
    assert element["type"] == "Email"
    assert element["extraAttributes"]["label"] == "Name"
    assert element["extraAttributes"]["required"] is True

    heading = doc.update_field(document, "name", {"type": "Heading"})
    _, element = doc.find_field(heading, "name")
    assert set(element["extraAttributes"]) == {"title", "subtitle", "level", "align"}


def test_update_field_rejects_bad_attributes(document):
    with pytest.raises(SchemaValidationFailure):
        doc.update_field(document, "name", {"extraAttributes": {"required": "yes"}})
    with pytest.raises(FieldNotFound):
        doc.update_field(document, "missing", {"extraAttributes": {}})


def test_reorder_fields_permutation(document):
    before = copy.deepcopy(document)
    result = doc.reorder_fields(document, "A", ["nickname", "name"])
    assert [el["id"] for el in result[0]["elements"]] == ["nickname", "name"]

    for proposal in (["name"], ["name", "nickname", "extra"], ["name", "name"]):
        with pytest.raises(ReorderSetMismatch):
            doc.reorder_fields(document, "A", proposal)
    assert document == before


def test_reorder_sections():
    document = [doc.new_section("A"), doc.new_section("B")]
    result = doc.reorder_sections(document, ["B", "A"])
    assert doc.section_ids(result) == ["B", "A"]
    with pytest.raises(ReorderSetMismatch) as excinfo:
        doc.reorder_sections(document, ["A"])
    assert excinfo.value.missing == ["B"]
    assert doc.section_ids(document) == ["A", "B"]


def test_replace_form_generates_missing_ids(id_factory):
    result = doc.replace_form(
        [doc.new_section("old")],
        [{"title": "One", "elements": [{"type": "TextField"}, {"id": "kept", "type": "Number"}]}],
        id_factory=id_factory,
    )
    assert result[0]["id"] == "id-1"
    assert doc.field_ids(result) == ["id-2", "kept"]


def test_replace_form_rejects_duplicates_atomically(document):
    before = copy.deepcopy(document)
    sections = [
        {"id": "X", "title": "X", "elements": [{"id": "dup", "type": "TextField"}]},
        {"id": "Y", "title": "Y", "elements": [{"id": "dup", "type": "TextField"}]},
    ]
    with pytest.raises(DuplicateId):
        doc.replace_form(document, sections)
    with pytest.raises(FormcraftError):
        doc.replace_form(document, [])
    assert document == before


def test_update_and_delete_section(document):
    result = doc.update_section(document, "B", {"title": "Reach us", "elements": []})
    assert result[1]["title"] == "Reach us"
    assert result[1]["elements"] == document[1]["elements"]

    remaining = doc.delete_section(document, "B")
    assert doc.section_ids(remaining) == ["A"]
    with pytest.raises(FormcraftError):
        doc.delete_section(remaining, "A")


def test_move_field_between_sections(document):
    result = doc.move_field(document, "nickname", "B", insert_after_field_id="intro")
    assert doc.field_ids(result) == ["name", "intro", "nickname"]
    _assert_unique(result)
    with pytest.raises(SectionNotFound):
        doc.move_field(document, "nickname", "Z")


def test_move_field_anchored_on_itself(document):
    moved = doc.move_field(document, "nickname", "B", insert_after_field_id="nickname")
    assert [e["id"] for e in moved[0]["elements"]] == ["name"]
    assert [e["id"] for e in moved[1]["elements"]] == ["intro", "nickname"]
    _assert_unique(moved)

    unchanged = doc.move_field(document, "nickname", "A", insert_after_field_id="nickname")
    assert unchanged == document


def test_round_trip_preserves_order_and_ids(document):
    encoded = doc.dumps_document(document)
    assert doc.loads_document(encoded) == document
    assert doc.dumps_document(doc.loads_document(encoded)) == encoded
    assert doc.loads_document(None) == []


def test_normalize_document(id_factory):
    assert doc.normalize_document([], id_factory)[0]["id"] == "id-1"


def test_check_invariants_detects_duplicates(document):
    broken = copy.deepcopy(document)
    broken[1]["elements"].append(copy.deepcopy(broken[0]["elements"][0]))
    with pytest.raises(DuplicateId) as excinfo:
        doc.check_invariants(broken)
    assert excinfo.value.ids == ["name"]
