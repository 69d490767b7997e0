from formcraft.validation import (
    clean_answers,
    interactive_fields,
    invalid_fields,
    is_acceptable,
    validate_submission,
)


def test_only_interactive_fields_are_checked(document):
    assert [field["id"] for field in interactive_fields(document)] == ["name", "nickname"]
    result = validate_submission(document, {"name": "Ada"})
    assert result == {"name": True, "nickname": True}
    assert is_acceptable(result)


def test_missing_required_answer(document):
    result = validate_submission(document, {})
    assert result["name"] is False
    assert not is_acceptable(result)
    assert invalid_fields(document, {}) == [{"field": "name", "label": "Name", "code": "required"}]


def test_invalid_code_for_present_but_wrong_value(document):
    document[0]["elements"][1]["type"] = "Number"
    errors = invalid_fields(document, {"name": "Ada", "nickname": "lots"})
    assert errors == [{"field": "nickname", "label": "Nickname", "code": "invalid"}]


def test_clean_answers_drops_unknown_keys_and_stringifies(document):
    cleaned = clean_answers(document, {"name": "Ada", "intro": "x", "stray": "y", "nickname": True})
    assert cleaned == {"name": "Ada", "nickname": "true"}
    assert clean_answers(document, {"name": ["a", "b"]}) == {"name": '["a","b"]'}
