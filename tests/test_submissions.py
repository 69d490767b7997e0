import pytest

from formcraft.errors import Conflict, NotFound, SchemaValidationFailure, SubmissionInvalid
from formcraft.realtime import SubmissionFeed
from formcraft.submissions import delete_submission, save_submission
from formcraft.utils import now_utc


@pytest.fixture()
def published_form(storage, document):
    now = now_utc()
    storage.forms.create_form(
        {
            "id": "form-1",
            "user_id": "local",
            "share_url": "share-1",
            "name": "Survey",
            "description": "",
            "content": document,
            "created_at": now,
            "updated_at": now,
        }
    )
    return storage.forms.publish("form-1")


@pytest.fixture()
def feed():
    feed = SubmissionFeed()
    feed.connect()
    return feed


def test_unpublished_form_rejects_submissions(storage, document):
    now = now_utc()
    storage.forms.create_form(
        {
            "id": "draft",
            "user_id": "local",
            "share_url": "draft-url",
            "name": "Draft",
            "content": document,
            "created_at": now,
            "updated_at": now,
        }
    )
    form = storage.forms.get_form("draft")
    with pytest.raises(NotFound):
        save_submission(storage, form, {"session_id": "s", "data": {}})


def test_partial_save_skips_validation_and_snapshots(storage, published_form, feed):
    events = []
    feed.subscribe("form-1", lambda event, record: events.append(event))
    record = save_submission(
        storage,
        published_form,
        {"session_id": "sess-1", "data": {"nickname": "Ace", "stray": "x"}, "last_section_index": 0},
        feed=feed,
    )
    assert record["is_complete"] is False
    assert record["data"] == {"nickname": "Ace"}
    assert record["form_version"] == published_form["published_version"]
    assert record["form_content_snapshot"] == published_form["published_content"]
    assert record["total_sections"] == 2
    assert events == ["INSERT"]


def test_session_updates_same_record(storage, published_form, feed):
    first = save_submission(storage, published_form, {"session_id": "sess-1", "data": {"nickname": "Ace"}})
    second = save_submission(
        storage,
        published_form,
        {"session_id": "sess-1", "data": {"name": "Ada"}, "is_complete": True, "last_section_index": 9},
        feed=feed,
    )
    assert second["id"] == first["id"]
    assert second["data"] == {"nickname": "Ace", "name": "Ada"}
    assert second["is_complete"] is True
    assert second["last_section_index"] == 1
    assert len(storage.submissions.list_submissions("form-1")) == 1


def test_complete_submission_is_validated(storage, published_form):
    with pytest.raises(SubmissionInvalid) as excinfo:
        save_submission(storage, published_form, {"session_id": "s", "data": {}, "is_complete": True})
    assert excinfo.value.errors == [{"field": "name", "label": "Name", "code": "required"}]
    assert storage.submissions.list_submissions("form-1") == []


def test_completed_submission_cannot_be_reopened(storage, published_form):
    save_submission(storage, published_form, {"session_id": "s", "data": {"name": "Ada"}, "is_complete": True})
    with pytest.raises(Conflict):
        save_submission(storage, published_form, {"session_id": "s", "data": {"name": "Bob"}})


def test_snapshot_is_frozen_after_first_write(storage, published_form, document):
    save_submission(storage, published_form, {"session_id": "s", "data": {"nickname": "Ace"}})

    edited = [dict(document[0], elements=document[0]["elements"][1:]), document[1]]
    storage.forms.save_content("form-1", edited)
    republished = storage.forms.publish("form-1")
    assert republished["published_version"] > published_form["published_version"]

    # "name" is still required by the snapshot even though the live form dropped it.
    with pytest.raises(SubmissionInvalid):
        save_submission(storage, republished, {"session_id": "s", "data": {}, "is_complete": True})
    record = storage.submissions.get_by_session("form-1", "s")
    assert record["form_version"] == published_form["published_version"]
    assert record["form_content_snapshot"] == document

    fresh = save_submission(storage, republished, {"session_id": "new", "data": {}, "is_complete": True})
    assert fresh["form_version"] == republished["published_version"]


def test_malformed_payload(storage, published_form):
    with pytest.raises(SchemaValidationFailure):
        save_submission(storage, published_form, {"session_id": "", "data": {}})
    with pytest.raises(SchemaValidationFailure):
        save_submission(storage, published_form, {"session_id": "s", "data": []})


def test_delete_submission_publishes_event(storage, published_form, feed):
    events = []
    feed.subscribe("form-1", lambda event, record: events.append((event, record["id"])))
    record = save_submission(storage, published_form, {"session_id": "s", "data": {}})
    delete_submission(storage, record["id"], feed=feed)
    assert storage.submissions.get_submission(record["id"]) is None
    assert events == [("DELETE", record["id"])]
    with pytest.raises(NotFound):
        delete_submission(storage, record["id"])
