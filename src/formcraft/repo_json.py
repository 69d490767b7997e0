from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from filelock import FileLock
from tinydb import Query, TinyDB

from formcraft.utils import new_ulid, now_utc, parse_dt, to_iso

DATETIME_KEYS = {"created_at", "updated_at", "published_at"}


def _to_record(item: dict[str, Any]) -> dict[str, Any]:
    record: dict[str, Any] = {}
    for key, value in item.items():
        if key in DATETIME_KEYS and isinstance(value, datetime):
            record[key] = to_iso(value)
        else:
            record[key] = value
    return record


def _optional_dt(value: Any) -> datetime | None:
    return parse_dt(value) if value else None


class JSONRepoBase:
    def __init__(self, path: Path, lock: FileLock) -> None:
        self._path = path
        self._lock = lock

    @contextmanager
    def _db(self) -> Iterable[TinyDB]:
        with self._lock:
            db = TinyDB(self._path)
            try:
                yield db
            finally:
                db.close()


class JSONFormRepo(JSONRepoBase):
    def list_forms(self, user_id: str | None = None) -> list[dict[str, Any]]:
        with self._db() as db:
            table = db.table("forms")
            items = table.search(Query().user_id == user_id) if user_id is not None else table.all()
        forms = [self._from_record(item) for item in items]
        return sorted(forms, key=lambda x: x["updated_at"], reverse=True)

    def get_form(self, form_id: str) -> dict[str, Any] | None:
        with self._db() as db:
            item = db.table("forms").get(Query().id == form_id)
        return self._from_record(item) if item else None

    def get_form_by_share_url(self, share_url: str) -> dict[str, Any] | None:
        with self._db() as db:
            item = db.table("forms").get(Query().share_url == share_url)
        return self._from_record(item) if item else None

    def create_form(self, form: dict[str, Any]) -> None:
        record = _to_record(form)
        record.setdefault("version", 1)
        record.setdefault("published", False)
        with self._db() as db:
            db.table("forms").insert(record)

    def update_form(self, form_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        with self._db() as db:
            table = db.table("forms")
            item = table.get(Query().id == form_id)
            if not item:
                raise KeyError(form_id)
            item.update(_to_record(updates))
            table.update(item, Query().id == form_id)
        return self._from_record(item)

    def save_content(self, form_id: str, content: list[dict[str, Any]]) -> dict[str, Any]:
        with self._db() as db:
            table = db.table("forms")
            item = table.get(Query().id == form_id)
            if not item:
                raise KeyError(form_id)
            item["content"] = content
            item["version"] = int(item.get("version") or 1) + 1
            item["updated_at"] = to_iso(now_utc())
            table.update(item, Query().id == form_id)
        return self._from_record(item)

    def publish(self, form_id: str, created_by: str | None = None) -> dict[str, Any]:
        with self._db() as db:
            table = db.table("forms")
            item = table.get(Query().id == form_id)
            if not item:
                raise KeyError(form_id)
            now = to_iso(now_utc())
            item["published"] = True
            item["published_content"] = item.get("content", [])
            item["published_version"] = item.get("version", 1)
            item["published_at"] = now
            item["updated_at"] = now
            table.update(item, Query().id == form_id)
            versions = db.table("form_versions")
            version = item["published_version"]
            if not versions.get((Query().form_id == form_id) & (Query().version == version)):
                versions.insert(
                    {
                        "id": new_ulid(),
                        "form_id": form_id,
                        "version": version,
                        "content": item["published_content"],
                        "name": item["name"],
                        "description": item.get("description", ""),
                        "created_by": created_by,
                        "created_at": now,
                    }
                )
        return self._from_record(item)

    def delete_form(self, form_id: str) -> None:
        with self._db() as db:
            db.table("forms").remove(Query().id == form_id)
            db.table("form_versions").remove(Query().form_id == form_id)

    @staticmethod
    def _from_record(record: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": record["id"],
            "user_id": record.get("user_id"),
            "share_url": record["share_url"],
            "name": record["name"],
            "description": record.get("description", ""),
            "content": record.get("content", []),
            "version": record.get("version", 1),
            "published": bool(record.get("published")),
            "published_content": record.get("published_content"),
            "published_version": record.get("published_version"),
            "published_at": _optional_dt(record.get("published_at")),
            "created_at": parse_dt(record.get("created_at")),
            "updated_at": parse_dt(record.get("updated_at")),
        }


class JSONFormVersionRepo(JSONRepoBase):
    def list_versions(self, form_id: str) -> list[dict[str, Any]]:
        with self._db() as db:
            items = db.table("form_versions").search(Query().form_id == form_id)
        versions = [self._from_record(item) for item in items]
        return sorted(versions, key=lambda x: x["version"], reverse=True)

    def get_version(self, form_id: str, version: int) -> dict[str, Any] | None:
        with self._db() as db:
            item = db.table("form_versions").get(
                (Query().form_id == form_id) & (Query().version == version)
            )
        return self._from_record(item) if item else None

    @staticmethod
    def _from_record(record: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": record["id"],
            "form_id": record["form_id"],
            "version": record["version"],
            "content": record.get("content", []),
            "name": record.get("name", ""),
            "description": record.get("description", ""),
            "created_by": record.get("created_by"),
            "created_at": parse_dt(record.get("created_at")),
        }


class JSONSubmissionRepo(JSONRepoBase):
    def list_submissions(self, form_id: str) -> list[dict[str, Any]]:
        with self._db() as db:
            items = db.table("submissions").search(Query().form_id == form_id)
        submissions = [self._from_record(item) for item in items]
        return sorted(submissions, key=lambda x: x["created_at"], reverse=True)

    def get_submission(self, submission_id: str) -> dict[str, Any] | None:
        with self._db() as db:
            item = db.table("submissions").get(Query().id == submission_id)
        return self._from_record(item) if item else None

    def get_by_session(self, form_id: str, session_id: str) -> dict[str, Any] | None:
        with self._db() as db:
            item = db.table("submissions").get(
                (Query().form_id == form_id) & (Query().session_id == session_id)
            )
        return self._from_record(item) if item else None

    def create_submission(self, submission: dict[str, Any]) -> None:
        record = _to_record(submission)
        with self._db() as db:
            db.table("submissions").insert(record)

    def update_submission(self, submission_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        with self._db() as db:
            table = db.table("submissions")
            item = table.get(Query().id == submission_id)
            if not item:
                raise KeyError(submission_id)
            item.update(_to_record(updates))
            table.update(item, Query().id == submission_id)
        return self._from_record(item)

    def delete_submission(self, submission_id: str) -> None:
        with self._db() as db:
            db.table("submissions").remove(Query().id == submission_id)

    @staticmethod
    def _from_record(record: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": record["id"],
            "form_id": record["form_id"],
            "session_id": record.get("session_id", ""),
            "data": record.get("data", {}),
            "is_complete": bool(record.get("is_complete")),
            "last_section_index": record.get("last_section_index", 0),
            "total_sections": record.get("total_sections", 1),
            "form_version": record.get("form_version"),
            "form_content_snapshot": record.get("form_content_snapshot"),
            "created_at": parse_dt(record.get("created_at")),
            "updated_at": parse_dt(record.get("updated_at")),
        }


class JSONChatRepo(JSONRepoBase):
    def get_session(self, user_id: str, form_id: str) -> dict[str, Any] | None:
        with self._db() as db:
            item = db.table("chat_sessions").get(
                (Query().user_id == user_id) & (Query().form_id == form_id)
            )
        return self._session_from_record(item) if item else None

    def create_session(self, session: dict[str, Any]) -> None:
        with self._db() as db:
            db.table("chat_sessions").insert(_to_record(session))

    def touch_session(self, session_id: str) -> None:
        with self._db() as db:
            db.table("chat_sessions").update(
                {"updated_at": to_iso(now_utc())}, Query().id == session_id
            )

    def delete_session(self, user_id: str, form_id: str) -> None:
        with self._db() as db:
            sessions = db.table("chat_sessions")
            items = sessions.search((Query().user_id == user_id) & (Query().form_id == form_id))
            for item in items:
                db.table("chat_messages").remove(Query().session_id == item["id"])
            sessions.remove((Query().user_id == user_id) & (Query().form_id == form_id))

    def list_messages(self, session_id: str) -> list[dict[str, Any]]:
        with self._db() as db:
            items = db.table("chat_messages").search(Query().session_id == session_id)
        messages = [self._message_from_record(item) for item in items]
        return sorted(messages, key=lambda x: (x["created_at"], x["id"]))

    def get_message(self, message_id: str) -> dict[str, Any] | None:
        with self._db() as db:
            item = db.table("chat_messages").get(Query().id == message_id)
        return self._message_from_record(item) if item else None

    def create_message(self, message: dict[str, Any]) -> None:
        record = _to_record(message)
        record.setdefault("actions_applied", False)
        with self._db() as db:
            db.table("chat_messages").insert(record)

    def mark_actions_applied(self, message_id: str) -> None:
        with self._db() as db:
            table = db.table("chat_messages")
            if not table.get(Query().id == message_id):
                raise KeyError(message_id)
            table.update({"actions_applied": True}, Query().id == message_id)

    @staticmethod
    def _session_from_record(record: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": record["id"],
            "user_id": record["user_id"],
            "form_id": record["form_id"],
            "created_at": parse_dt(record.get("created_at")),
            "updated_at": parse_dt(record.get("updated_at")),
        }

    @staticmethod
    def _message_from_record(record: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": record["id"],
            "session_id": record["session_id"],
            "role": record.get("role", "user"),
            "content": record.get("content", ""),
            "tool_invocations": record.get("tool_invocations"),
            "actions_applied": bool(record.get("actions_applied")),
            "created_at": parse_dt(record.get("created_at")),
        }


class JSONStorage:
    def __init__(self, path: Path) -> None:
        self._lock = FileLock(f"{path}.lock")
        self.forms = JSONFormRepo(path, self._lock)
        self.submissions = JSONSubmissionRepo(path, self._lock)
        self.versions = JSONFormVersionRepo(path, self._lock)
        self.chat = JSONChatRepo(path, self._lock)

    def dispose(self) -> None:
        return None
