from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from formcraft.models import (
    Base,
    ChatMessageModel,
    ChatSessionModel,
    FormModel,
    FormVersionModel,
    SubmissionModel,
)
from formcraft.utils import dumps_json, loads_json, new_ulid, now_utc


class SQLiteFormRepo:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    def list_forms(self, user_id: str | None = None) -> list[dict[str, Any]]:
        with self._Session() as session:
            query = session.query(FormModel)
            if user_id is not None:
                query = query.filter(FormModel.user_id == user_id)
            rows = query.order_by(FormModel.updated_at.desc()).all()
            return [self._to_dict(row) for row in rows]

    def get_form(self, form_id: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = session.get(FormModel, form_id)
            return self._to_dict(row) if row else None

    def get_form_by_share_url(self, share_url: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = (
                session.query(FormModel)
                .filter(FormModel.share_url == share_url)
                .first()
            )
            return self._to_dict(row) if row else None

    def create_form(self, form: dict[str, Any]) -> None:
        with self._Session() as session:
            row = FormModel(
                id=form["id"],
                user_id=form.get("user_id"),
                share_url=form["share_url"],
                name=form["name"],
                description=form.get("description", ""),
                content=dumps_json(form["content"]),
                version=form.get("version", 1),
                published=bool(form.get("published")),
                created_at=form["created_at"],
                updated_at=form["updated_at"],
            )
            session.add(row)
            session.commit()

    def update_form(self, form_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        with self._Session() as session:
            row = session.get(FormModel, form_id)
            if not row:
                raise KeyError(form_id)
            for key, value in updates.items():
                if key in {"content", "published_content"}:
                    setattr(row, key, dumps_json(value))
                else:
                    setattr(row, key, value)
            session.commit()
            session.refresh(row)
            return self._to_dict(row)

    def save_content(self, form_id: str, content: list[dict[str, Any]]) -> dict[str, Any]:
        with self._Session() as session:
            row = session.get(FormModel, form_id)
            if not row:
                raise KeyError(form_id)
            row.content = dumps_json(content)
            row.version = (row.version or 1) + 1
            row.updated_at = now_utc()
            session.commit()
            session.refresh(row)
            return self._to_dict(row)

    def publish(self, form_id: str, created_by: str | None = None) -> dict[str, Any]:
        with self._Session() as session:
            row = session.get(FormModel, form_id)
            if not row:
                raise KeyError(form_id)
            now = now_utc()
            row.published = True
            row.published_content = row.content
            row.published_version = row.version
            row.published_at = now
            row.updated_at = now
            exists = (
                session.query(FormVersionModel)
                .filter(
                    FormVersionModel.form_id == form_id,
                    FormVersionModel.version == row.version,
                )
                .first()
            )
            if not exists:
                session.add(
                    FormVersionModel(
                        id=new_ulid(),
                        form_id=form_id,
                        version=row.version,
                        content=row.content,
                        name=row.name,
                        description=row.description or "",
                        created_by=created_by,
                        created_at=now,
                    )
                )
            session.commit()
            session.refresh(row)
            return self._to_dict(row)

    def delete_form(self, form_id: str) -> None:
        with self._Session() as session:
            session.query(FormVersionModel).filter(FormVersionModel.form_id == form_id).delete()
            row = session.get(FormModel, form_id)
            if row:
                session.delete(row)
            session.commit()

    @staticmethod
    def _to_dict(row: FormModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "user_id": row.user_id,
            "share_url": row.share_url,
            "name": row.name,
            "description": row.description or "",
            "content": loads_json(row.content) or [],
            "version": row.version or 1,
            "published": bool(row.published),
            "published_content": loads_json(row.published_content),
            "published_version": row.published_version,
            "published_at": row.published_at,
            "created_at": row.created_at,
            "updated_at": row.updated_at,
        }


class SQLiteFormVersionRepo:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    def list_versions(self, form_id: str) -> list[dict[str, Any]]:
        with self._Session() as session:
            rows = (
                session.query(FormVersionModel)
                .filter(FormVersionModel.form_id == form_id)
                .order_by(FormVersionModel.version.desc())
                .all()
            )
            return [self._to_dict(row) for row in rows]

    def get_version(self, form_id: str, version: int) -> dict[str, Any] | None:
        with self._Session() as session:
            row = (
                session.query(FormVersionModel)
                .filter(
                    FormVersionModel.form_id == form_id,
                    FormVersionModel.version == version,
                )
                .first()
            )
            return self._to_dict(row) if row else None

    @staticmethod
    def _to_dict(row: FormVersionModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "form_id": row.form_id,
            "version": row.version,
            "content": loads_json(row.content) or [],
            "name": row.name,
            "description": row.description or "",
            "created_by": row.created_by,
            "created_at": row.created_at,
        }


class SQLiteSubmissionRepo:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    def list_submissions(self, form_id: str) -> list[dict[str, Any]]:
        with self._Session() as session:
            rows = (
                session.query(SubmissionModel)
                .filter(SubmissionModel.form_id == form_id)
                .order_by(SubmissionModel.created_at.desc())
                .all()
            )
            return [self._to_dict(row) for row in rows]

    def get_submission(self, submission_id: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = session.get(SubmissionModel, submission_id)
            return self._to_dict(row) if row else None

    def get_by_session(self, form_id: str, session_id: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = (
                session.query(SubmissionModel)
                .filter(
                    SubmissionModel.form_id == form_id,
                    SubmissionModel.session_id == session_id,
                )
                .first()
            )
            return self._to_dict(row) if row else None

    def create_submission(self, submission: dict[str, Any]) -> None:
        snapshot = submission.get("form_content_snapshot")
        with self._Session() as session:
            row = SubmissionModel(
                id=submission["id"],
                form_id=submission["form_id"],
                session_id=submission["session_id"],
                data_json=dumps_json(submission["data"]),
                is_complete=bool(submission["is_complete"]),
                last_section_index=submission.get("last_section_index", 0),
                total_sections=submission.get("total_sections", 1),
                form_version=submission.get("form_version"),
                form_content_snapshot=dumps_json(snapshot) if snapshot is not None else None,
                created_at=submission["created_at"],
                updated_at=submission["updated_at"],
            )
            session.add(row)
            session.commit()

    def update_submission(self, submission_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        with self._Session() as session:
            row = session.get(SubmissionModel, submission_id)
            if not row:
                raise KeyError(submission_id)
            for key, value in updates.items():
                if key == "data":
                    row.data_json = dumps_json(value)
                elif key == "form_content_snapshot":
                    row.form_content_snapshot = dumps_json(value)
                else:
                    setattr(row, key, value)
            session.commit()
            session.refresh(row)
            return self._to_dict(row)

    def delete_submission(self, submission_id: str) -> None:
        with self._Session() as session:
            row = session.get(SubmissionModel, submission_id)
            if row:
                session.delete(row)
                session.commit()

    @staticmethod
    def _to_dict(row: SubmissionModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "form_id": row.form_id,
            "session_id": row.session_id,
            "data": loads_json(row.data_json) or {},
            "is_complete": bool(row.is_complete),
            "last_section_index": row.last_section_index or 0,
            "total_sections": row.total_sections or 1,
            "form_version": row.form_version,
            "form_content_snapshot": loads_json(row.form_content_snapshot),
            "created_at": row.created_at,
            "updated_at": row.updated_at,
        }


class SQLiteChatRepo:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    def get_session(self, user_id: str, form_id: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = (
                session.query(ChatSessionModel)
                .filter(
                    ChatSessionModel.user_id == user_id,
                    ChatSessionModel.form_id == form_id,
                )
                .first()
            )
            return self._session_dict(row) if row else None

    def create_session(self, chat_session: dict[str, Any]) -> None:
        with self._Session() as session:
            session.add(
                ChatSessionModel(
                    id=chat_session["id"],
                    user_id=chat_session["user_id"],
                    form_id=chat_session["form_id"],
                    created_at=chat_session["created_at"],
                    updated_at=chat_session["updated_at"],
                )
            )
            session.commit()

    def touch_session(self, session_id: str) -> None:
        with self._Session() as session:
            row = session.get(ChatSessionModel, session_id)
            if row:
                row.updated_at = now_utc()
                session.commit()

    def delete_session(self, user_id: str, form_id: str) -> None:
        with self._Session() as session:
            rows = (
                session.query(ChatSessionModel)
                .filter(
                    ChatSessionModel.user_id == user_id,
                    ChatSessionModel.form_id == form_id,
                )
                .all()
            )
            for row in rows:
                session.query(ChatMessageModel).filter(
                    ChatMessageModel.session_id == row.id
                ).delete()
                session.delete(row)
            session.commit()

    def list_messages(self, session_id: str) -> list[dict[str, Any]]:
        with self._Session() as session:
            rows = (
                session.query(ChatMessageModel)
                .filter(ChatMessageModel.session_id == session_id)
                .order_by(ChatMessageModel.created_at.asc(), ChatMessageModel.id.asc())
                .all()
            )
            return [self._message_dict(row) for row in rows]

    def get_message(self, message_id: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = session.get(ChatMessageModel, message_id)
            return self._message_dict(row) if row else None

    def create_message(self, message: dict[str, Any]) -> None:
        invocations = message.get("tool_invocations")
        with self._Session() as session:
            session.add(
                ChatMessageModel(
                    id=message["id"],
                    session_id=message["session_id"],
                    role=message["role"],
                    content=message["content"],
                    tool_invocations=dumps_json(invocations) if invocations is not None else None,
                    actions_applied=bool(message.get("actions_applied")),
                    created_at=message["created_at"],
                )
            )
            session.commit()

    def mark_actions_applied(self, message_id: str) -> None:
        with self._Session() as session:
            row = session.get(ChatMessageModel, message_id)
            if not row:
                raise KeyError(message_id)
            row.actions_applied = True
            session.commit()

    @staticmethod
    def _session_dict(row: ChatSessionModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "user_id": row.user_id,
            "form_id": row.form_id,
            "created_at": row.created_at,
            "updated_at": row.updated_at,
        }

    @staticmethod
    def _message_dict(row: ChatMessageModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "session_id": row.session_id,
            "role": row.role,
            "content": row.content or "",
            "tool_invocations": loads_json(row.tool_invocations),
            "actions_applied": bool(row.actions_applied),
            "created_at": row.created_at,
        }


class SQLiteStorage:
    def __init__(self, db_path: Path) -> None:
        self._engine = create_engine(f"sqlite:///{db_path}", future=True)
        self._Session = sessionmaker(self._engine, expire_on_commit=False)
        Base.metadata.create_all(self._engine)
        self._migrate_add_missing_columns()
        self.forms = SQLiteFormRepo(self._Session)
        self.submissions = SQLiteSubmissionRepo(self._Session)
        self.versions = SQLiteFormVersionRepo(self._Session)
        self.chat = SQLiteChatRepo(self._Session)

    def _migrate_add_missing_columns(self) -> None:
        with self._engine.connect() as conn:
            result = conn.execute(text("PRAGMA table_info(form_submissions)"))
            columns = {row[1] for row in result.fetchall()}
            if "form_version" not in columns:
                conn.execute(text("ALTER TABLE form_submissions ADD COLUMN form_version INTEGER"))
            if "form_content_snapshot" not in columns:
                conn.execute(
                    text("ALTER TABLE form_submissions ADD COLUMN form_content_snapshot TEXT")
                )
            result = conn.execute(text("PRAGMA table_info(ai_chat_messages)"))
            columns = {row[1] for row in result.fetchall()}
            if "actions_applied" not in columns:
                conn.execute(
                    text(
                        "ALTER TABLE ai_chat_messages ADD COLUMN actions_applied BOOLEAN DEFAULT 0"
                    )
                )
            conn.commit()

    def dispose(self) -> None:
        self._engine.dispose()
