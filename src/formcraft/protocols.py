from __future__ import annotations

from typing import Any, Protocol


class FormRepository(Protocol):
    def list_forms(self, user_id: str | None = None) -> list[dict[str, Any]]: ...

    def get_form(self, form_id: str) -> dict[str, Any] | None: ...

    def get_form_by_share_url(self, share_url: str) -> dict[str, Any] | None: ...

    def create_form(self, form: dict[str, Any]) -> None: ...

    def update_form(self, form_id: str, updates: dict[str, Any]) -> dict[str, Any]: ...

    def save_content(self, form_id: str, content: list[dict[str, Any]]) -> dict[str, Any]: ...

    def publish(self, form_id: str, created_by: str | None = None) -> dict[str, Any]: ...

    def delete_form(self, form_id: str) -> None: ...


class SubmissionRepository(Protocol):
    def list_submissions(self, form_id: str) -> list[dict[str, Any]]: ...

    def get_submission(self, submission_id: str) -> dict[str, Any] | None: ...

    def get_by_session(self, form_id: str, session_id: str) -> dict[str, Any] | None: ...

    def create_submission(self, submission: dict[str, Any]) -> None: ...

    def update_submission(self, submission_id: str, updates: dict[str, Any]) -> dict[str, Any]: ...

    def delete_submission(self, submission_id: str) -> None: ...


class FormVersionRepository(Protocol):
    def list_versions(self, form_id: str) -> list[dict[str, Any]]: ...

    def get_version(self, form_id: str, version: int) -> dict[str, Any] | None: ...


class ChatRepository(Protocol):
    def get_session(self, user_id: str, form_id: str) -> dict[str, Any] | None: ...

    def create_session(self, session: dict[str, Any]) -> None: ...

    def touch_session(self, session_id: str) -> None: ...

    def delete_session(self, user_id: str, form_id: str) -> None: ...

    def list_messages(self, session_id: str) -> list[dict[str, Any]]: ...

    def get_message(self, message_id: str) -> dict[str, Any] | None: ...

    def create_message(self, message: dict[str, Any]) -> None: ...

    def mark_actions_applied(self, message_id: str) -> None: ...


class Storage(Protocol):
    forms: FormRepository
    submissions: SubmissionRepository
    versions: FormVersionRepository
    chat: ChatRepository
