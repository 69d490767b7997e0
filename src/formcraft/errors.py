from __future__ import annotations

from typing import Any


class FormcraftError(Exception):
    status_code = 400

    def __init__(self, message: str, errors: list[Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"message": self.message, "code": type(self).__name__}
        if self.errors:
            detail["errors"] = self.errors
        return detail


class UnknownFieldType(FormcraftError):
    def __init__(self, field_type: Any) -> None:
        super().__init__(f"Unknown field type: {field_type}")
        self.field_type = field_type


class SectionNotFound(FormcraftError):
    status_code = 404

    def __init__(self, section_id: str) -> None:
        super().__init__(f"Section not found: {section_id}")
        self.section_id = section_id


class FieldNotFound(FormcraftError):
    status_code = 404

    def __init__(self, field_id: str) -> None:
        super().__init__(f"Field not found: {field_id}")
        self.field_id = field_id


class ReorderSetMismatch(FormcraftError):
    def __init__(self, missing: list[str], unexpected: list[str]) -> None:
        super().__init__(
            "Reorder ids must be an exact permutation of the current ids",
            [{"missing": missing, "unexpected": unexpected}],
        )
        self.missing = missing
        self.unexpected = unexpected


class DuplicateId(FormcraftError):
    def __init__(self, ids: list[str]) -> None:
        super().__init__(f"Duplicate ids: {', '.join(ids)}", list(ids))
        self.ids = ids


class SchemaValidationFailure(FormcraftError):
    status_code = 422


class SubmissionInvalid(FormcraftError):
    pass


class Conflict(FormcraftError):
    status_code = 409


class NotFound(FormcraftError):
    status_code = 404


class PersistenceFailure(FormcraftError):
    status_code = 503


class AuthorizationFailure(FormcraftError):
    status_code = 401
