from __future__ import annotations

from typing import Protocol

from fastapi import Request

from formcraft.config import Settings
from formcraft.errors import AuthorizationFailure

LOCAL_USER_ID = "local"


class AuthProvider(Protocol):
    def current_user(self, request: Request) -> str: ...


class NoAuthProvider:
    def current_user(self, request: Request) -> str:
        return LOCAL_USER_ID


class HeaderAuthProvider:
    """Trusts a caller identity forwarded by an upstream auth proxy."""

    header = "X-User-Id"

    def current_user(self, request: Request) -> str:
        user_id = request.headers.get(self.header, "").strip()
        if not user_id:
            raise AuthorizationFailure(f"Missing {self.header} header")
        return user_id


def get_auth_provider(settings: Settings) -> AuthProvider:
    if settings.auth_mode == "header":
        return HeaderAuthProvider()
    return NoAuthProvider()
