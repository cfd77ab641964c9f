"""Auth Service seam: who is signed in, if anyone."""

from __future__ import annotations

from typing import Protocol

from tasktree.user_scope import normalize_user_id


class AuthService(Protocol):
    def current_identity(self) -> str | None: ...

    def sign_in(self, user_id: str) -> None: ...

    def sign_out(self) -> None: ...


class LocalAuthService:
    """In-memory identity holder for CLIs, tests and embedded sessions."""

    def __init__(self, user_id: str | None = None) -> None:
        self._user_id = normalize_user_id(user_id) if user_id is not None else None

    def current_identity(self) -> str | None:
        return self._user_id

    def sign_in(self, user_id: str) -> None:
        self._user_id = normalize_user_id(user_id)

    def sign_out(self) -> None:
        self._user_id = None
