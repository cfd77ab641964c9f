"""Structured error types shared by the store service and sync sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class ErrorResponse:
    """Serializable error payload returned by store handlers."""

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class TaskTreeError(RuntimeError):
    """Exception carrying a structured error response."""

    default_code = "TASKTREE_ERROR"

    def __init__(
        self,
        code: str | None,
        message: str,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error = ErrorResponse(
            code=code or self.default_code,
            message=message,
            details=dict(details or {}),
        )

    @property
    def code(self) -> str:
        return self.error.code

    @property
    def message(self) -> str:
        return self.error.message


class ValidationError(TaskTreeError):
    """Payload failed the structural shape check."""

    default_code = "INVALID_STATE"


class NotFoundError(TaskTreeError):
    """Remote document or blob does not exist."""

    default_code = "NOT_FOUND"


class TransportError(TaskTreeError):
    """Network, permission or storage failure on fetch or write."""

    default_code = "TRANSPORT_ERROR"


class AuthLostError(TaskTreeError):
    """User identity is missing or was rejected mid-session."""

    default_code = "AUTH_LOST"


def success_response(payload: dict[str, Any]) -> dict[str, Any]:
    """Wrap a successful response in the standard envelope."""
    return {"ok": True, "data": payload}


def error_response(error: ErrorResponse) -> dict[str, Any]:
    """Wrap an error response in the standard envelope."""
    return {"ok": False, "error": error.to_dict()}
