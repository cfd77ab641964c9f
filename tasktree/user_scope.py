"""User identity normalization and per-user remote locations."""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from fastapi import Request

from tasktree.constants import DOCUMENT_NAME, STATE_BLOB_NAME
from tasktree.errors import TaskTreeError

USER_ID_HEADER = "X-TaskTree-User-Id"
SERVICE_TOKEN_HEADER = "X-TaskTree-Service-Token"
AUTH_EXEMPT_PATHS = {"/health"}

_VALID_USER_ID = re.compile(r"^[A-Za-z0-9_]{3,128}$")


def normalize_user_id(raw_user_id: str) -> str:
    """Normalize and validate a user id from request or session context."""
    if not isinstance(raw_user_id, str):
        raise TaskTreeError(
            "INVALID_USER_ID",
            "User id must be a string.",
            {"type": type(raw_user_id).__name__},
        )

    normalized = raw_user_id.strip().replace("-", "")
    if not normalized:
        raise TaskTreeError(
            "AUTH_REQUIRED",
            "Missing required user identity header.",
            {"header": USER_ID_HEADER},
        )

    if not _VALID_USER_ID.fullmatch(normalized):
        raise TaskTreeError(
            "INVALID_USER_ID",
            "User id contains invalid characters.",
            {"user_id": raw_user_id},
        )
    return normalized


def state_blob_path(user_id: str) -> str:
    """Blob store location of a user's state: ``{UserId}/state.json``."""
    return f"{normalize_user_id(user_id)}/{STATE_BLOB_NAME}"


def state_document_path(user_id: str) -> str:
    """Live document store location: ``users/{UserId}/appState``."""
    return f"users/{normalize_user_id(user_id)}/{DOCUMENT_NAME}"


def get_request_user_id(request: Request) -> str:
    """Read and cache normalized user id from request state/headers."""
    cached = getattr(request.state, "user_id", None)
    if isinstance(cached, str) and cached.strip():
        normalized = normalize_user_id(cached)
        request.state.user_id = normalized
        return normalized

    raw_user_id = request.headers.get(USER_ID_HEADER)
    if raw_user_id is None:
        raise TaskTreeError(
            "AUTH_REQUIRED",
            "Missing required user identity header.",
            {"header": USER_ID_HEADER},
        )

    normalized = normalize_user_id(raw_user_id)
    request.state.user_id = normalized
    return normalized


def ensure_path_owner(request: Request, blob_path: PurePosixPath) -> str:
    """Reject blob paths that live outside the caller's own directory."""
    user_id = get_request_user_id(request)
    if blob_path.parts[0] != user_id:
        raise TaskTreeError(
            "AUTH_FORBIDDEN",
            "Blob path belongs to another user.",
            {"path": blob_path.as_posix()},
        )
    return user_id
