"""Blob store HTTP endpoints: metadata, download, upload, delete, activity."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fastapi import Request, Response
from fastapi.concurrency import run_in_threadpool

from tasktree.activity import _read_activity_entries
from tasktree.blob_store import FileBlobStore
from tasktree.errors import TaskTreeError, success_response
from tasktree.history import _ensure_git_repo, _read_history
from tasktree.paths import parse_blob_path
from tasktree.router import store_router
from tasktree.state import decode_app_state, encode_app_state
from tasktree.user_scope import ensure_path_owner, get_request_user_id


def get_request_blob_store(request: Request) -> FileBlobStore:
    store = getattr(request.app.state, "blob_store", None)
    if store is not None:
        return store
    config = getattr(request.app.state, "config", None)
    if config is not None and hasattr(config, "store_path"):
        store_path = Path(config.store_path)
    else:
        store_path = Path(request.app.state.store_path)
    store = FileBlobStore(store_path)
    request.app.state.blob_store = store
    return store


def _owned_path(request: Request, raw_path: str) -> str:
    blob_path = parse_blob_path(raw_path)
    ensure_path_owner(request, blob_path)
    return blob_path.as_posix()


def _read_positive_limit(limit: int) -> int:
    if limit <= 0:
        raise TaskTreeError(
            "INVALID_TYPE",
            "limit must be a positive integer.",
            {"limit": str(limit)},
        )
    return limit


@store_router.get("/metadata/{path:path}")
def read_blob_metadata(path: str, request: Request) -> dict[str, Any]:
    """Return the last-modified timestamp of a blob."""
    blob_path = _owned_path(request, path)
    metadata = get_request_blob_store(request).get_metadata(blob_path)
    return success_response(metadata.to_dict())


@store_router.get("/blobs/{path:path}")
def download_blob(path: str, request: Request) -> Response:
    """Return the raw JSON document."""
    blob_path = _owned_path(request, path)
    content = get_request_blob_store(request).download(blob_path)
    return Response(content=content, media_type="application/json")


@store_router.put("/blobs/{path:path}")
async def upload_blob(path: str, request: Request) -> dict[str, Any]:
    """Validate and replace a whole state document."""
    blob_path = _owned_path(request, path)
    state = decode_app_state(await request.body())
    # The git commit blocks, so it runs in the worker threadpool.
    metadata = await run_in_threadpool(
        get_request_blob_store(request).upload, blob_path, encode_app_state(state)
    )
    return success_response(metadata.to_dict())


@store_router.delete("/blobs/{path:path}")
def delete_blob(path: str, request: Request) -> dict[str, Any]:
    blob_path = _owned_path(request, path)
    commit_sha = get_request_blob_store(request).delete(blob_path)
    return success_response(
        {"path": blob_path, "deleted": True, "commitSha": commit_sha}
    )


@store_router.get("/activity")
def read_activity_log(
    request: Request, limit: int = 50, since: str | None = None
) -> dict[str, Any]:
    """Read entries from the caller's activity log."""
    limit = _read_positive_limit(limit)
    since_value = None
    if since is not None:
        try:
            since_value = datetime.fromisoformat(since)
        except ValueError:
            raise TaskTreeError(
                "INVALID_DATE",
                "since must be ISO date-time.",
                {"since": since},
            )
        if since_value.tzinfo is None:
            since_value = since_value.replace(tzinfo=timezone.utc)

    user_root = get_request_blob_store(request).root / get_request_user_id(request)
    entries = _read_activity_entries(user_root, since_value, limit)
    return success_response({"entries": entries})


@store_router.get("/history")
def read_state_history(request: Request, limit: int = 20) -> dict[str, Any]:
    """List the most recent commits of the caller's store directory."""
    limit = _read_positive_limit(limit)
    user_root = get_request_blob_store(request).root / get_request_user_id(request)
    if not (user_root / ".git").exists():
        return success_response({"commits": []})
    repo = _ensure_git_repo(user_root)
    return success_response({"commits": _read_history(repo, limit)})
