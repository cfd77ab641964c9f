"""Blob path validation for keeping reads and writes inside the store root."""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from tasktree.constants import ACTIVITY_LOG_FILENAME
from tasktree.errors import TaskTreeError


def parse_blob_path(raw_path: str) -> PurePosixPath:
    """Validate a ``{UserId}/{name}`` blob path without touching the disk."""
    if not isinstance(raw_path, str):
        raise TaskTreeError(
            "INVALID_TYPE",
            "Path must be a string.",
            {"path": str(raw_path), "type": type(raw_path).__name__},
        )

    normalized = raw_path.replace("\\", "/")
    candidate = PurePosixPath(normalized)

    if candidate.is_absolute():
        raise TaskTreeError(
            "ABSOLUTE_PATH",
            "Absolute paths are not allowed.",
            {"path": raw_path},
        )

    if ".." in candidate.parts:
        raise TaskTreeError(
            "PATH_TRAVERSAL",
            "Path traversal is not allowed.",
            {"path": raw_path},
        )

    if len(candidate.parts) != 2:
        raise TaskTreeError(
            "INVALID_PATH",
            "Blob paths must look like '<user>/<name>'.",
            {"path": raw_path},
        )

    # Dotfiles and the activity log belong to the store, not to callers.
    name = candidate.parts[1]
    if name.startswith(".") or name == ACTIVITY_LOG_FILENAME:
        raise TaskTreeError(
            "RESERVED_PATH",
            "Blob name is reserved by the store.",
            {"path": raw_path},
        )
    return candidate


def validate_path(store_root: Path, raw_path: str) -> Path:
    """Validate a blob path and return its absolute location under the root."""
    candidate = parse_blob_path(raw_path)

    if _contains_symlink(store_root, candidate):
        raise TaskTreeError(
            "PATH_SYMLINK",
            "Symlinked paths are not allowed.",
            {"path": raw_path},
        )

    return store_root.joinpath(*candidate.parts)


def _contains_symlink(store_root: Path, relative_path: PurePosixPath) -> bool:
    current = store_root
    for segment in relative_path.parts:
        current = current / segment
        if current.is_symlink():
            return True
    return False
