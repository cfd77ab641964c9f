"""On-disk blob store backing the sync service.

Blobs live at ``<root>/<user>/<name>``. Each user directory is its own git
repository: every upload and delete is committed and logged to the user's
activity log, and a failed commit rolls the blob back.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from tasktree.activity import _append_activity_log, _build_activity_entry
from tasktree.errors import NotFoundError, TransportError
from tasktree.fs_utils import _atomic_write_bytes
from tasktree.history import (
    _commit_blob_change,
    _ensure_git_repo,
    _rollback_blob_change,
)
from tasktree.paths import parse_blob_path, validate_path


@dataclass(frozen=True)
class BlobMetadata:
    path: str
    updated_at: datetime
    commit_sha: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        payload: dict[str, str | None] = {
            "path": self.path,
            "updatedAt": self.updated_at.isoformat(),
        }
        if self.commit_sha is not None:
            payload["commitSha"] = self.commit_sha
        return payload


class FileBlobStore:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def user_root(self, raw_path: str) -> Path:
        return self.root / parse_blob_path(raw_path).parts[0]

    def get_metadata(self, raw_path: str) -> BlobMetadata:
        target = self._existing_blob(raw_path)
        return BlobMetadata(path=raw_path, updated_at=_modified_at(target))

    def download(self, raw_path: str) -> bytes:
        target = self._existing_blob(raw_path)
        try:
            return target.read_bytes()
        except OSError as exc:
            raise TransportError(
                "FILE_READ_FAILED",
                "Blob could not be read.",
                {"path": raw_path},
            ) from exc

    def upload(self, raw_path: str, data: bytes) -> BlobMetadata:
        """Replace the whole blob and commit it."""
        target = validate_path(self.root, raw_path)
        user_root = self.user_root(raw_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        original = target.read_bytes() if target.is_file() else None

        repo = _ensure_git_repo(user_root)
        relative_path = target.relative_to(user_root)
        _atomic_write_bytes(target, data)
        try:
            commit_sha = _commit_blob_change(repo, relative_path, "upload")
        except Exception as exc:
            _rollback_blob_change(repo, target, relative_path, original)
            raise TransportError(
                "GIT_ERROR",
                "Git commit failed; upload rolled back.",
                {"path": raw_path, "operation": "upload"},
            ) from exc

        summary = "create" if original is None else "replace"
        _append_activity_log(
            user_root,
            _build_activity_entry("upload", relative_path, summary, commit_sha),
        )
        return BlobMetadata(
            path=raw_path, updated_at=_modified_at(target), commit_sha=commit_sha
        )

    def delete(self, raw_path: str) -> str:
        target = self._existing_blob(raw_path)
        user_root = self.user_root(raw_path)
        original = target.read_bytes()

        repo = _ensure_git_repo(user_root)
        relative_path = target.relative_to(user_root)
        target.unlink()
        try:
            commit_sha = _commit_blob_change(repo, relative_path, "delete")
        except Exception as exc:
            _rollback_blob_change(repo, target, relative_path, original)
            raise TransportError(
                "GIT_ERROR",
                "Git commit failed; delete rolled back.",
                {"path": raw_path, "operation": "delete"},
            ) from exc

        _append_activity_log(
            user_root,
            _build_activity_entry("delete", relative_path, "delete", commit_sha),
        )
        return commit_sha

    def _existing_blob(self, raw_path: str) -> Path:
        target = validate_path(self.root, raw_path)
        if not target.is_file():
            raise NotFoundError(
                "NOT_FOUND",
                "Blob does not exist.",
                {"path": PurePosixPath(raw_path).as_posix()},
            )
        return target


def _modified_at(target: Path) -> datetime:
    return datetime.fromtimestamp(target.stat().st_mtime, tz=timezone.utc)
