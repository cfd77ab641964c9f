"""Git history for each user's store directory, committed with dulwich."""

from __future__ import annotations

from pathlib import Path

from dulwich import porcelain
from dulwich.repo import Repo

from tasktree.errors import TransportError
from tasktree.fs_utils import _atomic_write_bytes


def _ensure_git_repo(user_root: Path) -> Repo:
    git_dir = user_root / ".git"
    try:
        if git_dir.exists():
            return Repo(user_root)
        return porcelain.init(user_root)
    except Exception as exc:
        raise TransportError(
            "GIT_ERROR",
            "Git repository could not be initialized.",
            {"path": str(user_root)},
        ) from exc


def _commit_blob_change(repo: Repo, relative_path: Path, operation: str) -> str:
    repo.get_worktree().stage([str(relative_path)])
    commit_message = f"{operation}: {relative_path.as_posix()}"
    commit_sha = porcelain.commit(repo, message=commit_message)
    if isinstance(commit_sha, bytes):
        return commit_sha.decode("ascii")
    return str(commit_sha)


def _rollback_blob_change(
    repo: Repo | None,
    target_path: Path,
    relative_path: Path,
    original_content: bytes | None,
) -> None:
    """Restore the previous blob, or remove it when it did not exist."""
    if original_content is None:
        try:
            if target_path.exists():
                target_path.unlink()
        except OSError:
            pass
    else:
        _atomic_write_bytes(target_path, original_content)
    if repo is None:
        return
    try:
        repo.get_worktree().stage([str(relative_path)])
    except Exception:
        pass


def _read_history(repo: Repo, limit: int) -> list[dict[str, str]]:
    entries: list[dict[str, str]] = []
    try:
        walker = repo.get_walker(max_entries=limit)
    except KeyError:
        return entries
    for walk_entry in walker:
        commit = walk_entry.commit
        entries.append(
            {
                "commitSha": commit.id.decode("ascii"),
                "message": commit.message.decode("utf-8", "replace").strip(),
            }
        )
    return entries
