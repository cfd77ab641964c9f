"""Per-user activity log of blob store mutations."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from tasktree.constants import ACTIVITY_LOG_FILENAME


def _activity_log_path(user_root: Path) -> Path:
    return user_root / ACTIVITY_LOG_FILENAME


def _append_activity_log(user_root: Path, entry: dict[str, str]) -> None:
    log_path = _activity_log_path(user_root)
    payload = json.dumps(entry, sort_keys=True, separators=(",", ":"))
    with log_path.open("a", encoding="utf-8") as log_file:
        log_file.write(payload + "\n")
        log_file.flush()
        os.fsync(log_file.fileno())


def _build_activity_entry(
    operation: str,
    relative_path: Path,
    summary: str,
    commit_sha: str,
) -> dict[str, str]:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "operation": operation,
        "path": relative_path.as_posix(),
        "summary": summary,
        "commitSha": commit_sha,
    }


def _read_activity_entries(
    user_root: Path, since: datetime | None, limit: int
) -> list[dict[str, Any]]:
    log_path = _activity_log_path(user_root)
    if not log_path.exists():
        return []
    entries: list[dict[str, Any]] = []
    for line in log_path.read_text(encoding="utf-8").splitlines():
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if since:
            timestamp = entry.get("timestamp")
            try:
                entry_time = datetime.fromisoformat(timestamp)
            except (TypeError, ValueError):
                entry_time = None
            if entry_time and entry_time < since:
                continue
        entries.append(entry)
    return entries[-limit:]
