"""AppState shape validation, repair, JSON codec and backup files."""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from tasktree.constants import BACKUP_FILENAME
from tasktree.errors import ValidationError
from tasktree.fs_utils import _atomic_write
from tasktree.tree import Forest

PAYLOAD_FIELDS = ("items", "hideDoneItems", "darkMode")


@dataclass
class AppState:
    items: Forest = field(default_factory=list)
    hide_done_items: bool = False
    dark_mode: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": copy.deepcopy(self.items),
            "hideDoneItems": self.hide_done_items,
            "darkMode": self.dark_mode,
        }


def is_valid_app_state(candidate: Any, *, deep: bool = True) -> bool:
    """Structural gate for any externally supplied state.

    Nothing is repaired here; a payload either has the expected shape or is
    rejected as a whole.
    """
    if not isinstance(candidate, dict):
        return False
    if not isinstance(candidate.get("hideDoneItems"), bool):
        return False
    if not isinstance(candidate.get("darkMode"), bool):
        return False
    items = candidate.get("items")
    if not isinstance(items, list):
        return False
    return all(_is_valid_node(node, deep=deep) for node in items)


def _is_valid_node(node: Any, *, deep: bool) -> bool:
    if not isinstance(node, dict):
        return False
    if not isinstance(node.get("id"), str) or not node["id"]:
        return False
    if not isinstance(node.get("value"), str):
        return False
    if "done" in node and node["done"] is not None and not isinstance(node["done"], bool):
        return False
    children = node.get("children")
    if not isinstance(children, list):
        return False
    if not deep:
        return True
    return all(_is_valid_node(child, deep=True) for child in children)


def repair_children(items: Any) -> Any:
    """Return a copy where absent or null ``children`` become empty lists."""
    if not isinstance(items, list):
        return items
    repaired = []
    for node in items:
        if isinstance(node, dict):
            node = dict(node)
            if node.get("children") is None:
                node["children"] = []
            else:
                node["children"] = repair_children(node["children"])
        repaired.append(node)
    return repaired


def parse_app_state(payload: Any) -> AppState:
    """Repair then validate an ingested payload, dropping extra fields."""
    if isinstance(payload, dict) and "items" in payload:
        payload = {**payload, "items": repair_children(payload["items"])}
    if not is_valid_app_state(payload):
        raise ValidationError(
            "INVALID_STATE",
            "State does not match the expected shape.",
            {"fields": list(PAYLOAD_FIELDS)},
        )
    return AppState(
        items=copy.deepcopy(payload["items"]),
        hide_done_items=payload["hideDoneItems"],
        dark_mode=payload["darkMode"],
    )


def encode_app_state(state: AppState) -> bytes:
    """Serialize for upload, refusing to send an invalid state."""
    payload = state.to_dict()
    if not is_valid_app_state(payload):
        raise ValidationError(
            "INVALID_STATE",
            "Refusing to persist a state that fails validation.",
            {"fields": list(PAYLOAD_FIELDS)},
        )
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode(
        "utf-8"
    )


def decode_app_state(data: bytes | str) -> AppState:
    try:
        payload = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError(
            "INVALID_JSON",
            "State is not valid JSON.",
            {"error": str(exc)},
        ) from exc
    return parse_app_state(payload)


def export_backup(
    state: AppState, directory: Path, last_updated: datetime | None = None
) -> Path:
    """Write a pretty-printed backup file into ``directory``."""
    payload = state.to_dict()
    if last_updated is not None:
        payload["lastUpdated"] = last_updated.isoformat()
    target = directory / BACKUP_FILENAME
    directory.mkdir(parents=True, exist_ok=True)
    _atomic_write(target, json.dumps(payload, ensure_ascii=False, indent=2) + "\n")
    return target


def import_backup(path: Path) -> AppState:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ValidationError(
            "FILE_READ_FAILED",
            "Backup file could not be read.",
            {"path": str(path)},
        ) from exc
    return decode_app_state(raw)
