"""Shared constants for the task tree."""

from __future__ import annotations

import copy
from typing import Any

TRASH_ID = "trash"
STATE_BLOB_NAME = "state.json"
DOCUMENT_NAME = "appState"
BACKUP_FILENAME = "TaskTree_Backup.json"
ACTIVITY_LOG_FILENAME = "activity.log"

SEED_ITEMS: list[dict[str, Any]] = [
    {
        "id": "0",
        "value": "Do now",
        "done": False,
        "children": [
            {"id": "2", "value": "Call A\n000-0000-0000", "done": False, "children": []},
            {"id": "3", "value": "Reply to B's email", "done": True, "children": []},
        ],
    },
    {
        "id": "4",
        "value": "Later",
        "done": False,
        "children": [
            {"id": "5", "value": "Invite C to dinner", "done": False, "children": []},
        ],
    },
    {
        "id": "6",
        "value": "Project 1",
        "done": False,
        "children": [
            {
                "id": "7",
                "value": "Thinking",
                "done": False,
                "children": [
                    {"id": "8", "value": "Gather material", "done": False, "children": []},
                ],
            },
            {
                "id": "9",
                "value": "In progress",
                "done": False,
                "children": [
                    {"id": "10", "value": "Draft the proposal", "done": False, "children": []},
                ],
            },
        ],
    },
    {
        "id": "11",
        "value": "Notes",
        "done": False,
        "children": [
            {"id": "12", "value": "D's birthday is October 2", "done": False, "children": []},
        ],
    },
    {
        "id": "13",
        "value": "Shopping list",
        "done": False,
        "children": [
            {"id": "14", "value": "Detergent", "done": True, "children": []},
            {"id": "15", "value": "Eraser", "done": False, "children": []},
        ],
    },
    {"id": TRASH_ID, "value": "Trash", "children": []},
]


def seed_items() -> list[dict[str, Any]]:
    """Return a fresh copy of the built-in seed forest."""
    return copy.deepcopy(SEED_ITEMS)
