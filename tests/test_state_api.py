from __future__ import annotations

import asyncio
import json

from fastapi.testclient import TestClient

from tasktree.blob_store import FileBlobStore
from tasktree.config import StoreConfig
from tasktree.constants import seed_items
from tasktree.main import create_app
from tasktree.user_scope import USER_ID_HEADER

TEST_USER_ID = "test-user-123"
BLOB_PATH = "testuser123/state.json"


def _client(tmp_path) -> TestClient:
    config = StoreConfig(
        store_path=tmp_path, require_user_header=True, service_token=None
    )
    client = TestClient(create_app(config))
    client.headers.update({USER_ID_HEADER: TEST_USER_ID})
    return client


def _state_body(**overrides) -> bytes:
    payload = {"items": seed_items(), "hideDoneItems": False, "darkMode": False}
    payload.update(overrides)
    return json.dumps(payload).encode("utf-8")


def test_blob_lifecycle(tmp_path):
    with _client(tmp_path) as client:
        response = client.get(f"/metadata/{BLOB_PATH}")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

        response = client.put(f"/blobs/{BLOB_PATH}", content=_state_body(darkMode=True))
        assert response.status_code == 200
        uploaded = response.json()["data"]
        assert uploaded["path"] == BLOB_PATH
        assert uploaded["commitSha"]

        response = client.get(f"/metadata/{BLOB_PATH}")
        assert response.status_code == 200
        assert response.json()["data"]["updatedAt"] == uploaded["updatedAt"]

        response = client.get(f"/blobs/{BLOB_PATH}")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert response.json()["darkMode"] is True
        assert [node["id"] for node in response.json()["items"]][-1] == "trash"

        response = client.delete(f"/blobs/{BLOB_PATH}")
        assert response.status_code == 200
        assert response.json()["data"]["deleted"] is True

        response = client.get(f"/blobs/{BLOB_PATH}")
        assert response.status_code == 404


def test_upload_rejects_invalid_state(tmp_path):
    with _client(tmp_path) as client:
        response = client.put(f"/blobs/{BLOB_PATH}", content=b'{"items": 3}')
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_STATE"

        response = client.put(f"/blobs/{BLOB_PATH}", content=b"not json")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_JSON"

        assert client.get(f"/metadata/{BLOB_PATH}").status_code == 404


def test_upload_repairs_children_and_drops_extra_fields(tmp_path):
    body = json.dumps(
        {
            "items": [{"id": "1", "value": "a"}],
            "hideDoneItems": True,
            "darkMode": False,
            "lastUpdated": "2024-01-01T00:00:00+00:00",
        }
    ).encode("utf-8")

    with _client(tmp_path) as client:
        assert client.put(f"/blobs/{BLOB_PATH}", content=body).status_code == 200
        stored = client.get(f"/blobs/{BLOB_PATH}").json()

    assert stored == {
        "items": [{"id": "1", "value": "a", "children": []}],
        "hideDoneItems": True,
        "darkMode": False,
    }


def test_paths_are_scoped_to_the_caller(tmp_path):
    with _client(tmp_path) as client:
        response = client.put("/blobs/otheruser/state.json", content=_state_body())
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"

        response = client.get("/blobs/testuser123/../otheruser/state.json")
        assert response.status_code in {400, 403, 404}

    assert not (tmp_path / "otheruser").exists()


def test_activity_and_history_endpoints(tmp_path):
    with _client(tmp_path) as client:
        response = client.get("/history")
        assert response.json()["data"]["commits"] == []

        client.put(f"/blobs/{BLOB_PATH}", content=_state_body())
        client.put(f"/blobs/{BLOB_PATH}", content=_state_body(darkMode=True))

        response = client.get("/activity", params={"limit": 1})
        entries = response.json()["data"]["entries"]
        assert len(entries) == 1
        assert entries[0]["summary"] == "replace"

        response = client.get("/activity", params={"since": "2000-01-01T00:00:00"})
        assert len(response.json()["data"]["entries"]) == 2

        response = client.get("/activity", params={"since": "yesterday"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_DATE"

        response = client.get("/activity", params={"limit": 0})
        assert response.status_code == 400

        response = client.get("/history")
        commits = response.json()["data"]["commits"]
        assert [commit["message"] for commit in commits] == [
            "upload: state.json",
            "upload: state.json",
        ]


def test_store_bookkeeping_files_are_not_blobs(tmp_path):
    with _client(tmp_path) as client:
        assert client.put(f"/blobs/{BLOB_PATH}", content=_state_body()).status_code == 200

        response = client.put("/blobs/testuser123/activity.log", content=_state_body())
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "RESERVED_PATH"

        response = client.get("/blobs/testuser123/.git/config")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_PATH"

        response = client.delete("/blobs/testuser123/.gitignore")
        assert response.status_code == 400

        entries = client.get("/activity").json()["data"]["entries"]
        assert [entry["summary"] for entry in entries] == ["create"]


def test_upload_commits_outside_the_event_loop(tmp_path, monkeypatch):
    loop_states = []
    original_upload = FileBlobStore.upload

    def _recording_upload(self, raw_path, data):
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            loop_states.append("worker")
        else:
            loop_states.append("event-loop")
        return original_upload(self, raw_path, data)

    monkeypatch.setattr(FileBlobStore, "upload", _recording_upload)

    with _client(tmp_path) as client:
        assert client.put(f"/blobs/{BLOB_PATH}", content=_state_body()).status_code == 200

    assert loop_states == ["worker"]
