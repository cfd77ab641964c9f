import asyncio
import json

import httpx
import pytest

from tasktree.auth import LocalAuthService
from tasktree.config import StoreConfig
from tasktree.constants import seed_items
from tasktree.errors import AuthLostError, NotFoundError, TransportError, ValidationError
from tasktree.main import create_app
from tasktree.remote import HttpBlobStore

BLOB_PATH = "testuser123/state.json"


def _store(tmp_path, auth=None, service_token=None):
    app = create_app(
        StoreConfig(store_path=tmp_path, require_user_header=True, service_token=service_token)
    )
    return HttpBlobStore(
        "http://tasktree.test",
        auth or LocalAuthService("test-user-123"),
        transport=httpx.ASGITransport(app=app),
    )


def _state_bytes():
    payload = {"items": seed_items(), "hideDoneItems": True, "darkMode": False}
    return json.dumps(payload).encode("utf-8")


def test_round_trip_against_service(tmp_path):
    async def scenario():
        async with _store(tmp_path) as store:
            with pytest.raises(NotFoundError):
                await store.get_metadata(BLOB_PATH)

            uploaded = await store.upload(BLOB_PATH, _state_bytes())
            metadata = await store.get_metadata(BLOB_PATH)
            content = await store.download(BLOB_PATH)
            await store.delete(BLOB_PATH)
            with pytest.raises(NotFoundError):
                await store.download(BLOB_PATH)
            return uploaded, metadata, content

    uploaded, metadata, content = asyncio.run(scenario())

    assert uploaded.commit_sha
    assert metadata.updated_at == uploaded.updated_at
    assert json.loads(content)["hideDoneItems"] is True


def test_invalid_upload_maps_to_validation_error(tmp_path):
    async def scenario():
        async with _store(tmp_path) as store:
            await store.upload(BLOB_PATH, b'{"items": []}')

    with pytest.raises(ValidationError):
        asyncio.run(scenario())


def test_missing_identity_is_auth_lost(tmp_path):
    auth = LocalAuthService()

    async def scenario():
        async with _store(tmp_path, auth=auth) as store:
            await store.get_metadata(BLOB_PATH)

    with pytest.raises(AuthLostError):
        asyncio.run(scenario())


def test_rejected_service_token_is_transport_error(tmp_path):
    async def scenario():
        async with _store(tmp_path, service_token="secret") as store:
            await store.get_metadata(BLOB_PATH)

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.error.code == "AUTH_FORBIDDEN"


def test_network_failure_is_transport_error():
    def _refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    store = HttpBlobStore(
        "http://tasktree.test",
        LocalAuthService("test-user-123"),
        transport=httpx.MockTransport(_refuse),
    )

    async def scenario():
        async with store:
            await store.download(BLOB_PATH)

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.error.code == "NETWORK_ERROR"


def test_unauthorized_response_is_auth_lost():
    store = HttpBlobStore(
        "http://tasktree.test",
        LocalAuthService("test-user-123"),
        transport=httpx.MockTransport(lambda request: httpx.Response(401)),
    )

    async def scenario():
        async with store:
            await store.get_metadata(BLOB_PATH)

    with pytest.raises(AuthLostError):
        asyncio.run(scenario())
