"""Remote store transports used by sync sessions.

Two store shapes are supported: a blob store addressed by
``{UserId}/state.json`` (metadata, download, upload, delete) and a live
document store addressed by ``users/{UserId}/appState`` (subscribe, set,
remove). All failures surface as ``TaskTreeError`` subclasses.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from datetime import datetime
from typing import Any, Callable, Protocol

import httpx

from tasktree.auth import AuthService
from tasktree.blob_store import BlobMetadata, FileBlobStore
from tasktree.errors import (
    AuthLostError,
    NotFoundError,
    TaskTreeError,
    TransportError,
    ValidationError,
)
from tasktree.user_scope import SERVICE_TOKEN_HEADER, USER_ID_HEADER

logger = logging.getLogger(__name__)

ChangeListener = Callable[[Any], None]
Unsubscribe = Callable[[], None]

_VALIDATION_CODES = {"INVALID_STATE", "INVALID_JSON"}


class BlobStore(Protocol):
    async def get_metadata(self, path: str) -> BlobMetadata: ...

    async def download(self, path: str) -> bytes: ...

    async def upload(self, path: str, data: bytes) -> BlobMetadata: ...

    async def delete(self, path: str) -> None: ...


class DocumentStore(Protocol):
    def subscribe(self, path: str, on_change: ChangeListener) -> Unsubscribe: ...

    async def set(self, path: str, value: Any) -> None: ...

    async def remove(self, path: str) -> None: ...


class HttpBlobStore:
    """Async client for the blob store service."""

    def __init__(
        self,
        base_url: str,
        auth: AuthService,
        *,
        service_token: str | None = None,
        timeout: float | None = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._auth = auth
        self._service_token = service_token
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._service_token:
                headers[SERVICE_TOKEN_HEADER] = self._service_token
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpBlobStore":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def get_metadata(self, path: str) -> BlobMetadata:
        response = await self._request("GET", f"/metadata/{path}")
        return _metadata_from_response(response)

    async def download(self, path: str) -> bytes:
        response = await self._request("GET", f"/blobs/{path}")
        return response.content

    async def upload(self, path: str, data: bytes) -> BlobMetadata:
        response = await self._request(
            "PUT",
            f"/blobs/{path}",
            content=data,
            headers={"Content-Type": "application/json"},
        )
        return _metadata_from_response(response)

    async def delete(self, path: str) -> None:
        await self._request("DELETE", f"/blobs/{path}")

    async def _request(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        user_id = self._auth.current_identity()
        if user_id is None:
            raise AuthLostError("AUTH_LOST", "No signed-in user.")
        headers = {USER_ID_HEADER: user_id, **kwargs.pop("headers", {})}
        try:
            response = await self.client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(
                "NETWORK_ERROR",
                f"{method} {url} failed.",
                {"error": str(exc) or type(exc).__name__},
            ) from exc
        _raise_for_status(response)
        return response


def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code < 400:
        return

    code, message, details = None, f"Store error: {response.status_code}", {}
    try:
        error = response.json().get("error") or {}
        code = error.get("code")
        message = error.get("message") or message
        details = error.get("details") or {}
    except (json.JSONDecodeError, AttributeError):
        pass

    if response.status_code == 401:
        raise AuthLostError(code, message, details)
    if response.status_code == 404:
        raise NotFoundError(code, message, details)
    if code in _VALIDATION_CODES:
        raise ValidationError(code, message, details)
    raise TransportError(code, message, details)


def _metadata_from_response(response: httpx.Response) -> BlobMetadata:
    try:
        data = response.json()["data"]
        return BlobMetadata(
            path=data["path"],
            updated_at=datetime.fromisoformat(data["updatedAt"]),
            commit_sha=data.get("commitSha"),
        )
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        raise TransportError(
            "INVALID_RESPONSE",
            "Store returned unexpected metadata.",
            {"body": response.text[:200]},
        ) from exc


class LocalBlobStore:
    """Async adapter that talks to an on-disk store in-process."""

    def __init__(self, store: FileBlobStore) -> None:
        self._store = store

    async def get_metadata(self, path: str) -> BlobMetadata:
        return self._call(self._store.get_metadata, path)

    async def download(self, path: str) -> bytes:
        return self._call(self._store.download, path)

    async def upload(self, path: str, data: bytes) -> BlobMetadata:
        return self._call(self._store.upload, path, data)

    async def delete(self, path: str) -> None:
        self._call(self._store.delete, path)

    def _call(self, operation: Callable[..., Any], *args: Any) -> Any:
        try:
            return operation(*args)
        except TaskTreeError:
            raise
        except OSError as exc:
            raise TransportError(
                "STORE_ERROR",
                "Local store operation failed.",
                {"error": str(exc)},
            ) from exc


class InMemoryDocumentStore:
    """Live document store held in process memory.

    Subscribers get the current value right after subscribing and a
    snapshot after every change, including changes they made themselves.
    Deliveries are scheduled on the running event loop.
    """

    def __init__(self) -> None:
        self._documents: dict[str, Any] = {}
        self._listeners: dict[str, list[ChangeListener]] = {}

    def get(self, path: str) -> Any:
        return copy.deepcopy(self._documents.get(path))

    def subscribe(self, path: str, on_change: ChangeListener) -> Unsubscribe:
        self._listeners.setdefault(path, []).append(on_change)
        self._schedule(path, on_change, self.get(path))

        def unsubscribe() -> None:
            listeners = self._listeners.get(path, [])
            if on_change in listeners:
                listeners.remove(on_change)

        return unsubscribe

    async def set(self, path: str, value: Any) -> None:
        self._documents[path] = json.loads(json.dumps(value))
        self._notify(path)

    async def remove(self, path: str) -> None:
        self._documents.pop(path, None)
        self._notify(path)

    def _notify(self, path: str) -> None:
        snapshot = self.get(path)
        for listener in list(self._listeners.get(path, [])):
            self._schedule(path, listener, snapshot)

    def _schedule(self, path: str, listener: ChangeListener, snapshot: Any) -> None:
        asyncio.get_running_loop().call_soon(self._deliver, path, listener, snapshot)

    def _deliver(self, path: str, listener: ChangeListener, snapshot: Any) -> None:
        if listener not in self._listeners.get(path, []):
            return
        logger.debug("Delivering change for %s", path)
        listener(copy.deepcopy(snapshot))
