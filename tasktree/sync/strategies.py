"""Interchangeable transports for a sync session."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from tasktree.config import DEFAULT_POLL_INTERVAL_MS, DEFAULT_SKEW_TOLERANCE_MS
from tasktree.errors import NotFoundError, TaskTreeError, TransportError, ValidationError
from tasktree.remote import BlobStore, DocumentStore, Unsubscribe
from tasktree.state import AppState, decode_app_state, encode_app_state, parse_app_state
from tasktree.user_scope import state_blob_path, state_document_path

if TYPE_CHECKING:
    from tasktree.sync.session import SyncSession

logger = logging.getLogger(__name__)


class PollingStrategy:
    """Pull by comparing blob timestamps; push by whole-blob upload.

    ``last_synced_at`` is the remote timestamp of the last download or
    upload. A remote copy is only fetched when it is newer than that by more
    than the skew tolerance, which keeps the session from re-reading its own
    write.
    """

    def __init__(
        self,
        store: BlobStore,
        *,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_MS / 1000,
        skew_tolerance_seconds: float = DEFAULT_SKEW_TOLERANCE_MS / 1000,
    ) -> None:
        self.last_synced_at: datetime | None = None
        self._store = store
        self._poll_interval = poll_interval_seconds
        self._skew_tolerance = skew_tolerance_seconds
        self._task: asyncio.Task | None = None

    def is_remote_newer(self, remote_updated_at: datetime) -> bool:
        if self.last_synced_at is None:
            return True
        delta = (remote_updated_at - self.last_synced_at).total_seconds()
        return delta > self._skew_tolerance

    async def load(self, session: "SyncSession") -> AppState | None:
        self.last_synced_at = None
        return await self.fetch_if_newer(session)

    async def fetch_if_newer(self, session: "SyncSession") -> AppState | None:
        path = state_blob_path(session.user_id)
        metadata = await self._store.get_metadata(path)
        if not self.is_remote_newer(metadata.updated_at):
            return None
        state = decode_app_state(await self._store.download(path))
        self.last_synced_at = metadata.updated_at
        return state

    def start(self, session: "SyncSession") -> None:
        self._task = asyncio.get_running_loop().create_task(self._poll(session))

    async def _poll(self, session: "SyncSession") -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                state = await self.fetch_if_newer(session)
            except NotFoundError:
                continue
            except TaskTreeError as exc:
                await session.fail(exc)
                return
            except Exception as exc:
                logger.exception("Polling for remote state failed")
                await session.fail(
                    TransportError("POLL_FAILED", "Polling failed.", {"error": str(exc)})
                )
                return
            if state is not None:
                session.receive_remote(state)

    async def persist(self, session: "SyncSession", state: AppState) -> None:
        path = state_blob_path(session.user_id)
        metadata = await self._store.upload(path, encode_app_state(state))
        self.last_synced_at = metadata.updated_at

    async def remove(self, session: "SyncSession") -> None:
        await self._store.delete(state_blob_path(session.user_id))

    async def stop(self) -> None:
        task = self._task
        self._task = None
        self.last_synced_at = None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


class SubscriptionStrategy:
    """Push with ``set``; pull through a live listener.

    Every delivery, including the echo of this session's own write, is
    applied as externally sourced. The first delivery is the initial load.
    A delivery that arrives between the load and ``start`` is held and
    applied when the session starts.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._session: SyncSession | None = None
        self._unsubscribe: Unsubscribe | None = None
        self._initial: asyncio.Future | None = None
        self._held: list[Any] = []
        self._live = False

    async def load(self, session: "SyncSession") -> AppState | None:
        await self.stop()
        self._session = session
        self._initial = asyncio.get_running_loop().create_future()
        self._unsubscribe = self._store.subscribe(
            state_document_path(session.user_id), self._on_change
        )
        value = await self._initial
        if value is None:
            return None
        return parse_app_state(value)

    def start(self, session: "SyncSession") -> None:
        self._session = session
        self._live = True
        held, self._held = self._held, []
        if held:
            self._apply_delivery(held[-1])

    def _on_change(self, value: Any) -> None:
        if self._initial is not None and not self._initial.done():
            self._initial.set_result(value)
            return
        if self._session is None:
            return
        if not self._live:
            self._held.append(value)
            return
        self._apply_delivery(value)

    def _apply_delivery(self, value: Any) -> None:
        if value is None:
            logger.info("Remote document was removed; keeping local state")
            return
        try:
            state = parse_app_state(value)
        except ValidationError as exc:
            self._session.schedule_failure(exc)
            return
        self._session.receive_remote(state)

    async def persist(self, session: "SyncSession", state: AppState) -> None:
        encode_app_state(state)
        await self._store.set(state_document_path(session.user_id), state.to_dict())

    async def remove(self, session: "SyncSession") -> None:
        await self._store.remove(state_document_path(session.user_id))

    async def stop(self) -> None:
        self._live = False
        self._session = None
        self._held = []
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._initial is not None and not self._initial.done():
            self._initial.cancel()
        self._initial = None
