"""Sync session: local task tree state kept in step with a remote copy.

A session walks ``SIGNED_OUT -> LOADING -> SYNCED <-> SAVING`` and falls back
to ``SIGNED_OUT`` on any unrecoverable error. Outgoing writes are debounced
and coordinated through a single ``WriteState``:

* a local mutation moves to ``PENDING_LOCAL_WRITE`` and restarts the quiet
  period timer; when the timer fires the state is persisted
  (``PERSISTING``) and the write state returns to ``IDLE``;
* a remote snapshot moves to ``APPLYING_REMOTE`` before it is applied and
  goes through the same timer, which then resets to ``IDLE`` without writing.

Everything runs on one asyncio event loop; the transport calls are the only
suspension points.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Protocol

from tasktree import tree
from tasktree.auth import AuthService
from tasktree.config import DEFAULT_DEBOUNCE_MS
from tasktree.constants import seed_items
from tasktree.errors import AuthLostError, NotFoundError, TaskTreeError
from tasktree.state import AppState, export_backup, import_backup, parse_app_state

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    SIGNED_OUT = "signed_out"
    LOADING = "loading"
    SYNCED = "synced"
    SAVING = "saving"


class WriteState(str, Enum):
    IDLE = "idle"
    PENDING_LOCAL_WRITE = "pending_local_write"
    PERSISTING = "persisting"
    APPLYING_REMOTE = "applying_remote"


class SyncStrategy(Protocol):
    async def load(self, session: "SyncSession") -> AppState | None: ...

    def start(self, session: "SyncSession") -> None: ...

    async def persist(self, session: "SyncSession", state: AppState) -> None: ...

    async def remove(self, session: "SyncSession") -> None: ...

    async def stop(self) -> None: ...


_ACTIVE = (SyncStatus.SYNCED, SyncStatus.SAVING)


class SyncSession:
    def __init__(
        self,
        auth: AuthService,
        strategy: SyncStrategy,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_MS / 1000,
        seed: Callable[[], tree.Forest] = seed_items,
    ) -> None:
        self.state = AppState()
        self.status = SyncStatus.SIGNED_OUT
        self.write_state = WriteState.IDLE
        self.message: str | None = None
        self.selected_id: str | None = None
        self._auth = auth
        self._strategy = strategy
        self._debounce_seconds = debounce_seconds
        self._seed = seed
        self._debounce_handle: asyncio.TimerHandle | None = None
        self._persist_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

    @property
    def user_id(self) -> str:
        user_id = self._auth.current_identity()
        if user_id is None:
            raise AuthLostError("AUTH_LOST", "No signed-in user.")
        return user_id

    @property
    def is_loading(self) -> bool:
        return self.status == SyncStatus.LOADING

    # -------------------- lifecycle --------------------

    async def start(self) -> None:
        """Load the remote state for the signed-in user and begin syncing."""
        if self.status != SyncStatus.SIGNED_OUT:
            return
        self.status = SyncStatus.LOADING
        self.message = None
        try:
            user_id = self.user_id
            try:
                remote = await self._strategy.load(self)
            except NotFoundError:
                remote = None
        except TaskTreeError as exc:
            await self.fail(exc)
            return
        if self.status != SyncStatus.LOADING:
            return

        if remote is None:
            # A missing remote is never overwritten until the user edits.
            logger.info("No remote state for %s; using the seed forest", user_id)
            self.state = AppState(items=self._seed())
            self.write_state = WriteState.IDLE
        else:
            logger.info("Loaded remote state for %s", user_id)
            self._apply_remote(remote)
        self.status = SyncStatus.SYNCED
        self._strategy.start(self)

    async def close(self) -> None:
        """Stop syncing without touching the identity."""
        await self._teardown()
        self.status = SyncStatus.SIGNED_OUT

    async def sign_out(self, message: str | None = "Signed out.") -> None:
        await self._teardown()
        self._auth.sign_out()
        self.state = AppState()
        self.selected_id = None
        self.status = SyncStatus.SIGNED_OUT
        self.message = message

    async def fail(self, exc: TaskTreeError) -> None:
        """Tear the session down after an unrecoverable error."""
        logger.warning("Sync failed with %s: %s; signing out", exc.code, exc.message)
        await self.sign_out(message=f"Signed out: {exc.message}")

    def schedule_failure(self, exc: TaskTreeError) -> None:
        self._track(asyncio.get_running_loop().create_task(self.fail(exc)))

    async def flush(self) -> None:
        """Persist a pending local write now instead of after the quiet period."""
        if self._persist_task is not None and not self._persist_task.done():
            await self._persist_task
        if self._debounce_handle is None:
            return
        self._debounce_handle.cancel()
        self._debounce_handle = None
        if self.write_state == WriteState.APPLYING_REMOTE:
            self.write_state = WriteState.IDLE
        elif self.write_state == WriteState.PENDING_LOCAL_WRITE:
            await self._persist()

    async def delete_account(self) -> bool:
        """Remove the remote copy, then sign out.

        An upload that is already in flight is awaited first so it cannot
        land after the removal.
        """
        self._cancel_debounce()
        task = self._persist_task
        if task is not None and not task.done():
            await task
        self._cancel_debounce()
        try:
            await self._strategy.remove(self)
        except NotFoundError:
            pass
        except TaskTreeError as exc:
            logger.warning("Account data removal failed: %s", exc.message)
            await self.sign_out(message=f"Account deletion failed: {exc.message}")
            return False
        await self.sign_out(message="Account data deleted.")
        return True

    # -------------------- remote side --------------------

    def receive_remote(self, state: AppState) -> None:
        """Apply a snapshot delivered by the strategy while syncing."""
        if self.status not in _ACTIVE:
            return
        logger.info("Applying remote state for %s", self._auth.current_identity())
        self._apply_remote(state)

    def _apply_remote(self, state: AppState) -> None:
        self.write_state = WriteState.APPLYING_REMOTE
        self.state = state
        self._observe_change()

    # -------------------- debounce / persist --------------------

    def _mark_local_change(self) -> None:
        if self.status not in _ACTIVE:
            return
        self.write_state = WriteState.PENDING_LOCAL_WRITE
        self._observe_change()

    def _observe_change(self) -> None:
        self._cancel_debounce()
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(
            self._debounce_seconds, self._on_quiet_period
        )

    def _on_quiet_period(self) -> None:
        self._debounce_handle = None
        if self.write_state == WriteState.APPLYING_REMOTE:
            logger.debug("Skipping persist of externally sourced state")
            self.write_state = WriteState.IDLE
            return
        if self.write_state != WriteState.PENDING_LOCAL_WRITE:
            return
        if self._persist_task is not None and not self._persist_task.done():
            self._observe_change()
            return
        self._persist_task = self._track(
            asyncio.get_running_loop().create_task(self._persist())
        )

    async def _persist(self) -> None:
        if self.status not in _ACTIVE:
            return
        if self._auth.current_identity() is None:
            await self.fail(AuthLostError("AUTH_LOST", "No signed-in user."))
            return
        snapshot = self.state
        self.write_state = WriteState.PERSISTING
        self.status = SyncStatus.SAVING
        try:
            await self._strategy.persist(self, snapshot)
        except TaskTreeError as exc:
            await self.fail(exc)
            return
        logger.info("Persisted state for %s", self._auth.current_identity())
        if self.status == SyncStatus.SAVING:
            self.status = SyncStatus.SYNCED
        if self.write_state == WriteState.PERSISTING:
            self.write_state = WriteState.IDLE

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    async def _teardown(self) -> None:
        self._cancel_debounce()
        self.write_state = WriteState.IDLE
        await self._strategy.stop()
        task = self._persist_task
        self._persist_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # -------------------- intents --------------------

    def select(self, node_id: str | None) -> None:
        self.selected_id = node_id

    def add_task(self, value: str = "") -> str:
        """Add a task under the selection, or at top level per placement rules."""
        items = self.state.items
        node = tree.new_task(items, value)
        parent_id = tree.resolve_add_target(items, self.selected_id)
        if parent_id is None:
            items = tree.add_node_at_top_level(items, node)
        else:
            items = tree.add_node_under_parent(items, parent_id, node)
        self._replace(items=items)
        return node["id"]

    def toggle_done(self, node_id: str) -> bool:
        return self._update_items(tree.toggle_done(self.state.items, node_id))

    def edit_value(self, node_id: str, value: str) -> bool:
        return self._update_items(tree.edit_value(self.state.items, node_id, value))

    def move_node(
        self, node_id: str, new_parent_id: str | None, index: int | None = None
    ) -> bool:
        return self._update_items(
            tree.move_node(self.state.items, node_id, new_parent_id, index)
        )

    def move_to_trash(self, node_id: str) -> bool:
        return self._update_items(tree.move_to_trash(self.state.items, node_id))

    def empty_trash(self) -> bool:
        return self._update_items(tree.empty_trash(self.state.items))

    def set_hide_done_items(self, hide_done_items: bool) -> None:
        if hide_done_items != self.state.hide_done_items:
            self._replace(hide_done_items=hide_done_items)

    def set_dark_mode(self, dark_mode: bool) -> None:
        if dark_mode != self.state.dark_mode:
            self._replace(dark_mode=dark_mode)

    def import_state(self, payload: Any) -> AppState:
        """Replace local state with an imported payload.

        Invalid payloads raise ``ValidationError`` and leave state untouched.
        """
        state = parse_app_state(payload)
        self.state = state
        self._mark_local_change()
        return state

    def import_file(self, path: Path) -> AppState:
        state = import_backup(path)
        self.state = state
        self._mark_local_change()
        return state

    def export_state(self) -> dict[str, Any]:
        return self.state.to_dict()

    def export_file(self, directory: Path) -> Path:
        return export_backup(self.state, directory)

    def _update_items(self, items: tree.Forest) -> bool:
        if items == self.state.items:
            return False
        self._replace(items=items)
        return True

    def _replace(self, **changes: Any) -> None:
        self.state = dataclasses.replace(self.state, **changes)
        self._mark_local_change()
