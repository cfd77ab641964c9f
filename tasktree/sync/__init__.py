"""Sync sessions and the strategies that move state to and from a remote."""

from __future__ import annotations

from tasktree.auth import AuthService
from tasktree.config import SyncConfig
from tasktree.remote import BlobStore, DocumentStore
from tasktree.sync.session import SyncSession, SyncStatus, SyncStrategy, WriteState
from tasktree.sync.strategies import PollingStrategy, SubscriptionStrategy

__all__ = [
    "PollingStrategy",
    "SubscriptionStrategy",
    "SyncSession",
    "SyncStatus",
    "SyncStrategy",
    "WriteState",
    "polling_session",
    "subscription_session",
]


def polling_session(auth: AuthService, store: BlobStore, config: SyncConfig) -> SyncSession:
    strategy = PollingStrategy(
        store,
        poll_interval_seconds=config.poll_interval_seconds,
        skew_tolerance_seconds=config.skew_tolerance_seconds,
    )
    return SyncSession(auth, strategy, debounce_seconds=config.debounce_seconds)


def subscription_session(
    auth: AuthService, store: DocumentStore, config: SyncConfig
) -> SyncSession:
    return SyncSession(
        auth, SubscriptionStrategy(store), debounce_seconds=config.debounce_seconds
    )
