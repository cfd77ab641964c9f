"""Configuration loading for the store service and sync clients."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_SERVER_URL = "http://127.0.0.1:18170"
DEFAULT_DEBOUNCE_MS = 3000
DEFAULT_POLL_INTERVAL_MS = 10000
DEFAULT_SKEW_TOLERANCE_MS = 3000
DEFAULT_REQUEST_TIMEOUT = 30


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or invalid."""


@dataclass(frozen=True)
class StoreConfig:
    store_path: Path
    require_user_header: bool
    service_token: str | None


@dataclass(frozen=True)
class SyncConfig:
    server_url: str = DEFAULT_SERVER_URL
    debounce_seconds: float = DEFAULT_DEBOUNCE_MS / 1000
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_MS / 1000
    skew_tolerance_seconds: float = DEFAULT_SKEW_TOLERANCE_MS / 1000
    request_timeout: float = float(DEFAULT_REQUEST_TIMEOUT)
    service_token: str | None = None


def _read_dotenv_value(dotenv_path: Path, key: str) -> str | None:
    """Read a single key from a .env file without mutating the environment."""
    if not dotenv_path.is_file():
        return None
    try:
        content = dotenv_path.read_text(encoding="utf-8")
    except OSError:
        return None

    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if stripped.startswith("export "):
            stripped = stripped[len("export ") :].strip()
        if "=" not in stripped:
            continue
        name, value = stripped.split("=", 1)
        name = name.strip()
        if name != key:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        return value or None
    return None


def _read_setting(dotenv_path: Path, key: str) -> str | None:
    raw_value = os.environ.get(key)
    if raw_value is None:
        raw_value = _read_dotenv_value(dotenv_path, key)
    return raw_value


def _read_bool(raw_value: str | None, *, default: bool, key: str) -> bool:
    if raw_value is None:
        return default
    normalized = raw_value.strip().lower()
    if not normalized:
        return default
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"{key} must be a boolean value.")


def _read_non_negative_int(raw_value: str | None, *, default: int, key: str) -> int:
    if raw_value is None or not raw_value.strip():
        return default
    try:
        value = int(raw_value.strip())
    except ValueError:
        raise ConfigError(f"{key} must be a non-negative integer.") from None
    if value < 0:
        raise ConfigError(f"{key} must be a non-negative integer.")
    return value


def _read_service_token(dotenv_path: Path) -> str | None:
    service_token = _read_setting(dotenv_path, "TASKTREE_SERVICE_TOKEN")
    service_token = service_token.strip() if isinstance(service_token, str) else None
    return service_token or None


def load_config() -> StoreConfig:
    """Load the blob store service configuration from the environment."""
    dotenv_path = Path.cwd() / ".env"

    raw_path = (_read_setting(dotenv_path, "TASKTREE_STORE_PATH") or "").strip()
    if not raw_path:
        raise ConfigError(
            "TASKTREE_STORE_PATH is required; set it to the store root path."
        )

    require_user_key = "TASKTREE_REQUIRE_USER_HEADER"
    require_user_header = _read_bool(
        _read_setting(dotenv_path, require_user_key),
        default=True,
        key=require_user_key,
    )

    return StoreConfig(
        store_path=Path(raw_path).expanduser().resolve(),
        require_user_header=require_user_header,
        service_token=_read_service_token(dotenv_path),
    )


def load_sync_config() -> SyncConfig:
    """Load sync client settings; every value has a default."""
    dotenv_path = Path.cwd() / ".env"

    server_url = (_read_setting(dotenv_path, "TASKTREE_SERVER_URL") or "").strip()
    debounce_ms = _read_non_negative_int(
        _read_setting(dotenv_path, "TASKTREE_DEBOUNCE_MS"),
        default=DEFAULT_DEBOUNCE_MS,
        key="TASKTREE_DEBOUNCE_MS",
    )
    poll_interval_ms = _read_non_negative_int(
        _read_setting(dotenv_path, "TASKTREE_POLL_INTERVAL_MS"),
        default=DEFAULT_POLL_INTERVAL_MS,
        key="TASKTREE_POLL_INTERVAL_MS",
    )
    skew_tolerance_ms = _read_non_negative_int(
        _read_setting(dotenv_path, "TASKTREE_SKEW_TOLERANCE_MS"),
        default=DEFAULT_SKEW_TOLERANCE_MS,
        key="TASKTREE_SKEW_TOLERANCE_MS",
    )
    request_timeout = _read_non_negative_int(
        _read_setting(dotenv_path, "TASKTREE_REQUEST_TIMEOUT"),
        default=DEFAULT_REQUEST_TIMEOUT,
        key="TASKTREE_REQUEST_TIMEOUT",
    )

    return SyncConfig(
        server_url=(server_url or DEFAULT_SERVER_URL).rstrip("/"),
        debounce_seconds=debounce_ms / 1000,
        poll_interval_seconds=poll_interval_ms / 1000,
        skew_tolerance_seconds=skew_tolerance_ms / 1000,
        request_timeout=float(request_timeout),
        service_token=_read_service_token(dotenv_path),
    )
