import pytest

from tasktree.config import (
    DEFAULT_SERVER_URL,
    ConfigError,
    load_config,
    load_sync_config,
)

_SYNC_KEYS = (
    "TASKTREE_SERVER_URL",
    "TASKTREE_DEBOUNCE_MS",
    "TASKTREE_POLL_INTERVAL_MS",
    "TASKTREE_SKEW_TOLERANCE_MS",
    "TASKTREE_REQUEST_TIMEOUT",
    "TASKTREE_SERVICE_TOKEN",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in _SYNC_KEYS + ("TASKTREE_STORE_PATH", "TASKTREE_REQUIRE_USER_HEADER"):
        monkeypatch.delenv(key, raising=False)


def test_load_config_requires_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ConfigError) as excinfo:
        load_config()

    assert "TASKTREE_STORE_PATH" in str(excinfo.value)


def test_load_config_reads_env(monkeypatch, tmp_path):
    monkeypatch.setenv("TASKTREE_STORE_PATH", str(tmp_path))

    config = load_config()

    assert config.store_path == tmp_path.resolve()
    assert config.require_user_header is True
    assert config.service_token is None


def test_load_config_reads_dotenv_relative_path(monkeypatch, tmp_path):
    service_root = tmp_path / "service"
    service_root.mkdir()
    (service_root / ".env").write_text(
        '# store location\nexport TASKTREE_STORE_PATH="./store"\n',
        encoding="utf-8",
    )
    monkeypatch.chdir(service_root)

    config = load_config()

    assert config.store_path == (service_root / "store").resolve()


def test_load_config_prefers_env_over_dotenv(monkeypatch, tmp_path):
    env_root = tmp_path / "env"
    env_root.mkdir()
    (tmp_path / ".env").write_text(
        f"TASKTREE_STORE_PATH={tmp_path / 'dotenv'}\n", encoding="utf-8"
    )
    monkeypatch.setenv("TASKTREE_STORE_PATH", str(env_root))
    monkeypatch.chdir(tmp_path)

    config = load_config()

    assert config.store_path == env_root.resolve()


def test_load_config_reads_auth_flags(monkeypatch, tmp_path):
    monkeypatch.setenv("TASKTREE_STORE_PATH", str(tmp_path))
    monkeypatch.setenv("TASKTREE_REQUIRE_USER_HEADER", "false")
    monkeypatch.setenv("TASKTREE_SERVICE_TOKEN", "test-token")

    config = load_config()

    assert config.require_user_header is False
    assert config.service_token == "test-token"


def test_load_config_rejects_invalid_bool(monkeypatch, tmp_path):
    monkeypatch.setenv("TASKTREE_STORE_PATH", str(tmp_path))
    monkeypatch.setenv("TASKTREE_REQUIRE_USER_HEADER", "not-a-bool")

    with pytest.raises(ConfigError) as excinfo:
        load_config()

    assert "TASKTREE_REQUIRE_USER_HEADER" in str(excinfo.value)


def test_load_sync_config_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)

    config = load_sync_config()

    assert config.server_url == DEFAULT_SERVER_URL
    assert config.debounce_seconds == 3.0
    assert config.poll_interval_seconds == 10.0
    assert config.skew_tolerance_seconds == 3.0
    assert config.request_timeout == 30.0
    assert config.service_token is None


def test_load_sync_config_reads_overrides(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("TASKTREE_DEBOUNCE_MS=500\n", encoding="utf-8")
    monkeypatch.setenv("TASKTREE_SERVER_URL", "http://store.local:9000/")
    monkeypatch.setenv("TASKTREE_POLL_INTERVAL_MS", "2500")
    monkeypatch.setenv("TASKTREE_SKEW_TOLERANCE_MS", "0")

    config = load_sync_config()

    assert config.server_url == "http://store.local:9000"
    assert config.debounce_seconds == 0.5
    assert config.poll_interval_seconds == 2.5
    assert config.skew_tolerance_seconds == 0.0


@pytest.mark.parametrize("raw", ["-1", "fast", "1.5"])
def test_load_sync_config_rejects_bad_numbers(monkeypatch, tmp_path, raw):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TASKTREE_DEBOUNCE_MS", raw)

    with pytest.raises(ConfigError) as excinfo:
        load_sync_config()

    assert "TASKTREE_DEBOUNCE_MS" in str(excinfo.value)
