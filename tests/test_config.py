import json
from pathlib import Path

import pytest

from codearena.config.env import Cfg, load_cfg, load_view_cfg
from codearena.session.store import SessionStore, load_session, save_session

ENV_KEYS = [
    "ARENA_API_BASE", "ARENA_ORIGIN", "ARENA_REQUEST_TIMEOUT_MS", "ARENA_RETRY_BACKOFF_MS",
    "ARENA_LEADERBOARD_POLL_SEC", "ARENA_BATTLES_POLL_SEC", "ARENA_BATTLE_POLL_SEC",
    "ARENA_SESSION_FILE", "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_without_environment():
    cfg = load_cfg()
    assert cfg.api_base_url == ""
    assert cfg.request_timeout_ms == 10_000
    assert cfg.retry_backoff_ms == 300
    assert cfg.leaderboard_poll_sec == 30
    assert cfg.battles_poll_sec == 20
    assert cfg.battle_poll_sec == 5
    assert cfg.site_origin() is None


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "ARENA_API_BASE=https://arena.test/backend\n"
        "ARENA_REQUEST_TIMEOUT_MS=2500\n"
        f"ARENA_SESSION_FILE={tmp_path / 'session.json'}\n"
        "LOG_LEVEL=DEBUG\n"
    )
    # load_dotenv writes into os.environ; registering the keys lets monkeypatch remove them
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)

    cfg = load_cfg(str(env_file))

    assert cfg.api_base_url == "https://arena.test/backend"
    assert cfg.request_timeout_ms == 2500
    assert cfg.session_file == tmp_path / "session.json"
    assert cfg.log_level == "DEBUG"
    assert cfg.site_origin() == "https://arena.test"


def test_explicit_origin_wins(monkeypatch):
    monkeypatch.setenv("ARENA_API_BASE", "https://api.arena.test/v1")
    monkeypatch.setenv("ARENA_ORIGIN", "https://arena.test/")
    assert load_cfg().site_origin() == "https://arena.test"


def test_invalid_timeout_is_rejected():
    with pytest.raises(ValueError):
        Cfg(request_timeout_ms=0)


def test_view_cfg_from_yaml(tmp_path):
    path = tmp_path / "watch.yml"
    path.write_text("leaderboard:\n  sort_by: battlesWon\n  direction: asc\n  page_size: 10\n")
    view = load_view_cfg(str(path))
    assert view.sort_by == "battlesWon"
    assert view.direction == "asc"
    assert view.page_size == 10
    assert view.institution == "all"


def test_view_cfg_missing_file_uses_defaults(tmp_path):
    view = load_view_cfg(str(tmp_path / "nope.yml"))
    assert view.sort_by == "points"
    assert view.page_size == 50


def test_session_roundtrip_and_logout(tmp_path):
    path = tmp_path / "nested" / "session.json"
    store = SessionStore()
    assert store.authorization_header() is None

    store.login("tok", "alice")
    save_session(store, path)
    assert json.loads(path.read_text()) == {"token": "tok", "username": "alice"}

    loaded = load_session(path)
    assert loaded.token == "tok"
    assert loaded.username == "alice"
    assert loaded.authorization_header() == "Bearer tok"

    loaded.logout()
    save_session(loaded, path)
    assert not path.exists()
    assert load_session(path).token is None


def test_corrupt_session_file_is_ignored(tmp_path):
    path = Path(tmp_path / "session.json")
    path.write_text("{not json")
    assert load_session(path).token is None
