"""
Tests for config loading and typed settings.
Run with: pytest tests/test_config.py
"""

import pytest

from helpline import config as config_mod
from helpline.config import Settings, _resolve_env_vars, load_config


@pytest.fixture(autouse=True)
def reset_config_cache():
    saved = config_mod._config
    yield
    config_mod._config = saved


def test_resolve_env_var(monkeypatch):
    monkeypatch.setenv("HELPLINE_TEST_VALUE", "abc")
    assert _resolve_env_vars("x-${HELPLINE_TEST_VALUE}-y") == "x-abc-y"


def test_resolve_env_var_default(monkeypatch):
    monkeypatch.delenv("HELPLINE_TEST_MISSING", raising=False)
    assert _resolve_env_vars("${HELPLINE_TEST_MISSING:-fallback}") == "fallback"
    assert _resolve_env_vars("${HELPLINE_TEST_MISSING}") == ""


def test_resolve_env_var_empty_uses_default(monkeypatch):
    monkeypatch.setenv("HELPLINE_TEST_EMPTY", "")
    assert _resolve_env_vars("${HELPLINE_TEST_EMPTY:-d}") == "d"


def test_load_config_resolves_nested(tmp_path, monkeypatch):
    monkeypatch.setenv("HELPLINE_TEST_PORT", "4000")
    path = tmp_path / "config.yaml"
    path.write_text("server:\n  port: ${HELPLINE_TEST_PORT}\n  hosts: ['${HELPLINE_TEST_PORT:-x}']\n")

    cfg = load_config(path)
    assert cfg["server"]["port"] == "4000"
    assert cfg["server"]["hosts"] == ["4000"]


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_settings_defaults_from_empty_config():
    s = Settings.from_config({})
    assert s.port == 3001
    assert s.max_message_length == 2000
    assert s.max_history == 10
    assert s.cache_ttl_seconds == 3600
    assert s.cache_key_prefix_chars == 50
    assert s.llm_max_attempts == 3
    assert s.llm_retry_base_delay == 2.0
    assert s.llm_model == "gpt-5-nano"
    assert s.cache_enabled is True


def test_settings_coerces_strings():
    """Env-substituted values arrive as strings."""
    s = Settings.from_config({
        "server": {"port": "8080", "debug": "yes"},
        "cache": {"enabled": "false", "port": "6380", "connect_timeout": "0.5"},
        "chat": {"max_message_length": "100", "max_history": "4"},
        "llm": {"api_key": "sk-test", "store": "off"},
    })
    assert s.port == 8080
    assert s.debug is True
    assert s.cache_enabled is False
    assert s.cache_port == 6380
    assert s.cache_connect_timeout == 0.5
    assert s.max_message_length == 100
    assert s.max_history == 4
    assert s.llm_api_key == "sk-test"
    assert s.llm_store is False


def test_settings_empty_string_means_default():
    s = Settings.from_config({"cache": {"password": "", "port": ""}, "llm": {"api_key": ""}})
    assert s.cache_password == ""
    assert s.cache_port == 6379
    assert s.llm_api_key == ""


def test_settings_rejects_bad_bool():
    with pytest.raises(ValueError):
        Settings.from_config({"server": {"debug": "maybe"}})


def test_settings_is_frozen():
    s = Settings()
    with pytest.raises(Exception):
        s.port = 1


def test_shipped_config_loads():
    """The repo's config.yaml builds valid Settings."""
    s = Settings.from_config(load_config(config_mod._CONFIG_PATH))
    assert s.llm_url.startswith("http")
    assert s.max_history >= 0


def test_load_config_uses_env_path(tmp_path, monkeypatch):
    path = tmp_path / "other.yaml"
    path.write_text("chat:\n  max_history: 3\n")
    monkeypatch.setenv(config_mod.CONFIG_ENV_VAR, str(path))
    config_mod._config = None

    assert Settings.from_config(load_config()).max_history == 3


def test_explicit_path_beats_env_path(tmp_path, monkeypatch):
    env_path = tmp_path / "env.yaml"
    env_path.write_text("chat:\n  max_history: 3\n")
    explicit = tmp_path / "explicit.yaml"
    explicit.write_text("chat:\n  max_history: 7\n")
    monkeypatch.setenv(config_mod.CONFIG_ENV_VAR, str(env_path))

    assert Settings.from_config(load_config(explicit)).max_history == 7
