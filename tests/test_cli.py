"""
Tests for the operator CLI.
Run with: pytest tests/test_cli.py
"""

import json
import os
from unittest.mock import MagicMock, patch

import httpx
import pytest

from helpline import cli
from helpline import config as config_mod
from helpline.storage.models import Sender
from helpline.storage.sqlite_store import SQLiteStore

SESSION = "5e1f0c2a-8b7d-4c6e-9a3f-2d1b0e9c8a7f"


@pytest.fixture(autouse=True)
def clean_config_env(monkeypatch):
    """serve exports the config path; undo it after each test."""
    monkeypatch.setenv(config_mod.CONFIG_ENV_VAR, "")
    monkeypatch.delenv(config_mod.CONFIG_ENV_VAR)


@pytest.fixture
def cfg(tmp_path, monkeypatch):
    monkeypatch.setattr(config_mod, "_config", None)
    db = tmp_path / "cli.db"
    path = tmp_path / "config.yaml"
    path.write_text(
        "storage:\n"
        f"  sqlite_path: {db}\n"
        "cache:\n"
        "  enabled: false\n"
        "llm:\n"
        "  api_key: ''\n"
    )
    return path, db


@pytest.fixture
def seeded(cfg):
    path, db = cfg
    store = SQLiteStore(str(db))
    conv_id = store.insert_conversation(SESSION)
    store.insert_message(conv_id, Sender.USER, "Where is my order?")
    store.insert_message(conv_id, Sender.AI, "Let me check that for you.")
    return path, store, conv_id


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 0
    assert "helpline" in capsys.readouterr().out


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(["--version"])
    assert exc.value.code == 0
    assert cli.__version__ in capsys.readouterr().out


def test_aliases_resolve_to_same_command():
    parser = cli.build_parser()
    assert parser.parse_args(["init-db"]).func is cli.cmd_migrate
    assert parser.parse_args(["dump"]).func is cli.cmd_export
    assert parser.parse_args(["show", SESSION]).func is cli.cmd_history
    assert parser.parse_args(["delete", SESSION]).func is cli.cmd_purge
    assert parser.parse_args(["info"]).func is cli.cmd_stats
    assert parser.parse_args(["status"]).func is cli.cmd_ping


def test_migrate_creates_database(cfg, capsys):
    path, db = cfg
    assert cli.main(["--config", str(path), "migrate"]) == 0
    assert db.exists()
    assert "Schema ready" in capsys.readouterr().out


def test_history_prints_json(seeded, capsys):
    path, _, conv_id = seeded
    assert cli.main(["-c", str(path), "history", SESSION]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["sessionId"] == SESSION
    assert data["conversationId"] == conv_id
    assert [m["sender"] for m in data["messages"]] == ["user", "ai"]


def test_history_unknown_session_does_not_create(cfg, capsys):
    path, db = cfg
    assert cli.main(["-c", str(path), "history", SESSION]) == 1
    assert "No conversation" in capsys.readouterr().err
    assert SQLiteStore(str(db)).get_stats()["conversations"] == 0


def test_history_invalid_session(cfg, capsys):
    path, _ = cfg
    assert cli.main(["-c", str(path), "history", "nope"]) == 1
    assert "Not a valid session id" in capsys.readouterr().err


def test_export_stdout(seeded, capsys):
    path, _, _ = seeded
    assert cli.main(["-c", str(path), "export"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert len(data) == 1
    assert data[0]["session_id"] == SESSION
    assert len(data[0]["messages"]) == 2


def test_export_to_file(seeded, tmp_path):
    path, _, _ = seeded
    out = tmp_path / "export.json"
    assert cli.main(["-c", str(path), "export", "-o", str(out), "--pretty"]) == 0
    data = json.loads(out.read_text())
    assert data[0]["messages"][0]["text"] == "Where is my order?"


def test_purge_removes_conversation_and_messages(seeded, capsys):
    path, store, conv_id = seeded
    assert cli.main(["-c", str(path), "purge", SESSION]) == 0
    assert "2 messages" in capsys.readouterr().out
    assert store.get_conversation(conv_id) is None
    assert store.get_stats() == {
        "conversations": 0, "messages": 0, "user_messages": 0, "ai_messages": 0,
    }


def test_purge_unknown_session(cfg):
    path, _ = cfg
    assert cli.main(["-c", str(path), "purge", SESSION]) == 1


def test_stats(seeded, capsys):
    path, _, _ = seeded
    assert cli.main(["-c", str(path), "stats"]) == 0
    out = capsys.readouterr().out
    assert "Conversations: 1" in out
    assert any(line.split()[-2:] == ["Messages:", "2"] for line in out.splitlines() if line.strip())
    assert "MISSING" in out
    assert "disabled" in out


def test_ping_up(capsys):
    resp = MagicMock()
    resp.status_code = 200
    resp.json.return_value = {"status": "ok", "database": "healthy", "redis": "not_configured"}

    with patch("httpx.get", return_value=resp) as mock_get:
        assert cli.main(["ping", "--url", "http://svc:3001/"]) == 0
    mock_get.assert_called_once_with("http://svc:3001/health", timeout=5)
    assert "is UP" in capsys.readouterr().out


def test_ping_database_down(capsys):
    resp = MagicMock()
    resp.status_code = 503
    resp.json.return_value = {"status": "error", "database": "unhealthy", "error": "disk"}

    with patch("httpx.get", return_value=resp):
        assert cli.main(["ping"]) == 1
    assert "503" in capsys.readouterr().out


def test_ping_nothing_listening(capsys):
    with patch("httpx.get", side_effect=httpx.ConnectError("refused")):
        assert cli.main(["ping"]) == 1
    assert "Nothing listening" in capsys.readouterr().out


def test_serve_invokes_uvicorn(cfg):
    path, _ = cfg
    with patch("uvicorn.run") as mock_run:
        assert cli.main(["-c", str(path), "serve", "--port", "9000"]) == 0
    args, kwargs = mock_run.call_args
    assert args[0] == "helpline.main:app"
    assert kwargs["port"] == 9000
    assert kwargs["reload"] is False


def test_serve_exports_config_path_for_reload_workers(cfg, monkeypatch):
    path, _ = cfg
    with patch("uvicorn.run") as mock_run:
        assert cli.main(["-c", str(path), "serve", "--reload"]) == 0
    assert mock_run.call_args.kwargs["reload"] is True
    assert os.environ[config_mod.CONFIG_ENV_VAR] == os.path.abspath(path)

    # A fresh interpreter starts with nothing cached and finds the same file.
    monkeypatch.setattr(config_mod, "_config", None)
    assert config_mod.get_settings().sqlite_path == str(cfg[1])
