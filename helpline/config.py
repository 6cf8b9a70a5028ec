"""
Config loader for helpline.
Reads config.yaml once at startup and turns it into a Settings object
that is handed to every component. Values may reference environment
variables as ${NAME} or ${NAME:-default}; a .env file is loaded first.
The file is config.yaml at the repo root unless $HELPLINE_CONFIG names another.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

import yaml
from dotenv import load_dotenv

load_dotenv()

_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

# Names the config file for processes that cannot take --config (uvicorn reload workers).
CONFIG_ENV_VAR = "HELPLINE_CONFIG"

_config: dict | None = None

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _resolve_env_vars(value: str) -> str:
    """Replace ${ENV_VAR} and ${ENV_VAR:-default} patterns with their values."""
    def replacer(match):
        var_name, default = match.group(1), match.group(2)
        return os.environ.get(var_name) or (default or "")
    return re.sub(r"\$\{(\w+)(?::-([^}]*))?\}", replacer, value)


def _walk_and_resolve(obj):
    """Recursively resolve env vars in all string values."""
    if isinstance(obj, dict):
        return {k: _walk_and_resolve(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_walk_and_resolve(v) for v in obj]
    elif isinstance(obj, str):
        return _resolve_env_vars(obj)
    return obj


def load_config(path: Path | str | None = None) -> dict:
    """Load and cache config from YAML file."""
    global _config
    if _config is not None and path is None:
        return _config

    config_path = Path(path or os.environ.get(CONFIG_ENV_VAR) or _CONFIG_PATH)
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    _config = _walk_and_resolve(raw)
    return _config


def get_config() -> dict:
    """Return cached base config, loading if necessary."""
    if _config is None:
        return load_config()
    return _config


# ---------------------------------------------------------------------------
# Typed settings
# ---------------------------------------------------------------------------

def _as_bool(value, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def _as_int(value, default: int) -> int:
    if value is None or value == "":
        return default
    return int(value)


def _as_float(value, default: float) -> float:
    if value is None or value == "":
        return default
    return float(value)


def _as_str(value, default: str) -> str:
    if value is None or value == "":
        return default
    return str(value)


@dataclass(frozen=True)
class Settings:
    """Everything the service needs, resolved once at startup."""

    host: str = "0.0.0.0"
    port: int = 3001
    debug: bool = False

    sqlite_path: str = "./data/helpline.db"

    cache_enabled: bool = True
    cache_host: str = "127.0.0.1"
    cache_port: int = 6379
    cache_db: int = 0
    cache_password: str = ""
    cache_ttl_seconds: int = 3600
    cache_key_prefix_chars: int = 50
    cache_connect_timeout: float = 2.0

    llm_url: str = "https://api.openai.com"
    llm_api_key: str = ""
    llm_model: str = "gpt-5-nano"
    llm_store: bool = True
    llm_timeout: float = 60.0
    llm_max_attempts: int = 3
    llm_retry_base_delay: float = 2.0

    max_message_length: int = 2000
    max_history: int = 10

    prompt_path: str = ""

    log_level: str = "INFO"
    log_file: str = ""

    @classmethod
    def from_config(cls, cfg: dict) -> "Settings":
        server = cfg.get("server") or {}
        storage = cfg.get("storage") or {}
        cache = cfg.get("cache") or {}
        llm = cfg.get("llm") or {}
        chat = cfg.get("chat") or {}
        prompt = cfg.get("prompt") or {}
        log_cfg = cfg.get("logging") or {}
        d = cls()

        return cls(
            host=_as_str(server.get("host"), d.host),
            port=_as_int(server.get("port"), d.port),
            debug=_as_bool(server.get("debug"), d.debug),
            sqlite_path=_as_str(storage.get("sqlite_path"), d.sqlite_path),
            cache_enabled=_as_bool(cache.get("enabled"), d.cache_enabled),
            cache_host=_as_str(cache.get("host"), d.cache_host),
            cache_port=_as_int(cache.get("port"), d.cache_port),
            cache_db=_as_int(cache.get("db"), d.cache_db),
            cache_password=_as_str(cache.get("password"), d.cache_password),
            cache_ttl_seconds=_as_int(cache.get("ttl_seconds"), d.cache_ttl_seconds),
            cache_key_prefix_chars=_as_int(cache.get("key_prefix_chars"), d.cache_key_prefix_chars),
            cache_connect_timeout=_as_float(cache.get("connect_timeout"), d.cache_connect_timeout),
            llm_url=_as_str(llm.get("url"), d.llm_url),
            llm_api_key=_as_str(llm.get("api_key"), d.llm_api_key),
            llm_model=_as_str(llm.get("model"), d.llm_model),
            llm_store=_as_bool(llm.get("store"), d.llm_store),
            llm_timeout=_as_float(llm.get("timeout"), d.llm_timeout),
            llm_max_attempts=_as_int(llm.get("max_attempts"), d.llm_max_attempts),
            llm_retry_base_delay=_as_float(llm.get("retry_base_delay"), d.llm_retry_base_delay),
            max_message_length=_as_int(chat.get("max_message_length"), d.max_message_length),
            max_history=_as_int(chat.get("max_history"), d.max_history),
            prompt_path=_as_str(prompt.get("path"), d.prompt_path),
            log_level=_as_str(log_cfg.get("level"), d.log_level),
            log_file=_as_str(log_cfg.get("file"), d.log_file),
        )


def get_settings() -> Settings:
    """Build Settings from the cached base config."""
    return Settings.from_config(get_config())
