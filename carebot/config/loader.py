from __future__ import annotations

import json
import os
import threading
from pathlib import Path

from carebot.log import logger, get_home_dir

_USER_CONFIG_NAME = "config.json"
_MAX_CONFIG_BYTES = 1024 * 1024  # 1 MB limit

# In-memory config (loaded once, protected by lock)
_config = None
_config_lock = threading.Lock()


def get_config() -> dict:
    """Get the carebot config: built-in defaults with the user's overrides merged on top.

    The user file is $CAREBOT_CONFIG if set, otherwise ~/.carebot/config.json.
    A missing or malformed user file is ignored.
    """
    global _config

    # Fast path: _config transitions None -> dict once and is never mutated
    # after assignment, so the unlocked read is safe.
    if _config is not None:
        return _config

    with _config_lock:
        if _config is not None:
            return _config

        result = _load_defaults()
        user = _load_user_config()
        if user:
            result = _merge(result, user)
        _config = result
        return _config


def reset_config() -> None:
    """Drop the cached config so the next get_config() reloads. Mainly for testing."""
    global _config
    with _config_lock:
        _config = None


def get_assistant_config() -> dict:
    return get_config().get("assistant", {})


def get_server_config() -> dict:
    return get_config().get("server", {})


def get_upload_config() -> dict:
    return get_config().get("uploads", {})


def _load_defaults() -> dict:
    try:
        defaults_path = Path(__file__).parent / "defaults.json"
        with open(defaults_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except Exception:
        logger.warning("Failed to load defaults.json, using minimal hardcoded config")
        return {
            "assistant": {},
            "server": {},
            "uploads": {},
        }


def _user_config_path() -> Path:
    override = os.environ.get("CAREBOT_CONFIG", "")
    if override:
        return Path(override).expanduser()
    return get_home_dir() / _USER_CONFIG_NAME


def _load_user_config() -> dict | None:
    path = _user_config_path()
    try:
        if not path.exists():
            return None
        if path.stat().st_size > _MAX_CONFIG_BYTES:
            logger.warning("User config %s is larger than 1 MB, ignoring", path)
            return None
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            logger.warning("User config %s is not a JSON object, ignoring", path)
            return None
        return data
    except Exception:
        logger.warning("Failed to load user config from %s", path, exc_info=True)
        return None


def _merge(base: dict, override: dict, depth: int = 0) -> dict:
    """Deep merge override into base. Override values win.

    Args:
        base: The base dict to merge into.
        override: The override dict whose values win on conflict.
        depth: Current recursion depth. Stops recursing at 10.
    """
    _MAX_MERGE_DEPTH = 10
    result = base.copy()
    for key, value in override.items():
        if key.startswith("_"):
            continue
        if (
            depth < _MAX_MERGE_DEPTH
            and key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = _merge(result[key], value, depth=depth + 1)
        else:
            result[key] = value
    return result
