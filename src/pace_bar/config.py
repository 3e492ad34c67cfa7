"""Configuration persistence and display mode constants.

Pure stdlib — no rumps or PyObjC imports.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_DIR = os.path.expanduser("~/.config/pace_bar")
CONFIG_PATH = os.path.join(CONFIG_DIR, "config.json")

LOG_ENV_VAR = "PACE_BAR_LOG"

MODE_SESSION = "session"
MODE_HIGHEST = "highest"
MODE_PACE = "pace"
MODE_EMOJI = "emoji"
DISPLAY_MODES = (MODE_SESSION, MODE_HIGHEST, MODE_PACE, MODE_EMOJI)
DEFAULT_MODE = MODE_PACE

DEFAULT_REFRESH_INTERVAL = 120
MIN_REFRESH_INTERVAL = 30

DEFAULT_CONFIG: dict[str, Any] = {
    "display_mode": DEFAULT_MODE,
    "refresh_interval": DEFAULT_REFRESH_INTERVAL,
    "api_base_url": "https://api.anthropic.com",
    "update_repo": None,
    "credentials_file": None,
}


def _sanitize(config: dict[str, Any]) -> dict[str, Any]:
    if config.get("display_mode") not in DISPLAY_MODES:
        logger.warning("Unknown display mode %r, using %r",
                       config.get("display_mode"), DEFAULT_MODE)
        config["display_mode"] = DEFAULT_MODE

    interval = config.get("refresh_interval")
    if isinstance(interval, bool) or not isinstance(interval, (int, float)):
        config["refresh_interval"] = DEFAULT_REFRESH_INTERVAL
    elif interval < MIN_REFRESH_INTERVAL:
        config["refresh_interval"] = MIN_REFRESH_INTERVAL

    base_url = config.get("api_base_url")
    if not isinstance(base_url, str) or not base_url.strip():
        logger.warning("Invalid api_base_url %r, using default", base_url)
        config["api_base_url"] = DEFAULT_CONFIG["api_base_url"]

    # Optional string settings; anything else disables them.
    for key in ("update_repo", "credentials_file"):
        value = config.get(key)
        if value is not None and (not isinstance(value, str) or not value.strip()):
            logger.warning("Ignoring invalid %s %r", key, value)
            config[key] = None
    return config


def load_config(path: str = CONFIG_PATH) -> dict[str, Any]:
    """Load config from ~/.config/pace_bar/config.json, merged over defaults."""
    config = dict(DEFAULT_CONFIG)
    try:
        with open(path, "r") as f:
            stored = json.load(f)
    except (OSError, json.JSONDecodeError):
        return config

    if isinstance(stored, dict):
        config.update(stored)
    else:
        logger.warning("Ignoring config at %s: not a JSON object", path)
    return _sanitize(config)


def save_config(config: dict[str, Any], path: str = CONFIG_PATH) -> None:
    """Save config to ~/.config/pace_bar/config.json."""
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            json.dump(config, f, indent=2)
    except OSError as e:
        logger.warning("Failed to save config: %s", e)
