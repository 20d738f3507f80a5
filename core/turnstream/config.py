"""Shared turnstream configuration utilities.

Centralises reading of ~/.turnstream/configuration.json so the CLI, the
HTTP transport and the orchestrator share one implementation.

Example configuration.json:
    {
      "api": {"base_url": "https://api.example.com", "api_key_env_var": "EDWARD_API_KEY"},
      "stream": {"frame_interval_seconds": 0.016, "replay_budget": 1},
      "model": "gpt-4.1"
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_API_BASE_URL = "http://localhost:3001"
DEFAULT_REPLAY_BUDGET = 1
DEFAULT_FRAME_INTERVAL = 0.016  # ~60 fps

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

TURNSTREAM_CONFIG_FILE = Path.home() / ".turnstream" / "configuration.json"


def get_config_path() -> Path:
    """Config file location; TURNSTREAM_CONFIG overrides the default."""
    override = os.environ.get("TURNSTREAM_CONFIG")
    return Path(override) if override else TURNSTREAM_CONFIG_FILE


def get_turnstream_config() -> dict[str, Any]:
    """Load configuration, returning {} when the file is missing or unreadable."""
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_api_base_url() -> str:
    """Return the backend base URL (env TURNSTREAM_API_BASE_URL wins)."""
    env_url = os.environ.get("TURNSTREAM_API_BASE_URL")
    if env_url:
        return env_url.rstrip("/")
    url = get_turnstream_config().get("api", {}).get("base_url") or DEFAULT_API_BASE_URL
    return url.rstrip("/")


def get_api_key() -> str | None:
    """Return the API key from the environment variable named in configuration."""
    api = get_turnstream_config().get("api", {})
    api_key_env_var = api.get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


def get_frame_interval() -> float:
    return float(
        get_turnstream_config().get("stream", {}).get("frame_interval_seconds", DEFAULT_FRAME_INTERVAL)
    )


def get_replay_budget() -> int:
    return int(get_turnstream_config().get("stream", {}).get("replay_budget", DEFAULT_REPLAY_BUDGET))


def get_default_model() -> str | None:
    return get_turnstream_config().get("model")


# ---------------------------------------------------------------------------
# ClientConfig – shared by transport, orchestrator and CLI
# ---------------------------------------------------------------------------


@dataclass
class ClientConfig:
    """Stream client configuration loaded from ~/.turnstream/configuration.json."""

    api_base_url: str = field(default_factory=get_api_base_url)
    api_key: str | None = field(default_factory=get_api_key)
    frame_interval_seconds: float = field(default_factory=get_frame_interval)
    replay_budget: int = field(default_factory=get_replay_budget)
    connect_timeout_seconds: float = 10.0
    read_timeout_seconds: float | None = 120.0  # None waits forever between chunks
    default_model: str | None = field(default_factory=get_default_model)
