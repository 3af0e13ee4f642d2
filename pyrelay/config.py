from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, TypedDict

import yaml

logger = logging.getLogger(__name__)

DEBUG_ENV_VAR = "PYRELAY_DEBUG_RPC"
DEFAULT_MAX_MESSAGE_BYTES = 100 * 1024 * 1024


class SessionConfig(TypedDict, total=False):
    """Configuration for a :class:`RelaySession` or :class:`WorkerExecutor`."""

    name: str
    """Label used in log lines to tell endpoints apart."""

    debug_messages: bool
    """Log every message sent and received at DEBUG level."""

    max_message_bytes: int
    """Largest frame the JSON socket transport accepts."""


_DEFAULTS: SessionConfig = {
    "name": "pyrelay",
    "debug_messages": False,
    "max_message_bytes": DEFAULT_MAX_MESSAGE_BYTES,
}

_FIELD_TYPES: dict[str, type] = {
    "name": str,
    "debug_messages": bool,
    "max_message_bytes": int,
}


def resolve_session_config(config: SessionConfig | dict[str, Any] | None = None) -> SessionConfig:
    """Merge *config* over the defaults and validate it.

    ``PYRELAY_DEBUG_RPC=1`` in the environment forces ``debug_messages`` on.
    """
    resolved: dict[str, Any] = dict(_DEFAULTS)
    for key, value in (config or {}).items():
        expected = _FIELD_TYPES.get(key)
        if expected is None:
            raise ValueError(f"Unknown session config key: {key!r}. Valid keys: {sorted(_FIELD_TYPES)}")
        if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
            raise TypeError(f"Session config {key!r} must be {expected.__name__}, got {type(value).__name__}")
        resolved[key] = value

    if resolved["max_message_bytes"] <= 0:
        raise ValueError("max_message_bytes must be positive")

    if os.environ.get(DEBUG_ENV_VAR) == "1":
        resolved["debug_messages"] = True

    return SessionConfig(**resolved)  # type: ignore[typeddict-item]


def load_session_config(path: str | os.PathLike[str]) -> SessionConfig:
    """Load a session config from a YAML file.

    The mapping may sit at the top level or under a ``pyrelay:`` key.
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"Session config not found: {config_path}")

    with config_path.open(encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    if isinstance(data, dict) and isinstance(data.get("pyrelay"), dict):
        data = data["pyrelay"]
    if not isinstance(data, dict):
        raise ValueError(f"Session config {config_path} must contain a mapping, got {type(data).__name__}")

    logger.debug("Loaded session config from %s", config_path)
    return resolve_session_config(data)
