"""
Runtime configuration for LiveCanvas.

Values come from environment variables so the CLI and the desktop app agree on
which Ollama server to talk to and where local state is kept.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from .exceptions import ConfigError

DEFAULT_HOST = "http://localhost:11434"
DEFAULT_KEEP_ALIVE = "30m"
DEFAULT_PATCH_INTERVAL_SECONDS = 0.2
DEFAULT_FIRST_CHUNK_TIMEOUT_SECONDS = 120.0
DEFAULT_IDLE_TIMEOUT_SECONDS = 60.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 600.0
SETTINGS_FILENAME = "settings.sqlite3"


def _default_data_dir() -> Path:
    return Path.home() / ".livecanvas"


def _normalize_host(value: str) -> str:
    host = value.strip().rstrip("/")
    if not host:
        return DEFAULT_HOST
    # `ollama serve` accepts bare host:port in OLLAMA_HOST.
    if "://" not in host:
        host = f"http://{host}"
    return host


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number; got '{raw}'.") from None
    if value <= 0:
        raise ConfigError(f"{name} must be > 0; got {value}.")
    return value


@dataclass(frozen=True)
class LiveCanvasConfig:
    """Settings shared by the CLI, the desktop app, and the session controller."""

    host: str = DEFAULT_HOST
    keep_alive: str = DEFAULT_KEEP_ALIVE
    data_dir: Path = field(default_factory=_default_data_dir)
    patch_interval: float = DEFAULT_PATCH_INTERVAL_SECONDS
    first_chunk_timeout: float = DEFAULT_FIRST_CHUNK_TIMEOUT_SECONDS
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT_SECONDS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS

    @property
    def settings_path(self) -> Path:
        return self.data_dir / SETTINGS_FILENAME

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> LiveCanvasConfig:
        """Build a config from ``OLLAMA_HOST`` and the ``LIVECANVAS_*`` variables.

        Raises:
            ConfigError: if a numeric override is not a positive number.
        """
        env = os.environ if env is None else env
        data_dir = env.get("LIVECANVAS_HOME")
        return cls(
            host=_normalize_host(env.get("OLLAMA_HOST", DEFAULT_HOST)),
            keep_alive=env.get("LIVECANVAS_KEEP_ALIVE", DEFAULT_KEEP_ALIVE).strip()
            or DEFAULT_KEEP_ALIVE,
            data_dir=Path(data_dir).expanduser() if data_dir else _default_data_dir(),
            patch_interval=_positive_float(
                env, "LIVECANVAS_PATCH_INTERVAL", DEFAULT_PATCH_INTERVAL_SECONDS
            ),
            first_chunk_timeout=_positive_float(
                env, "LIVECANVAS_FIRST_CHUNK_TIMEOUT", DEFAULT_FIRST_CHUNK_TIMEOUT_SECONDS
            ),
            idle_timeout=_positive_float(
                env, "LIVECANVAS_IDLE_TIMEOUT", DEFAULT_IDLE_TIMEOUT_SECONDS
            ),
            request_timeout=_positive_float(
                env, "LIVECANVAS_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT_SECONDS
            ),
        )
