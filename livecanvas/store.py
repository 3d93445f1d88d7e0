"""sqlite-backed key/value store for the state that survives restarts."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path

from .params import GenerationParams

logger = logging.getLogger("livecanvas.store")

KEY_MODEL = "model"
KEY_PARAMS = "params"


class SettingsStore:
    """Persist the selected model and the generation params."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        if str(self.path) != ":memory:":
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self.conn = sqlite3.connect(str(self.path), check_same_thread=False)
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock, self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def get(self, key: str) -> str | None:
        with self._lock:
            row = self.conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return None if row is None else str(row[0])

    def set(self, key: str, value: str) -> None:
        with self._lock, self.conn:
            self.conn.execute(
                "INSERT INTO settings(key, value) VALUES(?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    def delete(self, key: str) -> None:
        with self._lock, self.conn:
            self.conn.execute("DELETE FROM settings WHERE key = ?", (key,))

    # -- typed accessors ---------------------------------------------------

    @property
    def selected_model(self) -> str | None:
        return self.get(KEY_MODEL) or None

    @selected_model.setter
    def selected_model(self, name: str | None) -> None:
        if name:
            self.set(KEY_MODEL, name)
        else:
            self.delete(KEY_MODEL)

    def load_params(self) -> GenerationParams:
        """Saved params merged over the defaults; corrupt JSON falls back to defaults."""
        raw = self.get(KEY_PARAMS)
        if not raw:
            return GenerationParams()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"[LiveCanvas Store] Ignoring unreadable saved params: {raw!r}")
            return GenerationParams()
        if not isinstance(data, dict):
            return GenerationParams()
        return GenerationParams.from_dict(data)

    def save_params(self, params: GenerationParams) -> GenerationParams:
        params = params.validated()
        self.set(KEY_PARAMS, json.dumps(params.to_dict()))
        return params
