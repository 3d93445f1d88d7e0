"""Sampling parameters sent with every Ollama generate call."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Mapping

MIN_NUM_CTX = 512
MIN_MAX_TOKENS = 16


def _as_number(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


@dataclass(frozen=True)
class GenerationParams:
    temperature: float = 0.7
    top_p: float = 0.8
    top_k: int = 20
    min_p: float = 0.0
    repeat_penalty: float = 1.1
    num_ctx: int = 8192
    max_tokens: int = 2000

    def validated(self) -> GenerationParams:
        """Return a copy with integer fields rounded and lower bounds enforced.

        ``num_ctx`` never drops below 512 and ``max_tokens`` never below 16,
        whatever the caller typed.
        """
        return replace(
            self,
            temperature=float(self.temperature),
            top_p=float(self.top_p),
            top_k=int(round(self.top_k)),
            min_p=float(self.min_p),
            repeat_penalty=float(self.repeat_penalty),
            num_ctx=max(MIN_NUM_CTX, int(round(self.num_ctx))),
            max_tokens=max(MIN_MAX_TOKENS, int(round(self.max_tokens))),
        )

    def updated(self, **changes: Any) -> GenerationParams:
        """Apply *changes* (ignoring ``None`` values) and re-validate."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise TypeError(f"Unknown generation parameter(s): {', '.join(sorted(unknown))}")
        clean = {
            key: _as_number(value, getattr(self, key))
            for key, value in changes.items()
            if value is not None
        }
        return replace(self, **clean).validated()

    def to_options(self, *, num_predict: int | None = None) -> dict[str, float | int]:
        """Render as the backend ``options`` object (``max_tokens`` -> ``num_predict``)."""
        return {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "min_p": self.min_p,
            "repeat_penalty": self.repeat_penalty,
            "num_ctx": self.num_ctx,
            "num_predict": self.max_tokens if num_predict is None else num_predict,
        }

    def to_dict(self) -> dict[str, float | int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GenerationParams:
        """Merge *data* over the defaults; unknown keys and bad values are ignored."""
        base = cls()
        known = {f.name for f in fields(cls)}
        merged = {
            key: _as_number(value, getattr(base, key))
            for key, value in data.items()
            if key in known
        }
        return replace(base, **merged).validated()
