"""Installed-model metadata and the rules for picking one."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

CHAT_MODEL_RE = re.compile(r"instruct|chat|assistant", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class ModelInfo:
    name: str
    family: str | None = None
    parameter_size: str | None = None
    quantization_level: str | None = None

    @property
    def meta(self) -> str:
        """``family · size · quantization`` with missing parts left out."""
        return " · ".join(
            part for part in (self.family, self.parameter_size, self.quantization_level) if part
        )

    @classmethod
    def from_tag(cls, entry: Mapping[str, Any]) -> ModelInfo:
        details = entry.get("details") or {}
        return cls(
            name=str(entry["name"]),
            family=details.get("family") or None,
            parameter_size=details.get("parameter_size") or None,
            quantization_level=details.get("quantization_level") or None,
        )


def choose_default_model(models: Sequence[ModelInfo]) -> str | None:
    """Prefer an instruct/chat tuned model; otherwise the first one listed."""
    if not models:
        return None
    for model in models:
        if CHAT_MODEL_RE.search(model.name):
            return model.name
    return models[0].name


def resolve_initial_model(
    saved: str | None,
    installed: Sequence[ModelInfo],
    resident: Iterable[str] = (),
) -> str | None:
    """Pick the model to select at startup.

    The saved choice wins while it is still installed. Otherwise a model that
    is already loaded in memory is preferred, then the default pick.
    """
    names = {model.name for model in installed}
    if saved and saved in names:
        return saved
    for name in resident:
        if name in names:
            return name
    return choose_default_model(installed)


def filter_models(models: Iterable[ModelInfo], text: str = "") -> list[ModelInfo]:
    needle = text.strip().lower()
    return [model for model in models if needle in model.name.lower()]
