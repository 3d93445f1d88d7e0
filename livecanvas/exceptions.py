"""Exception types raised by LiveCanvas."""

from __future__ import annotations


class LiveCanvasError(Exception):
    """Base class for every error LiveCanvas raises on purpose."""


class ConfigError(LiveCanvasError, ValueError):
    """Raised when an environment override or persisted value is unusable."""


class NoModelSelectedError(LiveCanvasError):
    """Raised when a generation is requested before a model is picked."""

    def __init__(self, message: str = "Please select an Ollama model first.") -> None:
        super().__init__(message)


class BackendUnavailableError(LiveCanvasError):
    """Raised when the Ollama server cannot be reached at all."""

    def __init__(self, base_url: str, reason: str = "") -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Ollama is not reachable at {base_url}{detail}\n"
            "Start it with `ollama serve`, or point OLLAMA_HOST at a running server."
        )
        self.base_url = base_url


class StreamRequestError(LiveCanvasError):
    """Raised when the streaming generate call cannot deliver a body."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StreamTimeoutError(LiveCanvasError, TimeoutError):
    """Raised when the backend stops producing chunks for too long."""


def require_model(model: str | None) -> str:
    """Return *model* or raise :class:`NoModelSelectedError` when it is unset."""
    if not model:
        raise NoModelSelectedError()
    return model
