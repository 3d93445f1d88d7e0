"""
Shared fixtures and helpers for the LiveCanvas test suite.

Nothing here talks to a real Ollama server: HTTP goes through
``httpx.MockTransport`` and the streaming tests use ``ScriptedClient``, which
hands out pre-cut text segments the way a slow transport would.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import httpx
import pytest

from livecanvas.client import OllamaClient
from livecanvas.store import SettingsStore
from livecanvas.surface import MemorySurfaceHost, RenderSurface

SAMPLE_DOCUMENT = (
    "<!DOCTYPE html><html><head><style>body{background:#000}</style>"
    "<style>h1{color:#fff}</style></head>"
    "<body><h1>Hello</h1><script>window.ticks = (window.ticks || 0) + 1;</script>"
    "</body></html>"
)


def ndjson(*texts: str, done: bool = True, model: str = "llama3.2") -> str:
    """Render *texts* as an Ollama ``/api/generate`` streaming body."""
    lines = [json.dumps({"model": model, "response": text, "done": False}) for text in texts]
    if done:
        lines.append(json.dumps({"model": model, "response": "", "done": True}))
    return "".join(line + "\n" for line in lines)


def cut(text: str, size: int) -> list[str]:
    """Split *text* into fixed-size segments, ignoring record boundaries."""
    return [text[i : i + size] for i in range(0, len(text), size)]


def tokens(text: str, size: int = 9) -> list[str]:
    return cut(text, size)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedClient:
    """Stands in for ``OllamaClient`` with a scripted streaming body."""

    def __init__(
        self,
        segments: list[str],
        *,
        delay: float = 0.0,
        hang: bool = False,
        error: Exception | None = None,
    ) -> None:
        self.segments = segments
        self.delay = delay
        self.hang = hang
        self.error = error
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def stream_generate(self, model, prompt, options, *, keep_alive="30m"):
        self.calls.append(
            {"model": model, "prompt": prompt, "options": options, "keep_alive": keep_alive}
        )
        try:
            for segment in self.segments:
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield segment
            if self.error is not None:
                raise self.error
            if self.hang:
                await asyncio.Event().wait()
        finally:
            self.closed = True


class EventRecorder:
    """Session listener that keeps every event."""

    def __init__(self) -> None:
        self.events = []

    def __call__(self, event) -> None:
        self.events.append(event)

    @property
    def types(self) -> list:
        return [event.type for event in self.events]


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> OllamaClient:
    return OllamaClient("http://ollama.test", transport=httpx.MockTransport(handler))


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def host() -> MemorySurfaceHost:
    return MemorySurfaceHost()


@pytest.fixture
def surface(host: MemorySurfaceHost) -> RenderSurface:
    return RenderSurface(host)


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def store(tmp_path):
    settings = SettingsStore(tmp_path / "settings.sqlite3")
    yield settings
    settings.close()
