"""
Keep the selected model loaded ("warm") in the Ollama server.

Loading a model is the slowest part of a first generation, so the app pings
the backend with a one-token request as soon as a model is picked. When the
context size changes the model must be re-pinned with the new options. Those
reconfigure calls go through a single-flight slot so two of them never race
against the same backend state, and a warm call right behind a reconfigure is
skipped because the reconfigure already loaded the model with the new options.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Hashable, TypeVar

from .config import DEFAULT_KEEP_ALIVE
from .params import GenerationParams

if TYPE_CHECKING:
    from .client import OllamaClient

logger = logging.getLogger("livecanvas.residency")

T = TypeVar("T")

PING_PROMPT = "ping"
RECONFIGURE_KEY = "reconfigure"
DEFAULT_SUPPRESS_WINDOW_SECONDS = 1.0


class SingleFlight:
    """At most one in-progress task per key; late callers await the same task."""

    def __init__(self) -> None:
        self._tasks: dict[Hashable, asyncio.Task[Any]] = {}

    def pending(self, key: Hashable) -> asyncio.Task[Any] | None:
        task = self._tasks.get(key)
        if task is None or task.done():
            return None
        return task

    async def do(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        task = self.pending(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        # Shielded: one caller giving up must not cancel the work the others share.
        return await asyncio.shield(task)

    def _forget(self, key: Hashable, task: asyncio.Task[Any]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]


class ResidencyCoordinator:
    """Warm-up and options re-pinning for the backend model."""

    def __init__(
        self,
        client: OllamaClient,
        *,
        keep_alive: str | int = DEFAULT_KEEP_ALIVE,
        suppress_window: float = DEFAULT_SUPPRESS_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.keep_alive = keep_alive
        self.suppress_window = suppress_window
        self.clock = clock
        self.flight = SingleFlight()
        self.last_options_applied_at: dict[str, float] = {}

    @property
    def reconfigure_in_flight(self) -> bool:
        return self.flight.pending(RECONFIGURE_KEY) is not None

    def _recently_applied(self, model: str) -> bool:
        applied_at = self.last_options_applied_at.get(model)
        return applied_at is not None and self.clock() - applied_at < self.suppress_window

    async def _ping(self, model: str, params: GenerationParams, purpose: str) -> bool:
        try:
            await self.client.generate_once(
                model,
                PING_PROMPT,
                params.to_options(num_predict=1),
                keep_alive=self.keep_alive,
            )
        except Exception as exc:
            logger.warning(f"[LiveCanvas Residency] {purpose} for {model} failed: {exc}")
            return False
        return True

    async def warm(self, model: str | None, params: GenerationParams) -> bool:
        """Best-effort load of *model*; returns whether a request was issued."""
        if not model:
            return False
        pending = self.flight.pending(RECONFIGURE_KEY)
        if pending is not None:
            with contextlib.suppress(Exception):
                await asyncio.shield(pending)
        if self._recently_applied(model):
            logger.debug(f"[LiveCanvas Residency] Skipping warm for {model}; options just applied.")
            return False
        logger.debug(f"[LiveCanvas Residency] Warming {model}")
        await self._ping(model, params, "warm")
        return True

    async def reconfigure(self, model: str, params: GenerationParams) -> bool:
        """Re-pin *model* with *params* without unloading it.

        Concurrent callers share the in-flight request instead of issuing a
        second one. Returns whether the options were applied.
        """
        return await self.flight.do(RECONFIGURE_KEY, lambda: self._apply_options(model, params))

    async def _apply_options(self, model: str, params: GenerationParams) -> bool:
        logger.info(
            f"[LiveCanvas Residency] Applying options (no flush) for {model}, ctx={params.num_ctx}"
        )
        applied = await self._ping(model, params, "reconfigure")
        if applied:
            self.last_options_applied_at[model] = self.clock()
            logger.info(f"[LiveCanvas Residency] Options applied/pinned for {model}")
        return applied

    async def apply_params(
        self, model: str | None, previous: GenerationParams, new: GenerationParams
    ) -> bool:
        """Reconfigure only when the context size changed; other options ride along per request."""
        if not model or previous.num_ctx == new.num_ctx:
            return False
        return await self.reconfigure(model, new)

    async def is_resident(self, model: str) -> bool:
        return model in await self.client.list_resident()

    async def wait_for_presence(
        self,
        model: str,
        present: bool = True,
        *,
        timeout: float = 20.0,
        interval: float = 0.25,
    ) -> bool:
        """Poll ``/api/ps`` until *model* is (or is no longer) loaded."""
        deadline = self.clock() + timeout
        while self.clock() < deadline:
            if await self.is_resident(model) == present:
                return True
            await asyncio.sleep(interval)
        return False
