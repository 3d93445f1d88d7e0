"""
Generation session controller.

One session is one instruction turned into one document:

    instruction -> stream_generate -> ChunkDecoder -> RawBuffer
                -> PatchDispatcher (throttled) -> RenderSurface
    end of stream -> extract_canonical_document -> RenderSurface.commit

Only one session may be generating at a time. ``stop()`` aborts the HTTP
stream and returns the controller to IDLE in the same event-loop turn, without
extracting a document and without reporting an error. Every other way out of
the streaming loop (completion, failure, timeout) also ends in IDLE with the
input unlocked.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable

from .config import (
    DEFAULT_FIRST_CHUNK_TIMEOUT_SECONDS,
    DEFAULT_IDLE_TIMEOUT_SECONDS,
    DEFAULT_KEEP_ALIVE,
)
from .decoder import ChunkDecoder, GenerationChunk
from .dispatcher import DEFAULT_MIN_INTERVAL_SECONDS, PatchDispatcher
from .exceptions import LiveCanvasError, NoModelSelectedError, StreamTimeoutError
from .extractor import extract_canonical_document
from .params import GenerationParams
from .prompts import build_prompt, random_instruction
from .view import ViewState

if TYPE_CHECKING:
    from .client import OllamaClient
    from .surface import RenderSurface

logger = logging.getLogger("livecanvas.session")

_END_OF_STREAM = object()


class SessionState(Enum):
    IDLE = "idle"
    GENERATING = "generating"


class SessionOutcome(Enum):
    COMMITTED = "committed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class EventType(Enum):
    """Controller-to-UI notifications."""

    MODEL_REQUIRED = "model_required"
    STARTED = "started"
    RAW_TEXT = "raw_text"
    COMMITTED = "committed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    CLEARED = "cleared"


@dataclass(frozen=True)
class SessionEvent:
    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


SessionListener = Callable[[SessionEvent], None]


def _ignore_event(event: SessionEvent) -> None:
    pass


@dataclass
class GenerationSession:
    """State of one generation; ``raw`` only ever grows while streaming."""

    instruction: str
    model: str
    params: GenerationParams
    raw: str = ""
    canonical: str | None = None
    outcome: SessionOutcome | None = None
    error: str | None = None
    chunks: int = 0
    dropped_records: int = 0
    started_at: float = 0.0
    finished_at: float | None = None

    @property
    def finished(self) -> bool:
        return self.outcome is not None

    def append(self, text: str) -> None:
        if self.finished:
            raise RuntimeError("Cannot append to a finished generation session.")
        self.raw += text
        self.chunks += 1


async def _next_segment(iterator: AsyncIterator[str]) -> Any:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _END_OF_STREAM


class SessionController:
    """Owns the active session and drives the streaming pipeline."""

    def __init__(
        self,
        client: OllamaClient,
        surface: RenderSurface,
        *,
        model: str | None = None,
        params: GenerationParams | None = None,
        view: ViewState | None = None,
        listener: SessionListener | None = None,
        min_interval: float = DEFAULT_MIN_INTERVAL_SECONDS,
        first_chunk_timeout: float | None = DEFAULT_FIRST_CHUNK_TIMEOUT_SECONDS,
        idle_timeout: float | None = DEFAULT_IDLE_TIMEOUT_SECONDS,
        keep_alive: str | int = DEFAULT_KEEP_ALIVE,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self.client = client
        self.surface = surface
        self.model = model
        self.params = (params or GenerationParams()).validated()
        self.view = view if view is not None else ViewState()
        self.listener = listener or _ignore_event
        self.dispatcher = PatchDispatcher(surface, min_interval=min_interval, clock=clock)
        self.first_chunk_timeout = first_chunk_timeout
        self.idle_timeout = idle_timeout
        self.keep_alive = keep_alive
        self.clock = clock
        self.rng = rng
        self.session: GenerationSession | None = None
        self._active: GenerationSession | None = None
        self._task: asyncio.Task[GenerationSession] | None = None

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return SessionState.IDLE if self._active is None else SessionState.GENERATING

    @property
    def generating(self) -> bool:
        return self._active is not None

    @property
    def task(self) -> asyncio.Task[GenerationSession] | None:
        return self._task

    def _emit(self, event_type: EventType, **data: Any) -> None:
        self.listener(SessionEvent(event_type, data))

    # -- transitions -------------------------------------------------------

    def start(self, instruction: str) -> asyncio.Task[GenerationSession] | None:
        """IDLE -> GENERATING. Returns the streaming task, or None when refused.

        Must be called from a running event loop.
        """
        instruction = instruction.strip()
        if not instruction:
            return None
        if self._active is not None:
            logger.debug("[LiveCanvas Session] Already generating; request ignored.")
            return None
        if not self.model:
            self._emit(EventType.MODEL_REQUIRED, message=str(NoModelSelectedError()))
            return None

        session = GenerationSession(
            instruction=instruction,
            model=self.model,
            params=self.params.validated(),
            started_at=self.clock(),
        )
        self.session = session
        self._active = session
        self.surface.reset()
        self.dispatcher.reset()
        self.view.lock()
        self._emit(EventType.STARTED, instruction=instruction, model=session.model)
        logger.info(
            f"[LiveCanvas Session] Generating with {session.model} "
            f"(ctx={session.params.num_ctx}, max_tokens={session.params.max_tokens})"
        )
        self._task = asyncio.create_task(self._stream(session), name="livecanvas-session")
        return self._task

    def start_random(self) -> asyncio.Task[GenerationSession] | None:
        return self.start(random_instruction(self.rng))

    async def run(self, instruction: str) -> GenerationSession | None:
        """Start a session and wait for it to end, whatever the outcome."""
        task = self.start(instruction)
        if task is None:
            return None
        session = self._active
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        return session

    def stop(self) -> bool:
        """Abort the active session; no document is extracted, no error shown."""
        session = self._active
        if session is None:
            return False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._finish(session, SessionOutcome.CANCELLED)
        return True

    def clear(self) -> None:
        """Abort any active session and blank the preview."""
        self.stop()
        self.session = None
        self.surface.clear()
        self.view.unlock()
        self.view.reset_scroll()
        self._emit(EventType.CLEARED)

    async def aclose(self) -> None:
        """Host teardown: cancel and wait for the streaming task to clean up."""
        task = self._task
        self.stop()
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    # -- streaming loop ----------------------------------------------------

    async def _stream(self, session: GenerationSession) -> GenerationSession:
        decoder = ChunkDecoder()
        segments = self.client.stream_generate(
            session.model,
            build_prompt(session.instruction),
            session.params.to_options(),
            keep_alive=self.keep_alive,
        )
        try:
            await self._pump(session, segments, decoder)
            session.dropped_records = decoder.dropped
            session.canonical = extract_canonical_document(session.raw)
            if self._active is session:
                self.surface.commit(session.canonical)
            self._finish(session, SessionOutcome.COMMITTED)
        except asyncio.CancelledError:
            self._finish(session, SessionOutcome.CANCELLED)
        except LiveCanvasError as exc:
            self._finish(session, SessionOutcome.FAILED, str(exc))
        except Exception as exc:
            logger.exception("[LiveCanvas Session] Unexpected failure while streaming.")
            self._finish(session, SessionOutcome.FAILED, f"Generation error: {exc}")
        finally:
            session.dropped_records = decoder.dropped
            await segments.aclose()
        return session

    async def _pump(
        self,
        session: GenerationSession,
        segments: AsyncIterator[str],
        decoder: ChunkDecoder,
    ) -> None:
        received = False
        while True:
            timeout = self.idle_timeout if received else self.first_chunk_timeout
            try:
                segment = await asyncio.wait_for(_next_segment(segments), timeout=timeout)
            except TimeoutError as exc:
                label = "response stream" if received else "first response chunk"
                raise StreamTimeoutError(
                    f"Timed out waiting for {label} after {timeout:.0f}s."
                ) from exc
            if segment is _END_OF_STREAM:
                break
            received = True
            for chunk in decoder.feed(segment):
                self._consume(session, chunk)
        for chunk in decoder.flush():
            self._consume(session, chunk)

    def _consume(self, session: GenerationSession, chunk: GenerationChunk) -> None:
        if not chunk.text or self._active is not session:
            return
        session.append(chunk.text)
        self._emit(EventType.RAW_TEXT, text=session.raw, delta=chunk.text)
        self.dispatcher.submit(session.raw)

    def _finish(
        self, session: GenerationSession, outcome: SessionOutcome, message: str | None = None
    ) -> None:
        if self._active is not session:
            return
        self._active = None
        session.outcome = outcome
        session.error = message
        session.finished_at = self.clock()
        self.view.unlock()

        elapsed = session.finished_at - session.started_at
        if outcome is SessionOutcome.COMMITTED:
            logger.info(
                f"[LiveCanvas Session] Committed document in {elapsed:.2f}s "
                f"({session.chunks} chunks, {len(session.raw)} chars, "
                f"{self.dispatcher.forwarded} patches, {session.dropped_records} dropped records)."
            )
            self._emit(EventType.COMMITTED, document=session.canonical)
        elif outcome is SessionOutcome.CANCELLED:
            logger.info(f"[LiveCanvas Session] Cancelled after {elapsed:.2f}s.")
            self._emit(EventType.CANCELLED)
        else:
            logger.error(f"[LiveCanvas Session] Generation failed: {message}")
            self._emit(EventType.FAILED, message=message or "Generation failed.")
