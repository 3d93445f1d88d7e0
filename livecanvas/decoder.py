"""
Chunk decoding for Ollama's newline-delimited JSON stream.

The transport hands over text segments whose boundaries have nothing to do with
record boundaries: a single JSON record can arrive split across two (or more)
segments. ``ChunkDecoder`` keeps the trailing, possibly-incomplete record as a
residual and only decodes records once their separator has been seen.

``NDJSONAdapter`` follows the adapter protocol (``__aiter__`` yielding items)
so a decoded stream can be consumed with a plain ``async for``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator

logger = logging.getLogger("livecanvas.decoder")

RECORD_SEPARATOR = "\n"


@dataclass(frozen=True, slots=True)
class GenerationChunk:
    """One decoded record of a streaming generate response."""

    text: str
    done: bool = False


# ---------------------------------------------------------------------------
# ChunkDecoder
# ---------------------------------------------------------------------------


class ChunkDecoder:
    """Turns raw text segments into ``GenerationChunk`` records.

    Malformed records are dropped with a warning and counted in ``dropped``;
    decoding carries on with the next record.
    """

    def __init__(self) -> None:
        self.residual = ""
        self.decoded = 0
        self.dropped = 0

    def feed(self, segment: str) -> list[GenerationChunk]:
        """Decode every record completed by *segment*."""
        if not segment:
            return []
        lines = (self.residual + segment).split(RECORD_SEPARATOR)
        self.residual = lines.pop()
        chunks: list[GenerationChunk] = []
        for line in lines:
            chunk = self._decode(line)
            if chunk is not None:
                chunks.append(chunk)
        return chunks

    def flush(self) -> list[GenerationChunk]:
        """Decode whatever is left once the transport has closed."""
        line, self.residual = self.residual, ""
        chunk = self._decode(line)
        return [] if chunk is None else [chunk]

    def _decode(self, line: str) -> GenerationChunk | None:
        if not line.strip():
            return None
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            self.dropped += 1
            logger.warning(f"[LiveCanvas Stream] Bad JSON chunk dropped: {line[:200]!r}")
            return None
        if not isinstance(record, dict):
            self.dropped += 1
            logger.warning(f"[LiveCanvas Stream] Non-object chunk dropped: {line[:200]!r}")
            return None
        self.decoded += 1
        text = record.get("response")
        return GenerationChunk(
            text=text if isinstance(text, str) else "",
            done=bool(record.get("done", False)),
        )

    def __repr__(self) -> str:
        return (
            f"ChunkDecoder(decoded={self.decoded}, dropped={self.dropped}, "
            f"residual={len(self.residual)} chars)"
        )


# ---------------------------------------------------------------------------
# NDJSONAdapter
# ---------------------------------------------------------------------------


class NDJSONAdapter:
    """Wraps an async iterable of text segments, yielding decoded chunks."""

    def __init__(self, source: AsyncIterable[str], decoder: ChunkDecoder | None = None) -> None:
        self.source = source
        self.decoder = decoder if decoder is not None else ChunkDecoder()

    def __aiter__(self) -> AsyncIterator[GenerationChunk]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[GenerationChunk]:
        async for segment in self.source:
            for chunk in self.decoder.feed(segment):
                yield chunk
        for chunk in self.decoder.flush():
            yield chunk

    def __repr__(self) -> str:
        return f"NDJSONAdapter(source={self.source!r}, decoder={self.decoder!r})"
