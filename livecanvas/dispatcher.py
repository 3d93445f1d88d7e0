"""Rate-limited forwarding of extracted fragments to the render surface."""

from __future__ import annotations

import logging
import math
import time
from typing import TYPE_CHECKING, Callable

from .extractor import RenderPatch, extract_fragments

if TYPE_CHECKING:
    from .surface import RenderSurface

logger = logging.getLogger("livecanvas.dispatcher")

DEFAULT_MIN_INTERVAL_SECONDS = 0.2


class PatchDispatcher:
    """Forward at most one patch per ``min_interval`` seconds.

    Calls arriving inside the interval are dropped outright: no queue, no
    trailing flush. The session controller commits the final document through
    its own path once the stream ends, so nothing is lost for good.
    """

    def __init__(
        self,
        surface: RenderSurface,
        min_interval: float = DEFAULT_MIN_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        extractor: Callable[[str], RenderPatch] = extract_fragments,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.surface = surface
        self.min_interval = min_interval
        self.clock = clock
        self.extractor = extractor
        self.last_forwarded_at = -math.inf
        self.last_forwarded_length = 0
        self.forwarded = 0
        self.skipped = 0

    def submit(self, buffer: str) -> bool:
        """Forward a patch for *buffer* if the interval has elapsed."""
        now = self.clock()
        if now - self.last_forwarded_at < self.min_interval:
            self.skipped += 1
            return False
        if len(buffer) < self.last_forwarded_length:
            # A shorter buffer is an older state; forwarding it would regress the preview.
            self.skipped += 1
            return False
        self.last_forwarded_at = now
        self.last_forwarded_length = len(buffer)
        self.surface.apply_patch(self.extractor(buffer))
        self.forwarded += 1
        return True

    def reset(self) -> None:
        self.last_forwarded_at = -math.inf
        self.last_forwarded_length = 0
        self.forwarded = 0
        self.skipped = 0

    def __repr__(self) -> str:
        return (
            f"PatchDispatcher(min_interval={self.min_interval}, "
            f"forwarded={self.forwarded}, skipped={self.skipped})"
        )
