"""Input lock and output auto-scroll state, independent of any UI toolkit."""

from __future__ import annotations

from dataclasses import dataclass

SCROLL_UP_HYSTERESIS_PX = 1
BOTTOM_TOLERANCE_PX = 4


@dataclass
class ViewState:
    """UI state driven by discrete events.

    ``auto_scroll`` keeps the raw output pinned to its end. Scrolling up turns
    it off; it only comes back once the user has scrolled to the true end.
    """

    locked: bool = False
    auto_scroll: bool = True
    last_scroll_top: float = 0.0

    def lock(self, scroll_top: float = 0.0) -> None:
        self.locked = True
        self.reset_scroll(scroll_top)

    def unlock(self) -> None:
        self.locked = False

    def reset_scroll(self, scroll_top: float = 0.0) -> None:
        self.auto_scroll = True
        self.last_scroll_top = scroll_top

    @staticmethod
    def is_at_bottom(scroll_top: float, client_height: float, scroll_height: float) -> bool:
        return scroll_top + client_height >= scroll_height - BOTTOM_TOLERANCE_PX

    def on_scroll(self, scroll_top: float, client_height: float, scroll_height: float) -> bool:
        """Update pinning from a scroll event; returns the new ``auto_scroll``."""
        if scroll_top < self.last_scroll_top - SCROLL_UP_HYSTERESIS_PX:
            self.auto_scroll = False
        else:
            self.auto_scroll = self.is_at_bottom(scroll_top, client_height, scroll_height)
        self.last_scroll_top = scroll_top
        return self.auto_scroll
