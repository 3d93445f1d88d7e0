"""
Tests for livecanvas.dispatcher (throttled patch forwarding).
"""

import pytest

from livecanvas.dispatcher import PatchDispatcher
from livecanvas.extractor import extract_fragments


def make_dispatcher(surface, clock, min_interval=0.2):
    forwarded_at = []

    def extractor(buffer):
        forwarded_at.append(clock())
        return extract_fragments(buffer)

    dispatcher = PatchDispatcher(surface, min_interval=min_interval, clock=clock, extractor=extractor)
    return dispatcher, forwarded_at


class TestPatchDispatcher:
    def test_first_submit_forwards(self, surface, host, fake_clock):
        dispatcher, _ = make_dispatcher(surface, fake_clock)
        assert dispatcher.submit("<body><p>a</p>") is True
        assert host.html == "<p>a</p>"
        assert dispatcher.forwarded == 1

    def test_calls_inside_interval_are_dropped(self, surface, host, fake_clock):
        dispatcher, _ = make_dispatcher(surface, fake_clock)
        dispatcher.submit("<body><p>a</p>")
        fake_clock.advance(0.1)
        assert dispatcher.submit("<body><p>ab</p>") is False
        assert host.html == "<p>a</p>"
        assert dispatcher.skipped == 1

        fake_clock.advance(0.1)
        assert dispatcher.submit("<body><p>abc</p>") is True
        assert host.html == "<p>abc</p>"

    def test_at_most_one_patch_per_interval(self, surface, fake_clock):
        dispatcher, forwarded_at = make_dispatcher(surface, fake_clock)
        buffer = "<body>"
        for _ in range(200):
            buffer += "x"
            dispatcher.submit(buffer)
            fake_clock.advance(0.013)

        assert dispatcher.forwarded + dispatcher.skipped == 200
        assert dispatcher.forwarded >= 10
        gaps = [b - a for a, b in zip(forwarded_at, forwarded_at[1:])]
        assert all(gap >= 0.2 - 1e-9 for gap in gaps)

    def test_shorter_buffer_never_regresses_preview(self, surface, host, fake_clock):
        dispatcher, _ = make_dispatcher(surface, fake_clock)
        dispatcher.submit("<body><p>newer</p>")
        fake_clock.advance(1.0)
        assert dispatcher.submit("<body><p>n") is False
        assert host.html == "<p>newer</p>"

    def test_zero_interval_forwards_every_call(self, surface, fake_clock):
        dispatcher, _ = make_dispatcher(surface, fake_clock, min_interval=0)
        for text in ("<body>a", "<body>ab", "<body>abc"):
            assert dispatcher.submit(text) is True
        assert dispatcher.forwarded == 3

    def test_reset_allows_immediate_forward(self, surface, fake_clock):
        dispatcher, _ = make_dispatcher(surface, fake_clock)
        dispatcher.submit("<body>long buffer from the last session")
        dispatcher.reset()
        assert dispatcher.submit("<body>a") is True
        assert dispatcher.forwarded == 1

    def test_negative_interval_rejected(self, surface):
        with pytest.raises(ValueError, match="min_interval"):
            PatchDispatcher(surface, min_interval=-0.1)

    def test_repr(self, surface):
        assert "min_interval=0.2" in repr(PatchDispatcher(surface))
