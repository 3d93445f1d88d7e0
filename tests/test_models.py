"""
Tests for livecanvas.models, livecanvas.view and livecanvas.prompts.
"""

import random

from livecanvas.models import ModelInfo, choose_default_model, filter_models, resolve_initial_model
from livecanvas.prompts import STYLES, THINGS, TYPES, build_prompt, random_instruction
from livecanvas.view import ViewState

INSTALLED = [
    ModelInfo("gemma2:2b"),
    ModelInfo("llama3.2:latest"),
    ModelInfo("qwen2.5:7b-instruct"),
]


class TestModelSelection:
    def test_default_prefers_instruct_models(self):
        assert choose_default_model(INSTALLED) == "qwen2.5:7b-instruct"

    def test_default_falls_back_to_first(self):
        assert choose_default_model(INSTALLED[:2]) == "gemma2:2b"

    def test_default_none_when_empty(self):
        assert choose_default_model([]) is None
        assert resolve_initial_model("saved", []) is None

    def test_saved_choice_wins_when_installed(self):
        assert resolve_initial_model("llama3.2:latest", INSTALLED, ["gemma2:2b"]) == "llama3.2:latest"

    def test_resident_model_beats_default(self):
        assert resolve_initial_model("gone:1b", INSTALLED, ["gemma2:2b"]) == "gemma2:2b"

    def test_resident_model_must_be_installed(self):
        assert resolve_initial_model(None, INSTALLED, ["other:1b"]) == "qwen2.5:7b-instruct"

    def test_filter_is_case_insensitive_substring(self):
        assert [m.name for m in filter_models(INSTALLED, " LLAMA ")] == ["llama3.2:latest"]
        assert filter_models(INSTALLED, "") == INSTALLED

    def test_meta_skips_missing_parts(self):
        assert ModelInfo("x", family="llama", quantization_level="Q8_0").meta == "llama · Q8_0"
        assert ModelInfo("x").meta == ""

    def test_from_tag_without_details(self):
        assert ModelInfo.from_tag({"name": "plain"}) == ModelInfo("plain")


class TestViewState:
    def test_lock_resets_scroll_pinning(self):
        view = ViewState(auto_scroll=False)
        view.lock(scroll_top=10)
        assert view.locked is True
        assert view.auto_scroll is True
        view.unlock()
        assert view.locked is False

    def test_scrolling_up_unpins(self):
        view = ViewState()
        view.on_scroll(500, 200, 700)
        assert view.on_scroll(450, 200, 900) is False

    def test_small_jitter_is_not_scrolling_up(self):
        view = ViewState()
        view.on_scroll(500, 200, 700)
        assert view.on_scroll(499.5, 200, 700) is True

    def test_repins_only_at_true_end(self):
        view = ViewState()
        view.on_scroll(500, 200, 700)
        view.on_scroll(100, 200, 700)
        assert view.on_scroll(300, 200, 700) is False
        assert view.on_scroll(497, 200, 700) is True

    def test_is_at_bottom_tolerance(self):
        assert ViewState.is_at_bottom(496, 200, 700) is True
        assert ViewState.is_at_bottom(495, 200, 700) is False


class TestPrompts:
    def test_build_prompt_embeds_instruction(self):
        prompt = build_prompt("  a lava lamp  ")
        assert "single, fully self-contained HTML document" in prompt
        assert prompt.endswith("Instruction:\na lava lamp")

    def test_random_instruction_draws_from_lists(self):
        instruction = random_instruction(random.Random(3))
        assert instruction.startswith("make a ")
        assert instruction.endswith(" style")
        assert any(f" {kind} " in instruction for kind in TYPES)
        assert any(thing in instruction for thing in THINGS)
        assert any(style in instruction for style in STYLES)

    def test_random_instruction_is_reproducible(self):
        assert random_instruction(random.Random(42)) == random_instruction(random.Random(42))
