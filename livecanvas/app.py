"""LiveCanvas desktop app built with Toga.

Highlights:
- model picker with filter, metadata and warm-up on selection
- raw model output streamed into a read-only text area
- live HTML preview patched a few times per second while the model writes
- final document committed into a fresh page once the stream ends
- sqlite-backed model choice and generation parameters
"""

from __future__ import annotations

import asyncio
import json
import logging
from decimal import Decimal
from typing import Any

import toga
from toga.style import Pack
from toga.style.pack import COLUMN, ROW

from .client import OllamaClient
from .config import LiveCanvasConfig
from .models import ModelInfo, filter_models, resolve_initial_model
from .params import MIN_MAX_TOKENS, MIN_NUM_CTX, GenerationParams
from .residency import ResidencyCoordinator
from .session import EventType, SessionController, SessionEvent
from .store import SettingsStore
from .surface import RenderSurface

logger = logging.getLogger("livecanvas.app")

PREVIEW_ROOT_URL = "https://livecanvas.localhost/"
NO_MODELS_MESSAGE = (
    "No Ollama models were found on this machine.\n\n"
    "Install one from a terminal, for example:\n"
    "  ollama pull llama3.2\n\n"
    "Then restart LiveCanvas."
)

FONT_SIZE_TITLE = 15
FONT_SIZE_BODY = 11
FONT_SIZE_META = 10
COLOR_APP_BG = "#0E1218"
COLOR_PANEL_BG = "#151C26"
COLOR_ACCENT = "#5E9BFF"
COLOR_DANGER_SOFT = "#432932"
COLOR_TEXT_PRIMARY = "#F6FAFF"
COLOR_TEXT_MUTED = "#9AA8BC"


class WebViewSurfaceHost:
    """Drives the preview page inside a ``toga.WebView``."""

    def __init__(self, webview: toga.WebView):
        self.webview = webview

    def load_document(self, html: str) -> None:
        self.webview.set_content(PREVIEW_ROOT_URL, html)

    def post_patch(self, css: str, html: str, scripts: list[str]) -> None:
        # The bootstrap page may still be loading when the first patch lands.
        self.webview.evaluate_javascript(
            "window.applyUserDOM && applyUserDOM("
            f"{json.dumps(css)}, {json.dumps(html)}, {json.dumps(scripts)});"
        )


class LiveCanvasApp(toga.App):
    """Toga desktop app for live HTML generation with a local Ollama model."""

    def startup(self) -> None:
        """Build UI, open settings, and connect to the backend."""
        self.config = LiveCanvasConfig.from_env()
        self.store = SettingsStore(self.config.settings_path)
        self.client = OllamaClient(self.config.host, timeout=self.config.request_timeout)
        self.residency = ResidencyCoordinator(self.client, keep_alive=self.config.keep_alive)

        self.models: list[ModelInfo] = []
        self.resident: list[str] = []
        self._populating_models = False
        self._bootstrap_task: asyncio.Task | None = None
        self._dialog_task: asyncio.Task | None = None
        self._shutdown_task: asyncio.Task | None = None

        self._build_ui()
        self.surface = RenderSurface(WebViewSurfaceHost(self.preview))
        self.controller = SessionController(
            self.client,
            self.surface,
            model=None,
            params=self.store.load_params(),
            listener=self.on_session_event,
            min_interval=self.config.patch_interval,
            first_chunk_timeout=self.config.first_chunk_timeout,
            idle_timeout=self.config.idle_timeout,
            keep_alive=self.config.keep_alive,
        )
        self._load_params_into_form(self.controller.params)
        self._set_busy(False)
        self.surface.clear()

        self.main_window.show()
        self._bootstrap_task = asyncio.create_task(self._bootstrap())

    # -- layout ------------------------------------------------------------

    def _label(self, text: str, *, size: float = FONT_SIZE_BODY, muted: bool = False) -> toga.Label:
        return toga.Label(
            text,
            style=Pack(
                margin=(0, 6, 4, 0),
                font_size=size,
                color=COLOR_TEXT_MUTED if muted else COLOR_TEXT_PRIMARY,
            ),
        )

    def _number_input(self, *, step: str, min_value: float, max_value: float | None = None) -> toga.NumberInput:
        return toga.NumberInput(
            step=Decimal(step),
            min=min_value,
            max=max_value,
            style=Pack(width=90, margin=(0, 8, 6, 0)),
        )

    def _param_row(self, label: str, control: toga.Widget) -> toga.Box:
        row = toga.Box(style=Pack(direction=ROW, margin=(0, 0, 2, 0)))
        row.add(self._label(label, size=FONT_SIZE_META, muted=True))
        row.add(control)
        return row

    def _build_ui(self) -> None:
        """Construct application widgets and layout."""
        self.model_filter_input = toga.TextInput(
            placeholder="Filter models",
            on_change=self.on_model_filter_change,
            style=Pack(margin=(0, 0, 6, 0)),
        )
        self.model_select = toga.Selection(
            items=[],
            on_change=self.on_model_change,
            style=Pack(margin=(0, 0, 4, 0)),
        )
        self.model_meta_label = self._label("", size=FONT_SIZE_META, muted=True)

        self.temperature_input = self._number_input(step="0.05", min_value=0, max_value=2)
        self.top_p_input = self._number_input(step="0.05", min_value=0, max_value=1)
        self.top_k_input = self._number_input(step="1", min_value=0)
        self.min_p_input = self._number_input(step="0.01", min_value=0, max_value=1)
        self.repeat_penalty_input = self._number_input(step="0.05", min_value=0, max_value=2)
        self.num_ctx_input = self._number_input(step="512", min_value=MIN_NUM_CTX)
        self.max_tokens_input = self._number_input(step="16", min_value=MIN_MAX_TOKENS)
        self.apply_params_button = toga.Button(
            "Apply",
            on_press=self.on_apply_params,
            style=Pack(margin=(6, 0, 0, 0)),
        )

        params_box = toga.Box(style=Pack(direction=COLUMN, margin=(10, 0, 0, 0)))
        for label, control in (
            ("temperature", self.temperature_input),
            ("top_p", self.top_p_input),
            ("top_k", self.top_k_input),
            ("min_p", self.min_p_input),
            ("repeat_penalty", self.repeat_penalty_input),
            ("num_ctx", self.num_ctx_input),
            ("max_tokens", self.max_tokens_input),
        ):
            params_box.add(self._param_row(label, control))
        params_box.add(self.apply_params_button)

        self.status_label = self._label("Starting...", size=FONT_SIZE_META, muted=True)

        sidebar = toga.Box(
            style=Pack(direction=COLUMN, width=260, margin=12, background_color=COLOR_PANEL_BG)
        )
        sidebar.add(self._label("LiveCanvas", size=FONT_SIZE_TITLE))
        sidebar.add(self.model_filter_input)
        sidebar.add(self.model_select)
        sidebar.add(self.model_meta_label)
        sidebar.add(params_box)
        sidebar.add(toga.Box(style=Pack(flex=1)))
        sidebar.add(self.status_label)

        self.instruction_input = toga.TextInput(
            placeholder="Describe what to build, e.g. a double pendulum with trails",
            on_confirm=self.on_generate,
            style=Pack(flex=1, margin=(0, 6, 0, 0)),
        )
        self.generate_button = toga.Button(
            "Generate",
            on_press=self.on_generate,
            style=Pack(margin=(0, 4, 0, 0), background_color=COLOR_ACCENT, color="#FFFFFF"),
        )
        self.random_button = toga.Button("Random", on_press=self.on_random, style=Pack(margin=(0, 4, 0, 0)))
        self.stop_button = toga.Button(
            "Stop",
            on_press=self.on_stop,
            style=Pack(margin=(0, 4, 0, 0), background_color=COLOR_DANGER_SOFT),
        )
        self.clear_button = toga.Button("Clear", on_press=self.on_clear)

        action_row = toga.Box(style=Pack(direction=ROW, margin=(0, 0, 8, 0)))
        for widget in (
            self.instruction_input,
            self.generate_button,
            self.random_button,
            self.stop_button,
            self.clear_button,
        ):
            action_row.add(widget)

        self.raw_output = toga.MultilineTextInput(
            readonly=True,
            placeholder="Raw model output appears here.",
            style=Pack(flex=1, font_family="monospace", font_size=FONT_SIZE_META),
        )
        self.preview = toga.WebView(style=Pack(flex=2, margin=(0, 0, 0, 8)))

        panes = toga.Box(style=Pack(direction=ROW, flex=1))
        panes.add(self.raw_output)
        panes.add(self.preview)

        main_column = toga.Box(style=Pack(direction=COLUMN, flex=1, margin=12))
        main_column.add(action_row)
        main_column.add(panes)

        root_box = toga.Box(style=Pack(direction=ROW, flex=1, background_color=COLOR_APP_BG))
        root_box.add(sidebar)
        root_box.add(main_column)

        self.main_window = toga.MainWindow(title=self.formal_name, size=(1280, 820))
        self.main_window.content = root_box

    # -- state -------------------------------------------------------------

    def _set_status_text(self, text: str) -> None:
        self.status_label.text = text

    def _set_busy(self, busy: bool) -> None:
        self.instruction_input.readonly = busy
        self.generate_button.enabled = not busy
        self.random_button.enabled = not busy
        self.stop_button.enabled = busy
        self.model_select.enabled = not busy
        self.apply_params_button.enabled = not busy

    def _show_dialog(self, dialog: Any) -> None:
        self._dialog_task = asyncio.create_task(self.main_window.dialog(dialog))

    def _refresh_model_meta(self) -> None:
        name = self.controller.model
        info = next((model for model in self.models if model.name == name), None)
        if info is None:
            self.model_meta_label.text = ""
            return
        loaded = " · loaded" if name in self.resident else ""
        self.model_meta_label.text = f"{info.meta}{loaded}"

    def _load_params_into_form(self, params: GenerationParams) -> None:
        self.temperature_input.value = params.temperature
        self.top_p_input.value = params.top_p
        self.top_k_input.value = params.top_k
        self.min_p_input.value = params.min_p
        self.repeat_penalty_input.value = params.repeat_penalty
        self.num_ctx_input.value = params.num_ctx
        self.max_tokens_input.value = params.max_tokens

    def _params_from_form(self) -> GenerationParams:
        def read(widget: toga.NumberInput) -> float | None:
            return None if widget.value is None else float(widget.value)

        return self.controller.params.updated(
            temperature=read(self.temperature_input),
            top_p=read(self.top_p_input),
            top_k=read(self.top_k_input),
            min_p=read(self.min_p_input),
            repeat_penalty=read(self.repeat_penalty_input),
            num_ctx=read(self.num_ctx_input),
            max_tokens=read(self.max_tokens_input),
        )

    def _populate_models(self, models: list[ModelInfo]) -> None:
        self._populating_models = True
        try:
            self.model_select.items = [model.name for model in models]
            if self.controller.model in self.model_select.items:
                self.model_select.value = self.controller.model
        finally:
            self._populating_models = False

    # -- backend -----------------------------------------------------------

    async def _bootstrap(self) -> None:
        self._set_status_text(f"Connecting to Ollama at {self.config.host}...")
        if not await self.client.is_ready():
            logger.warning(f"[LiveCanvas App] Ollama is not reachable at {self.config.host}")
            self._set_status_text(f"Ollama is not reachable at {self.config.host}.")
            return
        self.models = await self.client.list_models()
        self.resident = await self.client.list_resident()
        if not self.models:
            self._set_status_text("No models installed.")
            await self.main_window.dialog(toga.InfoDialog("No models found", NO_MODELS_MESSAGE))
            return
        name = resolve_initial_model(self.store.selected_model, self.models, self.resident)
        self.controller.model = name
        self._populate_models(self.models)
        self._refresh_model_meta()
        if name:
            await self._select_model(name)

    async def _select_model(self, name: str) -> None:
        self.controller.model = name
        self.store.selected_model = name
        self._refresh_model_meta()
        self._set_status_text(f"Loading {name}...")
        await self.residency.warm(name, self.controller.params)
        self.resident = await self.client.list_resident()
        self._refresh_model_meta()
        self._set_status_text(f"{name} ready.")

    # -- handlers ----------------------------------------------------------

    def on_model_filter_change(self, widget: toga.Widget) -> None:
        self._populate_models(filter_models(self.models, self.model_filter_input.value))

    async def on_model_change(self, widget: toga.Widget) -> None:
        name = self.model_select.value
        if self._populating_models or not name or name == self.controller.model:
            return
        await self._select_model(name)

    async def on_apply_params(self, widget: toga.Widget) -> None:
        previous = self.controller.params
        try:
            updated = self.store.save_params(self._params_from_form())
        except (TypeError, ValueError) as exc:
            await self.main_window.dialog(toga.ErrorDialog("Invalid parameters", str(exc)))
            return
        self.controller.params = updated
        self._load_params_into_form(updated)
        model = self.controller.model
        if model and updated.num_ctx != previous.num_ctx:
            self._set_status_text(f"Applying context size {updated.num_ctx} to {model}...")
            applied = await self.residency.apply_params(model, previous, updated)
            self._set_status_text(
                f"Options applied/pinned for {model}." if applied else f"Could not re-pin {model}."
            )
        else:
            self._set_status_text("Parameters saved.")

    def on_generate(self, widget: toga.Widget) -> None:
        self.controller.start(self.instruction_input.value)

    def on_random(self, widget: toga.Widget) -> None:
        self.controller.start_random()

    def on_stop(self, widget: toga.Widget) -> None:
        self.controller.stop()

    def on_clear(self, widget: toga.Widget) -> None:
        self.controller.clear()

    def on_session_event(self, event: SessionEvent) -> None:
        """Reflect controller transitions in the widgets."""
        if event.type is EventType.RAW_TEXT:
            self.raw_output.value = event.data["text"]
            if self.controller.view.auto_scroll:
                self.raw_output.scroll_to_bottom()
        elif event.type is EventType.STARTED:
            self.raw_output.value = ""
            if self.instruction_input.value != event.data["instruction"]:
                self.instruction_input.value = event.data["instruction"]
            self._set_busy(True)
            self._set_status_text(f"Generating with {event.data['model']}...")
        elif event.type is EventType.COMMITTED:
            self._set_busy(False)
            self._set_status_text("Document rendered.")
        elif event.type is EventType.CANCELLED:
            self._set_busy(False)
            self._set_status_text("Stopped.")
        elif event.type is EventType.FAILED:
            self._set_busy(False)
            self._set_status_text("Generation failed.")
            self._show_dialog(toga.ErrorDialog("Generation error", event.data["message"]))
        elif event.type is EventType.MODEL_REQUIRED:
            self._show_dialog(toga.InfoDialog("Select a model", event.data["message"]))
        elif event.type is EventType.CLEARED:
            self.raw_output.value = ""
            self.instruction_input.value = ""
            self._set_busy(False)
            self._set_status_text("Cleared.")

    def on_exit(self) -> bool:
        """Abort any stream, close the settings store and release the HTTP client."""
        for task in (self._bootstrap_task, self._dialog_task):
            if task is not None and not task.done():
                task.cancel()
        self.controller.stop()
        self.store.close()
        self._shutdown_task = asyncio.create_task(self._shutdown())
        return True

    async def _shutdown(self) -> None:
        await self.controller.aclose()
        await self.client.aclose()
        logger.debug("[LiveCanvas App] Backend client closed.")


def main() -> LiveCanvasApp:
    """Desktop entrypoint."""
    return LiveCanvasApp(
        formal_name="LiveCanvas",
        app_id="dev.livecanvas.app",
    )


def run() -> None:
    """Console entrypoint: build the app and enter the event loop."""
    main().main_loop()
