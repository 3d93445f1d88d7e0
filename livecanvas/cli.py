"""
LiveCanvas CLI: model management, headless generation and the desktop app.

Registered as the `livecanvas` console script via pyproject.toml.
"""

import asyncio
import contextlib
import importlib.util
import logging
from pathlib import Path

import click

from .client import OllamaClient
from .config import LiveCanvasConfig
from .exceptions import LiveCanvasError, NoModelSelectedError, require_model
from .extractor import FALLBACK_DOCUMENT
from .models import resolve_initial_model
from .params import GenerationParams
from .prompts import random_instruction
from .residency import ResidencyCoordinator
from .session import EventType, GenerationSession, SessionController, SessionEvent, SessionOutcome
from .store import SettingsStore
from .surface import MemorySurfaceHost, RenderSurface

NO_MODELS_HINT = (
    "No Ollama models were found on this machine.\n\n"
    "Install one with:  ollama pull llama3.2\n"
    "...then run `livecanvas models` to pick it."
)


def _make_client(config: LiveCanvasConfig) -> OllamaClient:
    return OllamaClient(config.host, timeout=config.request_timeout)


def _open_store(config: LiveCanvasConfig) -> contextlib.closing:
    return contextlib.closing(SettingsStore(config.settings_path))


def _fail_missing_dependencies(*, command_name: str, missing: list[str], install_steps: list[str]) -> None:
    """Exit with actionable guidance when an optional dependency is absent."""
    if not missing:
        return
    click.secho(
        f"{command_name} requires optional dependencies that are missing:",
        fg="red",
        err=True,
        bold=True,
    )
    for module in missing:
        click.echo(f"  - {module}", err=True)
    click.echo("", err=True)
    click.secho("Install with:", fg="cyan", err=True)
    for step in install_steps:
        click.echo(f"  {step}", err=True)
    raise SystemExit(2)


# ── Main group ────────────────────────────────────────────────────────────────


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="livecanvas")
@click.option(
    "--log-level",
    default="warning",
    show_default=True,
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    help="Logging verbosity for the livecanvas loggers.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str) -> None:
    """LiveCanvas: stream a local model's HTML straight into a live preview."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = LiveCanvasConfig.from_env()


# ── Models ────────────────────────────────────────────────────────────────────


@cli.command()
@click.pass_obj
def models(config: LiveCanvasConfig) -> None:
    """List installed Ollama models (● = loaded in memory, * = selected)."""

    async def _collect():
        async with _make_client(config) as client:
            await client.ensure_ready()
            return await client.list_models(), await client.list_resident()

    installed, resident = asyncio.run(_collect())
    if not installed:
        click.secho(NO_MODELS_HINT, fg="yellow", err=True)
        raise SystemExit(1)

    with _open_store(config) as store:
        selected = store.selected_model

    click.secho(f"\n  {'Model':<40}{'Details'}", fg="cyan", bold=True)
    click.secho(f"  {'─' * 39} {'─' * 36}", fg="cyan")
    for model in installed:
        marker = "*" if model.name == selected else " "
        loaded = " ●" if model.name in resident else ""
        click.echo(f"{marker} {model.name:<40}{model.meta}{loaded}")
    click.echo()


@cli.command()
@click.argument("model")
@click.option("--no-warm", is_flag=True, help="Only remember the choice; do not load the model.")
@click.pass_obj
def select(config: LiveCanvasConfig, model: str, no_warm: bool) -> None:
    """Remember MODEL as the selected model and load it."""

    async def _select() -> bool:
        async with _make_client(config) as client:
            installed = {info.name for info in await client.list_models()}
            if model not in installed:
                raise click.BadParameter(f"'{model}' is not installed.", param_hint="MODEL")
            with _open_store(config) as store:
                store.selected_model = model
                params = store.load_params()
            if no_warm:
                return False
            coordinator = ResidencyCoordinator(client, keep_alive=config.keep_alive)
            return await coordinator.warm(model, params)

    warmed = asyncio.run(_select())
    click.secho(f"Selected {model}{' (warm-up sent)' if warmed else ''}.", fg="green")


@cli.command()
@click.argument("model", required=False)
@click.pass_obj
def warm(config: LiveCanvasConfig, model: str | None) -> None:
    """Load MODEL (default: the selected model) into memory ahead of use."""
    with _open_store(config) as store:
        name = require_model(model or store.selected_model)
        params = store.load_params()

    async def _warm() -> bool:
        async with _make_client(config) as client:
            coordinator = ResidencyCoordinator(client, keep_alive=config.keep_alive)
            await coordinator.warm(name, params)
            return await coordinator.is_resident(name)

    if asyncio.run(_warm()):
        click.secho(f"{name} is loaded (keep_alive={config.keep_alive}).", fg="green")
    else:
        click.secho(f"Warm-up sent for {name}, but it is not listed as loaded.", fg="yellow")


# ── Parameters ────────────────────────────────────────────────────────────────


@cli.group()
def params() -> None:
    """Show or edit the persisted generation parameters."""


@params.command(name="show")
@click.pass_obj
def params_show(config: LiveCanvasConfig) -> None:
    """Print the current generation parameters."""
    with _open_store(config) as store:
        current = store.load_params()
    for key, value in current.to_dict().items():
        click.echo(f"  {key:<16}{value}")


@params.command(name="set")
@click.option("--temperature", type=float)
@click.option("--top-p", type=float)
@click.option("--top-k", type=float)
@click.option("--min-p", type=float)
@click.option("--repeat-penalty", type=float)
@click.option("--num-ctx", type=float, help="Context size (minimum 512).")
@click.option("--max-tokens", type=float, help="Generation budget (minimum 16).")
@click.pass_obj
def params_set(config: LiveCanvasConfig, **changes: float | None) -> None:
    """Update generation parameters; a new context size re-pins the selected model."""
    with _open_store(config) as store:
        previous = store.load_params()
        updated = store.save_params(previous.updated(**changes))
        model = store.selected_model

    for key, value in updated.to_dict().items():
        click.echo(f"  {key:<16}{value}")

    if model and updated.num_ctx != previous.num_ctx:

        async def _apply() -> bool:
            async with _make_client(config) as client:
                coordinator = ResidencyCoordinator(client, keep_alive=config.keep_alive)
                return await coordinator.apply_params(model, previous, updated)

        if asyncio.run(_apply()):
            click.secho(f"Options applied/pinned for {model}.", fg="green")
        else:
            click.secho(f"Could not re-pin {model}; new options apply on next run.", fg="yellow")


# ── Generate ──────────────────────────────────────────────────────────────────


class _TerminalListener:
    """Echo session events to the terminal."""

    def __init__(self, show_stream: bool) -> None:
        self.show_stream = show_stream

    def __call__(self, event: SessionEvent) -> None:
        if event.type is EventType.RAW_TEXT and self.show_stream:
            click.echo(event.data["delta"], nl=False)
        elif event.type is EventType.STARTED:
            click.secho(f"Generating with {event.data['model']}...", fg="cyan", err=True)
        elif event.type is EventType.FAILED:
            click.secho(f"\n{event.data['message']}", fg="red", err=True)


async def _generate(
    config: LiveCanvasConfig,
    instruction: str,
    model: str | None,
    params: GenerationParams,
    saved_model: str | None,
    show_stream: bool,
) -> tuple[GenerationSession | None, MemorySurfaceHost]:
    host = MemorySurfaceHost()
    async with _make_client(config) as client:
        if model is None:
            installed = await client.list_models()
            if not installed:
                raise NoModelSelectedError(NO_MODELS_HINT)
            model = resolve_initial_model(saved_model, installed, await client.list_resident())
        controller = SessionController(
            client,
            RenderSurface(host),
            model=model,
            params=params,
            listener=_TerminalListener(show_stream),
            min_interval=config.patch_interval,
            first_chunk_timeout=config.first_chunk_timeout,
            idle_timeout=config.idle_timeout,
            keep_alive=config.keep_alive,
        )
        try:
            session = await controller.run(instruction)
        finally:
            await controller.aclose()
    return session, host


@cli.command()
@click.argument("instruction", required=False)
@click.option("--random", "use_random", is_flag=True, help="Generate from a random instruction.")
@click.option("-m", "--model", default=None, help="Model to use (default: the selected model).")
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("livecanvas.html"),
    show_default=True,
    help="Where to write the finished document.",
)
@click.option("--show-stream", is_flag=True, help="Echo the raw model output while it streams.")
@click.pass_obj
def generate(
    config: LiveCanvasConfig,
    instruction: str | None,
    use_random: bool,
    model: str | None,
    output: Path,
    show_stream: bool,
) -> None:
    """Generate a self-contained HTML document from INSTRUCTION.

    \b
    Examples:
        livecanvas generate "a double pendulum with trails"
        livecanvas generate --random -o random.html
        livecanvas generate -m qwen2.5-coder:7b "breakout with glowing bricks"
    """
    if use_random:
        instruction = random_instruction()
        click.secho(f"Instruction: {instruction}", fg="cyan", err=True)
    if not instruction or not instruction.strip():
        raise click.UsageError("Give an INSTRUCTION or pass --random.")

    with _open_store(config) as store:
        params = store.load_params()
        saved_model = store.selected_model

    try:
        session, _host = asyncio.run(
            _generate(config, instruction, model, params, saved_model, show_stream)
        )
    except KeyboardInterrupt:
        click.secho("\nCancelled.", fg="yellow", err=True)
        raise SystemExit(130) from None

    if session is None:
        raise NoModelSelectedError()
    if session.outcome is SessionOutcome.CANCELLED:
        click.secho("\nCancelled.", fg="yellow", err=True)
        raise SystemExit(130)
    if session.outcome is SessionOutcome.FAILED:
        raise SystemExit(1)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(session.canonical or FALLBACK_DOCUMENT, encoding="utf-8")
    if show_stream:
        click.echo()
    if session.canonical == FALLBACK_DOCUMENT:
        click.secho(f"No valid HTML found; wrote the placeholder to {output}.", fg="yellow")
        return
    click.secho(
        f"Wrote {len(session.canonical or '')} chars to {output} "
        f"({session.chunks} chunks, {session.dropped_records} dropped).",
        fg="green",
    )


# ── Desktop App ───────────────────────────────────────────────────────────────


@cli.command(name="app")
def app_cmd() -> None:
    """Launch the desktop app with the live preview."""
    missing = [name for name in ("toga",) if importlib.util.find_spec(name) is None]
    _fail_missing_dependencies(
        command_name="livecanvas app",
        missing=missing,
        install_steps=["pip install 'livecanvas[app]'"],
    )
    from .app import run

    run()


# ── Entry point ───────────────────────────────────────────────────────────────


def cli_entry() -> None:
    """Entry point for the console_scripts."""
    try:
        cli()
    except LiveCanvasError as exc:
        click.secho(str(exc), fg="red", err=True)
        raise SystemExit(2) from exc


if __name__ == "__main__":
    cli_entry()
