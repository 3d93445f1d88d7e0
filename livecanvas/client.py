"""Async Ollama API client used for model discovery, warm-up and streaming."""

from __future__ import annotations

import logging
import time
from typing import Any, AsyncIterator, Mapping

import httpx

from .config import DEFAULT_HOST, DEFAULT_KEEP_ALIVE, DEFAULT_REQUEST_TIMEOUT_SECONDS
from .exceptions import BackendUnavailableError, StreamRequestError
from .models import ModelInfo

logger = logging.getLogger("livecanvas.client")

READY_PROBE_TIMEOUT_SECONDS = 0.8


class OllamaClient:
    """Thin wrapper over the Ollama HTTP API.

    Discovery calls (``list_models``, ``list_resident``) are best-effort and
    return empty lists when the server is down. ``generate_once`` and
    ``stream_generate`` raise so callers can decide what a failure means.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_HOST,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    async def __aenter__(self) -> OllamaClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- discovery ---------------------------------------------------------

    async def list_models(self) -> list[ModelInfo]:
        """Installed models from ``GET /api/tags``, sorted by name."""
        try:
            response = await self._client.get("/api/tags")
            response.raise_for_status()
            entries = response.json().get("models") or []
            models = [ModelInfo.from_tag(entry) for entry in entries if entry.get("name")]
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning(f"[LiveCanvas Client] Could not enumerate models via /api/tags: {exc}")
            return []
        models.sort(key=lambda model: model.name)
        return models

    async def list_resident(self) -> list[str]:
        """Names of the models currently loaded in memory (``GET /api/ps``)."""
        try:
            response = await self._client.get("/api/ps")
            if response.is_error:
                return []
            entries = response.json().get("models")
        except (httpx.HTTPError, ValueError, AttributeError):
            return []
        if not isinstance(entries, list):
            return []
        return [str(entry["name"]) for entry in entries if isinstance(entry, dict) and "name" in entry]

    async def is_ready(self) -> bool:
        """Liveness check against ``/.well-known/ready``."""
        try:
            await self._client.get("/.well-known/ready", timeout=READY_PROBE_TIMEOUT_SECONDS)
        except httpx.HTTPError:
            return False
        return True

    async def ensure_ready(self) -> None:
        if not await self.is_ready():
            raise BackendUnavailableError(self.base_url)

    # -- generation --------------------------------------------------------

    @staticmethod
    def _payload(
        model: str,
        prompt: str,
        options: Mapping[str, Any],
        *,
        stream: bool,
        keep_alive: str | int,
    ) -> dict[str, Any]:
        return {
            "model": model,
            "prompt": prompt,
            "stream": stream,
            "keep_alive": keep_alive,
            "options": dict(options),
        }

    async def generate_once(
        self,
        model: str,
        prompt: str,
        options: Mapping[str, Any],
        *,
        keep_alive: str | int = DEFAULT_KEEP_ALIVE,
    ) -> str:
        """Non-streaming generate call; returns the ``response`` text.

        Raises:
            httpx.HTTPError: on transport failures or a non-2xx status.
        """
        start = time.perf_counter()
        response = await self._client.post(
            "/api/generate",
            json=self._payload(model, prompt, options, stream=False, keep_alive=keep_alive),
        )
        response.raise_for_status()
        data = response.json()
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        logger.debug(f"[LiveCanvas Client] generate({model}) completed in {elapsed_ms:.0f} ms")
        return str(data.get("response", ""))

    async def stream_generate(
        self,
        model: str,
        prompt: str,
        options: Mapping[str, Any],
        *,
        keep_alive: str | int = DEFAULT_KEEP_ALIVE,
    ) -> AsyncIterator[str]:
        """Stream the raw NDJSON body of a generate call as decoded text segments.

        Segments are cut wherever the transport cut them; pair this with
        :class:`~livecanvas.decoder.ChunkDecoder`. Closing the generator (or
        cancelling the task consuming it) aborts the HTTP request.

        Raises:
            StreamRequestError: on a non-2xx status or a connection failure.
        """
        payload = self._payload(model, prompt, options, stream=True, keep_alive=keep_alive)
        try:
            async with self._client.stream("POST", "/api/generate", json=payload) as response:
                if response.is_error:
                    await response.aread()
                    raise StreamRequestError(
                        f"Streaming response not available (status {response.status_code})",
                        status_code=response.status_code,
                    )
                async for segment in response.aiter_text():
                    if segment:
                        yield segment
        except httpx.HTTPError as exc:
            raise StreamRequestError(f"Streaming request failed: {exc}") from exc
