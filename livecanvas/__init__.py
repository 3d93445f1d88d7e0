"""
LiveCanvas: watch a local model write an interactive HTML document, live.

An instruction goes to a local Ollama server; the streamed answer is decoded
chunk by chunk, the renderable parts of the half-written document are pushed
to a sandboxed preview a few times per second, and the finished document is
committed once the stream ends.
"""

from .client import OllamaClient
from .config import LiveCanvasConfig
from .decoder import ChunkDecoder, GenerationChunk, NDJSONAdapter
from .dispatcher import PatchDispatcher
from .exceptions import (
    BackendUnavailableError,
    ConfigError,
    LiveCanvasError,
    NoModelSelectedError,
    StreamRequestError,
    StreamTimeoutError,
)
from .extractor import RenderPatch, extract_canonical_document, extract_fragments
from .params import GenerationParams
from .residency import ResidencyCoordinator, SingleFlight
from .session import (
    EventType,
    GenerationSession,
    SessionController,
    SessionEvent,
    SessionOutcome,
    SessionState,
)
from .surface import MemorySurfaceHost, RenderSurface, SurfaceHost
from .view import ViewState
# Note: the desktop app (livecanvas.app) needs toga and is imported on demand.

__all__ = [
    "OllamaClient",
    "LiveCanvasConfig",
    "ChunkDecoder",
    "GenerationChunk",
    "NDJSONAdapter",
    "PatchDispatcher",
    "BackendUnavailableError",
    "ConfigError",
    "LiveCanvasError",
    "NoModelSelectedError",
    "StreamRequestError",
    "StreamTimeoutError",
    "RenderPatch",
    "extract_canonical_document",
    "extract_fragments",
    "GenerationParams",
    "ResidencyCoordinator",
    "SingleFlight",
    "EventType",
    "GenerationSession",
    "SessionController",
    "SessionEvent",
    "SessionOutcome",
    "SessionState",
    "MemorySurfaceHost",
    "RenderSurface",
    "SurfaceHost",
    "ViewState",
]
