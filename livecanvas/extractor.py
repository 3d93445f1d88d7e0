"""
Best-effort markup extraction from a document that is still being generated.

During streaming the buffer is an HTML document cut off at an arbitrary
character. ``extract_fragments`` pulls out what can be rendered already:

- the text of every *closed* ``<style>`` block, so CSS only ever accumulates;
- everything after the first ``<body>`` tag, minus a trailing tag that has not
  been closed yet (``<di`` must never reach the preview as literal text).

Once the stream is over, ``extract_canonical_document`` picks the first full
document out of the text the model produced.

The document match is non-greedy: a literal ``</html>`` inside a generated
string or comment ends the match early. That heuristic is kept on purpose.
"""

import re
from dataclasses import dataclass

STYLE_BLOCK_RE = re.compile(r"<style[^>]*>(.*?)</style>", re.IGNORECASE | re.DOTALL)
BODY_OPEN_RE = re.compile(r"<body[^>]*>(.*)", re.IGNORECASE | re.DOTALL)
TRAILING_OPEN_TAG_RE = re.compile(r"<[^>]*$")
REASONING_RE = re.compile(r"<think>.*?</think>", re.IGNORECASE | re.DOTALL)
DOCTYPE_DOCUMENT_RE = re.compile(r"<!DOCTYPE html>.*?</html>", re.IGNORECASE | re.DOTALL)
ROOT_DOCUMENT_RE = re.compile(r"<html.*?</html>", re.IGNORECASE | re.DOTALL)

BLANK_DOCUMENT = "<!DOCTYPE html><html><body></body></html>"
FALLBACK_DOCUMENT = (
    "<!DOCTYPE html><html><body><h2>Error: No valid HTML found.</h2></body></html>"
)


@dataclass(frozen=True, slots=True)
class RenderPatch:
    """Style text and body markup pushed to the render surface."""

    style_text: str = ""
    body_markup: str = ""

    def to_message(self) -> dict[str, str]:
        return {"css": self.style_text, "html": self.body_markup}


def extract_styles(buffer: str) -> str:
    return "\n".join(match.group(1) for match in STYLE_BLOCK_RE.finditer(buffer))


def extract_body(buffer: str) -> str:
    match = BODY_OPEN_RE.search(buffer)
    if match is None:
        return ""
    return TRAILING_OPEN_TAG_RE.sub("", match.group(1))


def extract_fragments(buffer: str) -> RenderPatch:
    """Derive the renderable ``(style, body)`` pair from a partial document."""
    return RenderPatch(style_text=extract_styles(buffer), body_markup=extract_body(buffer))


def strip_reasoning(text: str) -> str:
    """Drop ``<think>...</think>`` side-channel blocks emitted by reasoning models."""
    return REASONING_RE.sub("", text)


def find_document(buffer: str) -> str | None:
    """Return the first complete document in *buffer*, or ``None``.

    A ``<!DOCTYPE html>`` document is preferred over a bare ``<html>`` root.
    """
    clean = strip_reasoning(buffer)
    match = DOCTYPE_DOCUMENT_RE.search(clean) or ROOT_DOCUMENT_RE.search(clean)
    if match is None:
        return None
    return match.group(0).strip()


def extract_canonical_document(buffer: str) -> str:
    """The document to commit once streaming ends; never empty."""
    document = find_document(buffer)
    return document if document is not None else FALLBACK_DOCUMENT
