"""
Sandboxed render surface for the live preview.

The preview runs in its own document (a WebView page or an iframe), with its
own global scope. The Python side never touches that DOM directly; it talks to
it through a ``SurfaceHost``:

- ``load_document(html)`` replaces the whole document (fresh scope);
- ``post_patch(css, html, scripts)`` delivers the ``{css, html, scripts}``
  message to the bootstrap page, which swaps the stylesheet text and
  ``#live-root`` markup.

Markup inserted through ``innerHTML`` never executes its scripts, and the same
streaming document is re-rendered on every tick. The bootstrap page keeps the
set of script keys (``src`` or inline text) it already ran and, after each
swap, re-creates only the ``#live-root`` scripts whose key is listed in
``scripts`` and not yet in that set. ``scripts`` lists the keys of the
complete scripts in the patch, so a tag still streaming in is never run
half-written. A patch lost before the page finished loading marks nothing as
executed; the next one carries the same keys again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Protocol, runtime_checkable

from .extractor import BLANK_DOCUMENT, RenderPatch

logger = logging.getLogger("livecanvas.surface")

BOOTSTRAP_DOCUMENT = """
<!DOCTYPE html><html><head>
  <meta charset="utf-8"/>
  <meta name="viewport" content="width=device-width, initial-scale=1, viewport-fit=cover">
  <style id="lc-reset">
    html, body {
      margin:0; padding:0;
      min-height:100%;
      height:auto;
      overflow-y:auto;
      overflow-x:hidden !important;
    }
    *, *::before, *::after { box-sizing:border-box; }
    img, canvas, svg, video, iframe { display:block; max-width:100% !important; height:auto; }
    pre, code, kbd, samp, textarea { white-space:pre-wrap; overflow-wrap:anywhere; word-break:break-word; }
    table { display:block; max-width:100%; overflow-x:auto; }
    #live-root { min-height:100dvh; }
  </style>
</head><body>
  <div id="live-root"></div>
  <script>
    (() => {
      const executed = new Set();
      window.applyUserDOM = function (css, html, ready) {
        document.getElementById('live-css').textContent = css;
        const root = document.getElementById('live-root');
        root.innerHTML = html;
        for (const inert of root.querySelectorAll('script')) {
          const key = inert.getAttribute('src') || inert.textContent;
          if (!ready.includes(key) || executed.has(key)) continue;
          executed.add(key);
          const s = document.createElement('script');
          const src = inert.getAttribute('src');
          if (src) s.src = src;
          s.textContent = inert.textContent;
          inert.replaceWith(s);
        }
      };
      window.addEventListener('message', ({data}) => {
        if (!data || typeof data.html !== 'string') return;
        applyUserDOM(data.css || '', data.html, data.scripts || []);
      });
    })();
  </script>
  <style id="live-css"></style>
</body></html>
""".strip()

# Script tags under these never become live <script> elements of #live-root.
INERT_CONTAINERS = frozenset({"template", "noscript", "textarea"})


@dataclass(frozen=True, slots=True)
class ScriptFragment:
    """A complete ``<script>`` element found in patched markup."""

    src: str | None
    text: str

    @property
    def key(self) -> str:
        return self.src if self.src else self.text


class _ScriptCollector(HTMLParser):
    """Collects closed, live ``<script>`` elements in document order."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=False)
        self.fragments: list[ScriptFragment] = []
        self._open: tuple[str | None, list[str]] | None = None
        self._inert = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in INERT_CONTAINERS:
            self._inert += 1
        elif tag == "script" and not self._inert:
            self._open = (dict(attrs).get("src"), [])

    def handle_data(self, data: str) -> None:
        if self._open is not None:
            self._open[1].append(data)

    def handle_endtag(self, tag: str) -> None:
        if tag in INERT_CONTAINERS:
            self._inert = max(0, self._inert - 1)
            return
        if tag != "script" or self._open is None:
            return
        src, parts = self._open
        self._open = None
        self.fragments.append(ScriptFragment(src or None, "".join(parts)))


def find_scripts(markup: str) -> list[ScriptFragment]:
    """Return the complete live scripts in *markup*; an unterminated trailing one is left out."""
    collector = _ScriptCollector()
    collector.feed(markup)
    # No close(): an unterminated <script> must stay pending until its end tag arrives.
    return collector.fragments


@runtime_checkable
class SurfaceHost(Protocol):
    """Transport into the isolated preview document."""

    def load_document(self, html: str) -> None: ...

    def post_patch(self, css: str, html: str, scripts: list[str]) -> None: ...


@dataclass
class MemorySurfaceHost:
    """Headless host that records what a real preview would have shown.

    Runs scripts the way the bootstrap page does: once per key per loaded
    document, and only when the patch lists them as complete.
    """

    document: str = ""
    css: str = ""
    html: str = ""
    loads: int = 0
    patches: int = 0
    executed: set[str] = field(default_factory=set)
    activated: list[ScriptFragment] = field(default_factory=list)

    def load_document(self, html: str) -> None:
        self.document = html
        self.css = ""
        self.html = ""
        self.executed.clear()
        self.loads += 1

    def post_patch(self, css: str, html: str, scripts: list[str]) -> None:
        self.css = css
        self.html = html
        self.patches += 1
        for fragment in find_scripts(html):
            if fragment.key not in scripts or fragment.key in self.executed:
                continue
            self.executed.add(fragment.key)
            self.activated.append(fragment)


class RenderSurface:
    """The preview document as seen from the session."""

    def __init__(self, host: SurfaceHost) -> None:
        self.host = host
        self.last_patch: RenderPatch | None = None
        self.document = BLANK_DOCUMENT

    def reset(self) -> None:
        """Load the bootstrap page; its executed-script set starts empty."""
        self.last_patch = None
        self.document = BOOTSTRAP_DOCUMENT
        self.host.load_document(BOOTSTRAP_DOCUMENT)

    def clear(self) -> None:
        self.last_patch = None
        self.document = BLANK_DOCUMENT
        self.host.load_document(BLANK_DOCUMENT)

    def apply_patch(self, patch: RenderPatch) -> list[ScriptFragment]:
        """Replace the live stylesheet and markup.

        Returns the complete scripts of the patch; the page runs those it has
        not run yet.
        """
        scripts = find_scripts(patch.body_markup)
        self.host.post_patch(patch.style_text, patch.body_markup, [s.key for s in scripts])
        self.last_patch = patch
        if scripts:
            logger.debug(f"[LiveCanvas Surface] Patch carries {len(scripts)} complete script(s).")
        return scripts

    def commit(self, document: str) -> None:
        """Load the final document; it gets a fresh scope and runs its own scripts."""
        self.document = document
        self.host.load_document(document)
