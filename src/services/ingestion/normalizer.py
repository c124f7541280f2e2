"""Deterministic multi-pass HTML normalizer for wiki page bodies.

Reduces rendered page markup to the minimal structure worth embedding:

1. Drop subtrees with no retrieval value (scripts, styles, form controls,
   document metadata, frames and embedded media, decorative containers,
   hidden elements, comments).
2. Strip attributes, keeping only ``href`` on links (plus a ``target``
   annotation) and ``src``/``alt`` on kept images.
3. Canonicalize emphasis to ``<b>`` and ``<i>``.
4. Up to three passes, stopping early once a pass changes nothing: remove
   empty elements, drop wrappers holding a lone ``<br>``/``<hr>``, unwrap
   attribute-less ``div``/``span`` wrappers, flatten elements nested deeper
   than ``max_nesting_depth`` into plain text.
5. Remove line breaks that dangle before a block element or a closing tag.
6. Minify whitespace.

The transform makes no network calls and is idempotent for the markup it
produces, so ``normalize(normalize(x)) == normalize(x)``.
"""

from __future__ import annotations

import re

import structlog
from bs4 import BeautifulSoup, Comment, Declaration, Doctype, NavigableString, Tag
from bs4.element import ProcessingInstruction

from src.config.components import NormalizerOptions

logger = structlog.get_logger(logger_name=__name__)

_MAX_PASSES = 3

_REMOVED_SELECTORS: tuple[str, ...] = (
    # Scripting and styling
    "script", "noscript", "style", "link",
    # Form controls
    "form", "input", "textarea", "select", "option", "optgroup", "label",
    "fieldset", "legend", "datalist", "output", "progress", "meter", "button",
    # Document metadata
    "head", "meta", "title", "base",
    # Embedded frames and objects
    "object", "embed", "applet", "iframe", "frame", "frameset", "noframes",
    # Media without a text representation
    "audio", "video", "source", "track", "canvas", "svg", "math",
    # Decorative containers
    "footer", "header", "nav", "font", "div.footer", "div.header",
)

_IMAGE_SELECTORS: tuple[str, ...] = ("img", "picture", "figure", "figcaption")

_VOID_TAGS = frozenset({"br", "hr", "img", "input", "meta", "link"})
_MEANINGFUL_VOID_TAGS = ["img", "br", "hr"]
_LINE_BREAK_TAGS = frozenset({"br", "hr"})
_WRAPPER_TAGS = ["div", "span"]
_INLINE_PARENTS = frozenset({"p", "span", "i", "b", "em", "strong"})

_BLOCK_TAGS = frozenset(
    {
        "div", "p", "h1", "h2", "h3", "h4", "h5", "h6", "ul", "ol", "li",
        "blockquote", "pre", "table", "thead", "tbody", "tfoot", "tr", "td",
        "th", "article", "section", "aside", "header", "footer", "main", "nav",
        "figure", "figcaption",
    }
)

_HIDDEN_STYLE_RE = re.compile(r"display\s*:\s*none|visibility\s*:\s*hidden", re.IGNORECASE)
_REFRESH_RE = re.compile(r"^\s*refresh\s*$", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_BETWEEN_TAGS_RE = re.compile(r">\s+<")


class ContentNormalizer:
    """Pure markup-to-markup transform configured by :class:`NormalizerOptions`.

    Parameters
    ----------
    options:
        Media retention, nesting limit and link annotation.  Defaults apply
        when omitted.
    """

    def __init__(self, options: NormalizerOptions | None = None) -> None:
        self._options = options or NormalizerOptions()

    @property
    def options(self) -> NormalizerOptions:
        return self._options

    def normalize(self, markup: str) -> str:
        """Return the cleaned, minified form of *markup*."""
        if not markup or not markup.strip():
            return ""

        soup = BeautifulSoup(markup, "html.parser")

        self._warn_on_refresh(soup)
        self._remove_unwanted(soup)
        self._remove_hidden(soup)
        self._remove_non_content_nodes(soup)
        self._strip_attributes(soup)
        self._canonicalize_emphasis(soup)
        for name in ("html", "body"):
            for element in soup.find_all(name):
                element.unwrap()

        for _ in range(_MAX_PASSES):
            changed = self._remove_empty(soup)
            changed += self._remove_lone_line_break_wrappers(soup)
            changed += self._unwrap_wrappers(soup)
            changed += self._flatten_deep_nesting(soup)
            if not changed:
                break

        # Removing a break can empty its parent, which can leave another break dangling.
        while self._remove_dangling_breaks(soup):
            self._remove_empty(soup)

        return _minify(str(soup))

    # ------------------------------------------------------------------
    # Removal steps
    # ------------------------------------------------------------------

    def _warn_on_refresh(self, soup: BeautifulSoup) -> None:
        for meta in soup.find_all("meta"):
            if _REFRESH_RE.match(str(meta.get("http-equiv", ""))):
                logger.warning("refresh_directive_removed", content=meta.get("content"))

    def _remove_unwanted(self, soup: BeautifulSoup) -> None:
        selectors = list(_REMOVED_SELECTORS)
        if not self._options.keep_media:
            selectors.extend(_IMAGE_SELECTORS)
        for element in soup.select(", ".join(selectors)):
            element.extract()

    @staticmethod
    def _remove_hidden(soup: BeautifulSoup) -> None:
        for element in soup.find_all(True):
            if not _is_attached(element, soup):
                continue
            if element.has_attr("hidden") or _HIDDEN_STYLE_RE.search(str(element.get("style", ""))):
                element.extract()

    @staticmethod
    def _remove_non_content_nodes(soup: BeautifulSoup) -> None:
        for node in soup.find_all(
            string=lambda s: isinstance(s, (Comment, Doctype, Declaration, ProcessingInstruction))
        ):
            node.extract()

    # ------------------------------------------------------------------
    # Attribute and tag canonicalization
    # ------------------------------------------------------------------

    def _strip_attributes(self, soup: BeautifulSoup) -> None:
        for element in soup.find_all(True):
            attrs = element.attrs
            if element.name == "a":
                href = attrs.get("href")
                element.attrs = {}
                if href:
                    element.attrs["href"] = href
                    if self._options.link_target:
                        element.attrs["target"] = self._options.link_target
            elif element.name == "img" and self._options.keep_media:
                element.attrs = {k: attrs[k] for k in ("src", "alt") if k in attrs}
            else:
                element.attrs = {}

    @staticmethod
    def _canonicalize_emphasis(soup: BeautifulSoup) -> None:
        for element in soup.find_all(["strong", "b"]):
            element.name = "b"
        for element in soup.find_all(["em", "i"]):
            element.name = "i"

    # ------------------------------------------------------------------
    # Structural passes (each returns the number of changes made)
    # ------------------------------------------------------------------

    @staticmethod
    def _remove_empty(soup: BeautifulSoup) -> int:
        removed = 0
        # Deepest first, so a parent emptied by its children goes in the same sweep.
        for element in reversed(soup.find_all(True)):
            if element.name in _VOID_TAGS:
                continue
            if element.get_text().strip():
                continue
            if element.find(_MEANINGFUL_VOID_TAGS) is not None:
                continue
            element.extract()
            removed += 1
        return removed

    @staticmethod
    def _remove_lone_line_break_wrappers(soup: BeautifulSoup) -> int:
        removed = 0
        for element in reversed(soup.find_all(True)):
            if element.name in _VOID_TAGS or element.get_text().strip():
                continue
            children = element.find_all(True, recursive=False)
            if len(children) == 1 and children[0].name in _LINE_BREAK_TAGS:
                element.extract()
                removed += 1
        return removed

    @staticmethod
    def _unwrap_wrappers(soup: BeautifulSoup) -> int:
        unwrapped = 0
        for element in soup.find_all(_WRAPPER_TAGS):
            if element.attrs or not _is_attached(element, soup):
                continue
            if element.parent.name in _INLINE_PARENTS:
                continue
            element.unwrap()
            unwrapped += 1
        return unwrapped

    def _flatten_deep_nesting(self, soup: BeautifulSoup) -> int:
        flattened = 0
        limit = self._options.max_nesting_depth
        for element in soup.find_all(True):
            if not _is_attached(element, soup):
                continue
            if _depth(element) <= limit:
                continue
            text = _WHITESPACE_RE.sub(" ", element.get_text(" ")).strip()
            if text:
                element.replace_with(NavigableString(text))
            else:
                element.extract()
            flattened += 1
        return flattened

    @staticmethod
    def _remove_dangling_breaks(soup: BeautifulSoup) -> int:
        removed = 0
        for br in reversed(soup.find_all("br")):
            following = _next_meaningful_sibling(br)
            if following is None or (isinstance(following, Tag) and following.name in _BLOCK_TAGS):
                br.extract()
                removed += 1
        return removed


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _depth(element: Tag) -> int:
    """Number of element ancestors (the document root does not count)."""
    return sum(1 for parent in element.parents if not isinstance(parent, BeautifulSoup))


def _is_attached(element: Tag, soup: BeautifulSoup) -> bool:
    """True if *element* is still reachable from *soup*."""
    top = element
    while top.parent is not None:
        top = top.parent
    return top is soup


def _next_meaningful_sibling(element: Tag) -> Tag | NavigableString | None:
    for sibling in element.next_siblings:
        if isinstance(sibling, Tag):
            return sibling
        if isinstance(sibling, NavigableString) and sibling.strip():
            return sibling
    return None


def _minify(html: str) -> str:
    html = _WHITESPACE_RE.sub(" ", html)
    html = _BETWEEN_TAGS_RE.sub("><", html)
    return html.strip()
