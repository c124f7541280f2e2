"""Plain-text helpers shared by the segmenter, enricher and embedding batcher.

- :func:`html_to_text` -- flatten cleaned markup into the whitespace-collapsed
  text that is embedded for each fragment.
- :func:`estimate_tokens` -- cheap character-based token estimate used to
  pack embedding requests.
- :func:`split_paragraphs` / :func:`split_sentences` -- boundary detection
  for the deterministic fallback splitter.
"""

from __future__ import annotations

import math
import re

from bs4 import BeautifulSoup

_WHITESPACE_RE = re.compile(r"\s+")
_BLANK_LINE_RE = re.compile(r"\n\s*\n")
_SENTENCE_END_RE = re.compile(r"[.!?](?:\s|$)")

# Common abbreviations that should NOT trigger a sentence split.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "Vol",
        "No",
        "vs",
        "etc",
        "approx",
        "dept",
        "inc",
        "ltd",
        "e.g",
        "i.e",
    }
)

_ABBREVIATION_RE = re.compile(
    r"\b(?:"
    + "|".join(re.escape(a) for a in sorted(_ABBREVIATIONS, key=len, reverse=True))
    + r")\."
)


def html_to_text(markup: str) -> str:
    """Return the visible text of *markup* with whitespace collapsed."""
    if not markup:
        return ""
    text = BeautifulSoup(markup, "html.parser").get_text(" ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def estimate_tokens(text: str, chars_per_token: int = 4) -> int:
    """Approximate the token count of *text* (at least 1 for non-empty input)."""
    if not text:
        return 0
    return max(1, math.ceil(len(text) / chars_per_token))


def split_paragraphs(text: str) -> list[str]:
    """Split *text* on blank lines, dropping whitespace-only paragraphs."""
    return [p.strip() for p in _BLANK_LINE_RE.split(text) if p.strip()]


def split_sentences(text: str) -> list[str]:
    """Split *text* at sentence boundaries while respecting abbreviations.

    Handles ``.``, ``!``, ``?`` followed by whitespace or end-of-string.
    Periods after known abbreviations are masked with ``\\x00`` (same length,
    so indices stay aligned with the original text) before matching.  An
    abbreviation only counts as a whole word, so "devs." still ends a sentence.
    """
    masked = _ABBREVIATION_RE.sub(lambda m: m.group(0)[:-1] + "\x00", text)

    sentences: list[str] = []
    last = 0
    for match in _SENTENCE_END_RE.finditer(masked):
        end = match.end()
        sentence = text[last:end].strip()
        if sentence:
            sentences.append(sentence)
        last = end

    remainder = text[last:].strip()
    if remainder:
        sentences.append(remainder)

    return sentences if sentences else [text.strip()]
