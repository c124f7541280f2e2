"""LLM-assisted segmentation of cleaned page markup into fragments.

Short content becomes a single fragment without a model call.  Longer
content goes to the chunking model with a strict ``{"chunks": [...]}``
schema; if that call fails or returns nothing usable, a deterministic
splitter takes over:

1. Split on blank lines into paragraphs.
2. Pack paragraphs (joined by a blank line) while the character budget
   allows.
3. A paragraph that alone exceeds the budget is packed sentence by
   sentence instead; a single sentence over the budget is kept whole.

The fallback always terminates and never drops text: concatenating its
fragments reproduces the input paragraphs in order, modulo whitespace.
"""

from __future__ import annotations

import html
import re

import structlog

from src.config.components import SegmenterConfig
from src.interfaces.llm_provider import ILLMProvider
from src.models.rag import SegmentationResult
from src.utils.text import split_paragraphs, split_sentences

logger = structlog.get_logger(logger_name=__name__)

_NON_WHITESPACE_RE = re.compile(r"\s+")

# Share of the input's non-whitespace characters the model's fragments must
# cover before a coverage warning is logged.
_MIN_COVERAGE = 0.9

_CHUNKING_PROMPT = """\
You are an expert assistant specializing in high-quality text chunking for \
Retrieval-Augmented Generation (RAG) systems.

Your task is to analyze the provided content and split it into meaningful, \
logically connected chunks suitable for indexing and retrieval.

Chunk requirements:
- No chunk may exceed {chars_limit} characters.
- Each chunk must preserve the original text exactly, with no omissions, \
reductions or paraphrasing.
- Preserve all formatting and markup.
- Each chunk must be cohesive and self-contained: it should make sense on its own.
- Chunk boundaries should follow the logical flow of the original content.

Do not lose anything from the content. Before answering:
- Break the content into chunks.
- Check that the entire content appears in the chunks; add anything missing.
- Return the chunks, in order, in the JSON structure given by the response format.
"""

_CHUNKS_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "chunks": {
            "type": "array",
            "description": "Ordered chunks; each is a significant, self-contained part of the text.",
            "items": {"type": "string"},
        },
    },
    "required": ["chunks"],
    "additionalProperties": False,
}


class Segmenter:
    """Splits cleaned markup into ordered, self-contained fragments.

    Parameters
    ----------
    llm:
        Provider bound to the chunking model.
    config:
        Character budget, sampling parameters and pricing.
    """

    def __init__(self, llm: ILLMProvider, config: SegmenterConfig | None = None) -> None:
        self._llm = llm
        self._config = config or SegmenterConfig()
        self._system_prompt = _CHUNKING_PROMPT.format(chars_limit=self._config.chars_limit)

    async def segment(self, cleaned_markup: str) -> SegmentationResult:
        """Return the fragments of *cleaned_markup* with token usage and cost."""
        if not cleaned_markup or not cleaned_markup.strip():
            return SegmentationResult()

        if len(cleaned_markup) < self._config.chars_limit:
            return SegmentationResult(fragments=[cleaned_markup.strip()])

        try:
            completion = await self._llm.complete_structured(
                system_prompt=self._system_prompt,
                user_content=cleaned_markup,
                json_schema=_CHUNKS_SCHEMA,
                schema_name="chunk_response",
                temperature=self._config.temperature,
                max_tokens=self._config.max_tokens,
            )
            fragments = self._validate_chunks(completion.data)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "segmentation_fallback",
                error=str(exc),
                content_chars=len(cleaned_markup),
            )
            return SegmentationResult(
                fragments=self.fallback_split(cleaned_markup),
                used_fallback=True,
            )

        self._check_coverage(cleaned_markup, fragments)
        tokens = completion.total_tokens
        logger.info(
            "segmentation_complete",
            fragments=len(fragments),
            tokens=tokens,
            content_chars=len(cleaned_markup),
        )
        return SegmentationResult(
            fragments=fragments,
            tokens_used=tokens,
            cost=tokens / 1_000_000 * self._config.price_per_million_tokens,
        )

    def fallback_split(self, text: str) -> list[str]:
        """Deterministically split *text* on paragraph, then sentence, boundaries."""
        limit = self._config.chars_limit
        fragments: list[str] = []
        current = ""

        for paragraph in split_paragraphs(text):
            joined = len(current) + 2 + len(paragraph) if current else len(paragraph)
            if joined <= limit:
                current = f"{current}\n\n{paragraph}" if current else paragraph
                continue

            if current:
                fragments.append(current)
                current = ""

            if len(paragraph) <= limit:
                current = paragraph
            else:
                fragments.extend(self._pack_sentences(paragraph, limit))

        if current:
            fragments.append(current)
        return fragments

    @staticmethod
    def add_provenance(fragment: str, title: str, url: str) -> str:
        """Prefix *fragment* with a ``<source>`` header naming its page."""
        header = (
            f'<source title="{html.escape(title, quote=True)}" '
            f'url="{html.escape(url, quote=True)}" />'
        )
        return f"{header}\n\n{fragment}"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _pack_sentences(paragraph: str, limit: int) -> list[str]:
        packed: list[str] = []
        current = ""
        for sentence in split_sentences(paragraph):
            joined = len(current) + 1 + len(sentence) if current else len(sentence)
            if joined <= limit:
                current = f"{current} {sentence}" if current else sentence
                continue
            if current:
                packed.append(current)
            current = sentence
        if current:
            packed.append(current)
        return packed

    @staticmethod
    def _validate_chunks(data: dict) -> list[str]:
        chunks = data.get("chunks")
        if not isinstance(chunks, list):
            raise ValueError("response has no 'chunks' array")
        fragments = [c.strip() for c in chunks if isinstance(c, str) and c.strip()]
        if not fragments:
            raise ValueError("response contained no non-empty chunks")
        return fragments

    @staticmethod
    def _check_coverage(source: str, fragments: list[str]) -> None:
        expected = len(_NON_WHITESPACE_RE.sub("", source))
        covered = sum(len(_NON_WHITESPACE_RE.sub("", f)) for f in fragments)
        if expected and covered / expected < _MIN_COVERAGE:
            logger.warning(
                "segmentation_coverage_low",
                expected_chars=expected,
                covered_chars=covered,
            )
