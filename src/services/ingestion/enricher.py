"""Question generation for fragments.

For every fragment the question model is asked for the natural-language
questions a user might type to find it.  The requested count scales with
fragment length (one per ``chars_per_question`` characters) and is clamped
to ``[min_questions, max_questions]``.

Whatever goes wrong -- transport error, unparsable payload, no question
surviving validation -- the fragment text itself becomes its only
"question", so every fragment stays retrievable through the question
collection.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from src.config.components import EnricherConfig
from src.interfaces.llm_provider import ILLMProvider
from src.models.rag import EnrichmentResult
from src.utils.concurrency import throttled_gather

logger = structlog.get_logger(logger_name=__name__)

_MAX_RECOMMENDED_LENGTH = 200
_GENERIC_OPENINGS = ("what is this", "what does this", "tell me about this", "what is it")

_QUESTIONS_PROMPT = """\
You are an expert at inventing the questions a text answers.

Generate questions that users might ask to retrieve the information in ---TEXT---.

Question requirements:
- Generate {min_questions}-{target} natural language questions.
- Make the questions diverse: factual, conceptual, procedural and comparative.
- Use the wording users would actually type into a search box.
- Cover the key concepts, processes and details of the text.
- Questions must be specific enough to lead to this exact text; avoid generic \
questions that could apply to many documents.
{context_rules}
Return the questions in the JSON structure given by the response format.
"""

_CONTEXT_RULES = """\
- Read ---CONTEXT--- as well. If the text would be interesting when someone \
asks about that wider context, add questions phrased in that context.
"""

_QUESTIONS_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "questions": {
            "type": "array",
            "items": {"type": "string"},
        },
    },
    "required": ["questions"],
    "additionalProperties": False,
}


class Enricher:
    """Generates retrieval questions for fragments.

    Parameters
    ----------
    llm:
        Provider bound to the question model.
    config:
        Question-count bounds, validation, concurrency and pricing.
    """

    def __init__(self, llm: ILLMProvider, config: EnricherConfig | None = None) -> None:
        self._llm = llm
        self._config = config or EnricherConfig()

    def target_count(self, fragment_text: str) -> int:
        """Number of questions to request for a fragment of this length."""
        cfg = self._config
        return min(cfg.max_questions, max(cfg.min_questions, len(fragment_text) // cfg.chars_per_question))

    async def enrich(self, fragment_text: str, context: str | None = None) -> EnrichmentResult:
        """Return questions for *fragment_text*, falling back to the text itself."""
        if not fragment_text or not fragment_text.strip():
            return EnrichmentResult()

        cfg = self._config
        target = self.target_count(fragment_text)
        system_prompt = _QUESTIONS_PROMPT.format(
            min_questions=min(cfg.min_questions, target),
            target=target,
            context_rules=_CONTEXT_RULES if context else "",
        )
        user_content = f"---TEXT---\n{fragment_text}"
        if context:
            user_content += f"\n---CONTEXT---\n{context}"

        try:
            completion = await self._llm.complete_structured(
                system_prompt=system_prompt,
                user_content=user_content,
                json_schema=_QUESTIONS_SCHEMA,
                schema_name="questions_response",
                temperature=cfg.temperature,
                max_tokens=cfg.max_tokens,
            )
            questions = self._validate_questions(completion.data)
        except Exception as exc:  # noqa: BLE001
            logger.warning("enrichment_fallback", error=str(exc), fragment_chars=len(fragment_text))
            return self._fallback(fragment_text)

        for question in questions:
            issues = question_quality_issues(question)
            if issues:
                logger.debug("question_quality_issues", question=question, issues=issues)

        tokens = completion.total_tokens
        return EnrichmentResult(
            questions=questions,
            tokens_used=tokens,
            cost=tokens / 1_000_000 * cfg.price_per_million_tokens,
        )

    async def enrich_many(
        self,
        fragments: list[str],
        context: str | None = None,
        on_fragment_done: Callable[[int, int], Awaitable[None]] | None = None,
    ) -> list[EnrichmentResult]:
        """Enrich *fragments* concurrently, at most ``concurrency`` at a time.

        Results are positionally aligned with *fragments*.  One fragment's
        failure never affects its siblings.  *on_fragment_done* is awaited
        with ``(done, total)`` after each fragment finishes.
        """
        semaphore = asyncio.Semaphore(self._config.concurrency)
        total = len(fragments)
        done = 0

        async def _enrich_one(fragment: str) -> EnrichmentResult:
            nonlocal done
            result = await self.enrich(fragment, context)
            done += 1
            if on_fragment_done is not None:
                await on_fragment_done(done, total)
            return result

        raw = await throttled_gather(
            [_enrich_one(fragment) for fragment in fragments],
            semaphore=semaphore,
            return_exceptions=True,
        )
        results: list[EnrichmentResult] = []
        for fragment, outcome in zip(fragments, raw):
            if isinstance(outcome, BaseException):
                logger.warning("enrichment_fallback", error=str(outcome), fragment_chars=len(fragment))
                results.append(self._fallback(fragment))
            else:
                results.append(outcome)
        return results

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_questions(self, data: dict) -> list[str]:
        raw = data.get("questions")
        if not isinstance(raw, list):
            raise ValueError("response has no 'questions' array")
        questions = [
            q.strip()
            for q in raw
            if isinstance(q, str) and len(q.strip()) >= self._config.min_question_length
        ][: self._config.max_questions]
        if not questions:
            raise ValueError("no question passed validation")
        return questions

    @staticmethod
    def _fallback(fragment_text: str) -> EnrichmentResult:
        if not fragment_text.strip():
            return EnrichmentResult()
        return EnrichmentResult(questions=[fragment_text], used_fallback=True)


def question_quality_issues(question: str) -> list[str]:
    """Return soft quality warnings for a generated question (empty when fine)."""
    issues: list[str] = []
    if len(question) > _MAX_RECOMMENDED_LENGTH:
        issues.append("too_long")
    if not question.rstrip().endswith(("?", ".")):
        issues.append("missing_punctuation")
    if question.lower().startswith(_GENERIC_OPENINGS):
        issues.append("too_generic")
    return issues
