"""Unit tests for Enricher — question counts, validation, fallback, concurrency."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from src.config.components import EnricherConfig
from src.models.rag import StructuredCompletion
from src.services.ingestion.enricher import Enricher, question_quality_issues
from tests.conftest import ScriptedLLMProvider


class TestTargetCount:
    @pytest.mark.parametrize(
        ("length", "expected"),
        [(50, 3), (299, 3), (500, 5), (1500, 15), (5000, 20)],
    )
    def test_scales_with_length_and_clamps(self, length: int, expected: int) -> None:
        enricher = Enricher(ScriptedLLMProvider())
        assert enricher.target_count("x" * length) == expected


class TestEnrich:
    @pytest.mark.asyncio
    async def test_returns_validated_questions(self) -> None:
        llm = ScriptedLLMProvider(
            payloads={
                "questions_response": {
                    "questions": [
                        "  How do I rotate the API keys?  ",
                        "short?",
                        "",
                        42,
                        "Where are the rotation logs stored?",
                    ]
                }
            },
            tokens_per_call=300,
        )
        result = await Enricher(llm).enrich("Rotate keys every 90 days using the vault CLI.")

        assert result.questions == [
            "How do I rotate the API keys?",
            "Where are the rotation logs stored?",
        ]
        assert result.used_fallback is False
        assert result.tokens_used == 300
        assert result.cost == pytest.approx(300 / 1_000_000 * 0.15)

    @pytest.mark.asyncio
    async def test_caps_at_max_questions(self) -> None:
        many = [f"Question number {i} about the text?" for i in range(30)]
        llm = ScriptedLLMProvider(payloads={"questions_response": {"questions": many}})
        result = await Enricher(llm).enrich("x" * 3000)
        assert len(result.questions) == 20
        assert result.questions == many[:20]

    @pytest.mark.asyncio
    async def test_request_shape_with_context(self) -> None:
        llm = ScriptedLLMProvider()
        await Enricher(llm).enrich("Fragment body text.", context="Page: Runbook")

        call = llm.calls[0]
        assert call["schema_name"] == "questions_response"
        assert call["user_content"] == "---TEXT---\nFragment body text.\n---CONTEXT---\nPage: Runbook"
        assert "---CONTEXT---" in call["system_prompt"]
        assert call["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_request_without_context(self) -> None:
        llm = ScriptedLLMProvider()
        await Enricher(llm).enrich("Fragment body text.")
        assert llm.calls[0]["user_content"] == "---TEXT---\nFragment body text."
        assert "---CONTEXT---" not in llm.calls[0]["system_prompt"]

    @pytest.mark.asyncio
    async def test_llm_failure_falls_back_to_fragment_text(self) -> None:
        result = await Enricher(ScriptedLLMProvider(fail=True)).enrich("The fragment itself.")
        assert result.questions == ["The fragment itself."]
        assert result.used_fallback is True
        assert result.tokens_used == 0

    @pytest.mark.asyncio
    async def test_no_valid_question_falls_back(self) -> None:
        llm = ScriptedLLMProvider(payloads={"questions_response": {"questions": ["tiny", " "]}})
        result = await Enricher(llm).enrich("The fragment itself.")
        assert result.questions == ["The fragment itself."]
        assert result.used_fallback is True

    @pytest.mark.asyncio
    async def test_empty_fragment_has_no_questions(self) -> None:
        llm = ScriptedLLMProvider()
        result = await Enricher(llm).enrich("  ")
        assert result.questions == []
        assert llm.calls == []


class _SlowLLM(ScriptedLLMProvider):
    def __init__(self) -> None:
        super().__init__()
        self.running = 0
        self.peak = 0

    async def complete_structured(self, *args: Any, **kwargs: Any) -> StructuredCompletion:
        self.running += 1
        self.peak = max(self.peak, self.running)
        await asyncio.sleep(0.01)
        self.running -= 1
        return await super().complete_structured(*args, **kwargs)


class TestEnrichMany:
    @pytest.mark.asyncio
    async def test_concurrency_capped_and_order_preserved(self) -> None:
        llm = _SlowLLM()
        enricher = Enricher(llm, EnricherConfig(concurrency=2))
        fragments = [f"Fragment number {i} text body." for i in range(6)]

        results = await enricher.enrich_many(fragments)

        assert len(results) == 6
        assert llm.peak <= 2
        for fragment, result in zip(fragments, results):
            assert fragment.split()[2] in result.questions[0]

    @pytest.mark.asyncio
    async def test_progress_callback_counts_up(self) -> None:
        seen: list[tuple[int, int]] = []

        async def _on_done(done: int, total: int) -> None:
            seen.append((done, total))

        await Enricher(ScriptedLLMProvider()).enrich_many(
            ["first fragment text", "second fragment text", "third fragment text"],
            on_fragment_done=_on_done,
        )
        assert sorted(seen) == [(1, 3), (2, 3), (3, 3)]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_siblings(self) -> None:
        llm = ScriptedLLMProvider()
        original = llm.complete_structured

        async def _flaky(*args: Any, **kwargs: Any) -> StructuredCompletion:
            if "poison" in kwargs["user_content"]:
                raise RuntimeError("unexpected")
            return await original(*args, **kwargs)

        llm.complete_structured = _flaky  # type: ignore[method-assign]
        results = await Enricher(llm).enrich_many(["healthy fragment text", "poison fragment"])

        assert results[0].used_fallback is False
        assert results[1].used_fallback is True
        assert results[1].questions == ["poison fragment"]


class TestQuestionQuality:
    def test_good_question(self) -> None:
        assert question_quality_issues("How do I reset my VPN token?") == []

    def test_flags(self) -> None:
        assert "missing_punctuation" in question_quality_issues("How do I reset my token")
        assert "too_generic" in question_quality_issues("What is this about?")
        assert "too_long" in question_quality_issues("Why " + "x" * 250 + "?")
