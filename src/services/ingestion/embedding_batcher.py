"""Token-budgeted, order-preserving embedding of text batches.

Inputs are packed greedily into request groups whose estimated token total
stays within ``max_tokens_per_request`` (and whose size stays within
``max_items_per_request``).  An input that exceeds the budget on its own is
sent alone rather than dropped.

A failed group marks each of its indices as failed and leaves ``None`` in
their slots; other groups are unaffected and nothing is retried here.
Empty strings are never sent and are reported as failed.  A short delay
separates consecutive requests.
"""

from __future__ import annotations

import asyncio

import structlog

from src.config.components import EmbeddingBatcherConfig
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.rag import EmbeddingBatchResult
from src.utils.errors import EmbeddingError
from src.utils.text import estimate_tokens

logger = structlog.get_logger(logger_name=__name__)


class EmbeddingBatcher:
    """Converts lists of strings into vectors in token-budgeted groups.

    Parameters
    ----------
    provider:
        Embedding service; called once per group.
    config:
        Request budget, item cap, token estimate, delay and pricing.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        config: EmbeddingBatcherConfig | None = None,
    ) -> None:
        self._provider = provider
        self._config = config or EmbeddingBatcherConfig()

    @property
    def dimension(self) -> int:
        return self._provider.get_dimension()

    def plan_groups(self, texts: list[str]) -> list[list[int]]:
        """Return request groups as lists of input indices, in input order.

        Empty or whitespace-only inputs are left out of every group.
        """
        cfg = self._config
        groups: list[list[int]] = []
        current: list[int] = []
        current_tokens = 0

        for index, text in enumerate(texts):
            if not text or not text.strip():
                continue
            tokens = estimate_tokens(text, cfg.chars_per_token)
            if current and (
                current_tokens + tokens > cfg.max_tokens_per_request
                or len(current) >= cfg.max_items_per_request
            ):
                groups.append(current)
                current, current_tokens = [], 0
            current.append(index)
            current_tokens += tokens

        if current:
            groups.append(current)
        return groups

    async def embed_batch(self, texts: list[str]) -> EmbeddingBatchResult:
        """Embed *texts*; ``vectors[i]`` is ``None`` exactly for failed inputs."""
        if not texts:
            return EmbeddingBatchResult()

        vectors: list[list[float] | None] = [None] * len(texts)
        tokens_used = 0
        groups = self.plan_groups(texts)

        for position, group in enumerate(groups):
            if position > 0 and self._config.inter_batch_delay_seconds > 0:
                await asyncio.sleep(self._config.inter_batch_delay_seconds)
            try:
                response = await self._provider.embed([texts[i] for i in group])
                if len(response.vectors) != len(group):
                    raise EmbeddingError(
                        message=f"Expected {len(group)} vectors, got {len(response.vectors)}",
                        provider_name=self._provider.get_provider_name(),
                    )
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "embedding_group_failed",
                    group=position,
                    group_size=len(group),
                    error=str(exc),
                )
                continue
            for index, vector in zip(group, response.vectors):
                vectors[index] = vector
            tokens_used += response.total_tokens

        failed = [i for i, vector in enumerate(vectors) if vector is None]
        result = EmbeddingBatchResult(
            vectors=vectors,
            failed_indices=failed,
            tokens_used=tokens_used,
            cost=self._cost(tokens_used),
        )
        logger.info(
            "embedding_batch_complete",
            inputs=len(texts),
            groups=len(groups),
            failed=len(failed),
            tokens=tokens_used,
        )
        return result

    async def embed_query(self, text: str) -> EmbeddingBatchResult:
        """Embed a single query string.

        Raises
        ------
        src.utils.errors.EmbeddingError
            If the query is empty or the request fails; a query has no
            partial result to fall back on.
        """
        if not text or not text.strip():
            raise EmbeddingError(message="Cannot embed an empty query")
        response = await self._provider.embed([text])
        if len(response.vectors) != 1:
            raise EmbeddingError(
                message=f"Expected 1 vector, got {len(response.vectors)}",
                provider_name=self._provider.get_provider_name(),
            )
        return EmbeddingBatchResult(
            vectors=[response.vectors[0]],
            tokens_used=response.total_tokens,
            cost=self._cost(response.total_tokens),
        )

    def _cost(self, tokens: int) -> float:
        return tokens / 1_000_000 * self._config.price_per_million_tokens
