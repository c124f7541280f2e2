"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
Every call uses a strict ``json_schema`` response format so the model's
reply can be parsed straight into a dict.  When a custom ``base_url`` is
configured, the client points at that OpenAI-compatible endpoint instead.

One instance serves one model: the application builds one for the
chunking model and one for the question model.
"""

from __future__ import annotations

import json
from typing import Any

import openai
import structlog

from src.config.components import LLMConfig
from src.interfaces.llm_provider import ILLMProvider
from src.models.rag import StructuredCompletion
from src.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)


class OpenAILLMProvider(ILLMProvider):
    """Structured-output chat completions backed by an OpenAI-compatible API."""

    def __init__(self, config: LLMConfig, model: str) -> None:
        self._api_key = config.api_key
        self._model = model

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(config.timeout_seconds, connect=5.0),
        }
        if config.base_url:
            client_kwargs["base_url"] = config.base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._provider_label = "openai-compatible" if config.base_url else "openai"

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete_structured(
        self,
        system_prompt: str,
        user_content: str,
        json_schema: dict[str, Any],
        schema_name: str,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> StructuredCompletion:
        """Run one chat completion constrained to *json_schema* and parse it."""
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": schema_name,
                        "schema": json_schema,
                        "strict": True,
                    },
                },
            )
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=f"{self._provider_label} request timed out",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
            )

        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise LLMError(
                message=f"{self._provider_label} returned invalid JSON: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        if not isinstance(data, dict):
            raise LLMError(
                message=f"{self._provider_label} returned {type(data).__name__}, expected object",
                provider_name=self.get_provider_name(),
            )

        tokens = response.usage.total_tokens if response.usage else 0
        logger.info(
            "openai_structured_completion",
            model=self._model,
            provider=self._provider_label,
            schema=schema_name,
            tokens=tokens,
        )
        return StructuredCompletion(data=data, total_tokens=tokens, model=self._model)

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured (doesn't verify it works)."""
        return bool(self._api_key)

    def get_provider_name(self) -> str:
        return f"{self._provider_label}-{self._model}"
