"""Abstract base class for LLM service providers.

The segmenter and the enricher only ever need one kind of call: a chat
completion constrained to a JSON schema, returned as a parsed object.
Implementations wrap a concrete chat API and translate its failures into
:class:`~src.utils.errors.LLMError`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.rag import StructuredCompletion


# Concrete implementations: OpenAILLMProvider
# Located in: src/providers/llm/
class ILLMProvider(ABC):
    """Contract for structured-output chat completions."""

    @abstractmethod
    async def complete_structured(
        self,
        system_prompt: str,
        user_content: str,
        json_schema: dict[str, Any],
        schema_name: str,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> StructuredCompletion:
        """Generate a completion that must parse as an object matching *json_schema*.

        Parameters
        ----------
        system_prompt:
            Instructions that set the model's task.
        user_content:
            The content the instructions apply to.
        json_schema:
            JSON schema the response object must follow.
        schema_name:
            Name attached to the schema in the request.
        temperature:
            Sampling temperature.
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        StructuredCompletion
            The parsed object and the request's total token usage.

        Raises
        ------
        src.utils.errors.LLMError
            If the call fails or the response is not a JSON object.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai-gpt-4.1"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider has the credentials it needs."""
