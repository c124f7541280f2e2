"""LLM provider adapters.

    - OpenAILLMProvider -- structured-output chat completions against the
      OpenAI API or any OpenAI-compatible endpoint.

The application builds one instance for the chunking model and one for the
question model, then hands them to the segmenter and the enricher.
"""

from src.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider"]
