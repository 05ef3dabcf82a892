"""
Answer Generator
-----------------
Two generator implementations with an identical generate() interface:

  OpenAIGenerator    -- OpenAI chat completions, or OpenRouter through the
                        same SDK with a different base URL
  AnthropicGenerator -- Anthropic messages API

Both take the query plus a context string built by build_context(), which
numbers the retrieved matches [1]..[N] in rank order alongside a source
list with the same numbering, so [n] in the answer maps to sources[n-1].
Any client failure or empty completion raises GenerationError.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from langsmith import traceable
from loguru import logger

from archive_rag.config import OPENROUTER_BASE_URL, Settings
from archive_rag.errors import GenerationError
from archive_rag.generation.prompts import (
    CONTEXT_TEMPLATE,
    DEFAULT_COLLECTION,
    SYSTEM_PROMPT,
)
from archive_rag.schemas import RetrievalMatch, SourceRef
from archive_rag.utils.retry import RetryPolicy


# ---------------------------------------------------------------------------
# Response schema
# ---------------------------------------------------------------------------

@dataclass
class RAGResponse:
    """Result of a single generation call (provider-agnostic)."""

    answer: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


# ---------------------------------------------------------------------------
# Shared context builder
# ---------------------------------------------------------------------------

def build_context(matches: Sequence[RetrievalMatch]) -> tuple[str, list[SourceRef]]:
    """
    Number each match [1]..[N] in rank order and build the parallel
    source list.

    Returns (context_string, sources).
    """
    context_parts: list[str] = []
    sources: list[SourceRef] = []

    for i, match in enumerate(matches, start=1):
        context_parts.append(
            CONTEXT_TEMPLATE.format(
                index=i,
                document=match.source,
                chunk=match.metadata.get("chunk", "?"),
                text=match.text,
            )
        )
        sources.append(
            SourceRef(
                index=i,
                document=match.source,
                score=match.score,
                url=match.metadata.get("url") or None,
                chunk_id=match.id,
            )
        )

    return "\n\n".join(context_parts), sources


def build_system_prompt(context: str, collection: str = DEFAULT_COLLECTION) -> str:
    return SYSTEM_PROMPT.format(collection=collection, context=context)


# ---------------------------------------------------------------------------
# OpenAI / OpenRouter Generator
# ---------------------------------------------------------------------------

class OpenAIGenerator:
    """Grounded answer synthesis through the OpenAI chat completions API."""

    def __init__(
        self,
        client,
        model: str = "gpt-4o-mini",
        max_tokens: int = 1024,
        temperature: float = 0.1,
        collection: str = DEFAULT_COLLECTION,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._client = client
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.collection = collection
        self.retry_policy = retry_policy or RetryPolicy.no_retry()

    @traceable(name="generate_openai", run_type="llm")
    def generate(self, query: str, context: str) -> RAGResponse:
        system_message = build_system_prompt(context, self.collection)
        logger.debug(f"[OpenAIGenerator] {self.model} | query={query[:60]!r}")

        try:
            response = self.retry_policy.call(
                self._client.chat.completions.create,
                model=self.model,
                messages=[
                    {"role": "system", "content": system_message},
                    {"role": "user", "content": query},
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as exc:
            raise GenerationError(f"Chat completion failed: {exc}") from exc

        if not getattr(response, "choices", None):
            raise GenerationError("Chat completion returned no choices")
        answer = response.choices[0].message.content
        if not answer:
            raise GenerationError("Chat completion returned an empty message")

        usage = getattr(response, "usage", None)
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0
        logger.info(
            f"[OpenAIGenerator] Done | prompt={prompt_tokens} completion={completion_tokens}"
        )
        return RAGResponse(
            answer=answer,
            model=self.model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )


# ---------------------------------------------------------------------------
# Anthropic Generator
# ---------------------------------------------------------------------------

class AnthropicGenerator:
    """
    Grounded answer synthesis through Anthropic Claude models.

    The Anthropic SDK takes the system prompt as a separate `system`
    parameter rather than a message.
    """

    def __init__(
        self,
        client,
        model: str = "claude-haiku-4-5-20251001",
        max_tokens: int = 1024,
        temperature: float = 0.1,
        collection: str = DEFAULT_COLLECTION,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._client = client
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.collection = collection
        self.retry_policy = retry_policy or RetryPolicy.no_retry()

    @traceable(name="generate_anthropic", run_type="llm")
    def generate(self, query: str, context: str) -> RAGResponse:
        system_message = build_system_prompt(context, self.collection)
        logger.debug(f"[AnthropicGenerator] {self.model} | query={query[:60]!r}")

        try:
            response = self.retry_policy.call(
                self._client.messages.create,
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system_message,
                messages=[{"role": "user", "content": query}],
            )
        except Exception as exc:
            raise GenerationError(f"Anthropic message call failed: {exc}") from exc

        answer = response.content[0].text if response.content else ""
        if not answer:
            raise GenerationError("Anthropic response had no text content")

        logger.info(
            f"[AnthropicGenerator] Done | input={response.usage.input_tokens} "
            f"output={response.usage.output_tokens}"
        )
        return RAGResponse(
            answer=answer,
            model=self.model,
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def build_generator(settings: Settings):
    """Construct the process-wide generator for the configured provider."""
    gen = settings.generation
    collection = gen.collection
    retry = RetryPolicy(
        max_attempts=settings.retry.generation_attempts,
        initial_wait_s=settings.retry.initial_wait_s,
        max_wait_s=settings.retry.max_wait_s,
    )
    api_key = settings.api_key_for(gen.provider)

    if gen.provider == "anthropic":
        from anthropic import Anthropic  # lazy import
        client = Anthropic(api_key=api_key)
        return AnthropicGenerator(
            client, gen.model, gen.max_tokens, gen.temperature, collection, retry
        )

    from openai import OpenAI  # lazy import
    if gen.provider == "openrouter":
        client = OpenAI(
            api_key=api_key,
            base_url=OPENROUTER_BASE_URL,
            default_headers={"X-Title": settings.project_name},
        )
    else:
        client = OpenAI(api_key=api_key)
    return OpenAIGenerator(client, gen.model, gen.max_tokens, gen.temperature, collection, retry)
