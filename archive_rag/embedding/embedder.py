"""
Embedding Client
-----------------
Wraps the OpenAI embeddings API (text-embedding-3-small by default).
OpenRouter exposes the same API, so the provider toggle only changes the
base URL and the key.

  - Inputs longer than the model's context are truncated with tiktoken
  - Vectors are L2-normalised so inner product == cosine similarity
  - Every SDK or response-shape failure becomes an EmbeddingError
  - LangSmith traces each call when credentials are configured
"""
from __future__ import annotations

import time
from functools import lru_cache
from typing import Optional

import numpy as np
import tiktoken
from langsmith import traceable
from loguru import logger
from openai import OpenAI, OpenAIError

from archive_rag.config import OPENROUTER_BASE_URL, Settings
from archive_rag.errors import EmbeddingError
from archive_rag.utils.retry import RetryPolicy

MODEL = "text-embedding-3-small"
DIMENSIONS = 1536
MAX_INPUT_TOKENS = 8191


@lru_cache(maxsize=1)
def _encoding() -> tiktoken.Encoding:
    return tiktoken.get_encoding("cl100k_base")


def truncate_to_tokens(text: str, max_tokens: int = MAX_INPUT_TOKENS) -> str:
    """
    Cut text down to `max_tokens` cl100k tokens; shorter text is returned as-is.

    Special-token markers such as <|endoftext|> are counted as ordinary text.
    """
    encoding = _encoding()
    tokens = encoding.encode(text, disallowed_special=())
    if len(tokens) <= max_tokens:
        return text
    return encoding.decode(tokens[:max_tokens])


class Embedder:
    """
    Text -> fixed-length unit vector.

    The OpenAI client is injected (or built once by build_embedder) so a
    process shares a single connection pool and tests can pass a mock.
    """

    def __init__(
        self,
        client: OpenAI,
        model: str = MODEL,
        dimensions: int = DIMENSIONS,
        max_input_tokens: int = MAX_INPUT_TOKENS,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._client = client
        self.model = model
        self.dimensions = dimensions
        self.max_input_tokens = max_input_tokens
        self.retry_policy = retry_policy or RetryPolicy.no_retry()
        self.total_tokens_used: int = 0
        self.total_api_calls: int = 0

    @traceable(name="embed_text", run_type="embedding")
    def embed_text(self, text: str) -> np.ndarray:
        """Return a (dimensions,) float32 unit vector for `text`."""
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")

        try:
            safe_text = truncate_to_tokens(text, self.max_input_tokens)
            vector = self.retry_policy.call(self._embed_once, safe_text)
        except EmbeddingError:
            raise
        except OpenAIError as exc:
            raise EmbeddingError(f"Embedding API call failed: {exc}") from exc
        except (ValueError, TypeError, IndexError, AttributeError) as exc:
            raise EmbeddingError(f"Malformed embedding input or response: {exc}") from exc

        if vector.ndim != 1 or vector.shape[0] != self.dimensions:
            raise EmbeddingError(
                f"Embedding has shape {vector.shape}, expected ({self.dimensions},)"
            )

        norm = np.linalg.norm(vector)
        return vector / norm if norm > 0 else vector

    def _embed_once(self, text: str) -> np.ndarray:
        start = time.perf_counter()
        response = self._client.embeddings.create(model=self.model, input=text)
        elapsed = time.perf_counter() - start

        if not getattr(response, "data", None):
            raise EmbeddingError("Embedding API returned no data")

        self.total_api_calls += 1
        usage = getattr(response, "usage", None)
        tokens = getattr(usage, "total_tokens", 0) or 0
        self.total_tokens_used += tokens
        logger.debug(f"[Embedder] API call: {tokens} tokens, {elapsed:.2f}s")
        return np.asarray(response.data[0].embedding, dtype=np.float32)

    def embed_query(self, text: str) -> np.ndarray:
        return self.embed_text(text)

    def usage_summary(self) -> dict:
        return {
            "model": self.model,
            "total_api_calls": self.total_api_calls,
            "total_tokens_used": self.total_tokens_used,
            # text-embedding-3-small: $0.020 per million tokens
            "estimated_cost_usd": round(self.total_tokens_used / 1_000_000 * 0.020, 6),
        }


def build_embedder(settings: Settings) -> Embedder:
    """Construct the process-wide embedder for the configured provider."""
    provider = settings.embedding.provider
    kwargs: dict = {"api_key": settings.api_key_for(provider)}
    if provider == "openrouter":
        kwargs["base_url"] = OPENROUTER_BASE_URL

    retry = settings.retry
    return Embedder(
        client=OpenAI(**kwargs),
        model=settings.embedding.model,
        dimensions=settings.embedding.dimensions,
        max_input_tokens=settings.embedding.max_input_tokens,
        retry_policy=RetryPolicy(
            max_attempts=retry.embedding_attempts,
            initial_wait_s=retry.initial_wait_s,
            max_wait_s=retry.max_wait_s,
            retry_on=(OpenAIError,),
        ),
    )
