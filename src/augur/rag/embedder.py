"""Embedding client - text to vectors via an OpenAI-compatible API.

Texts are sent in fixed-size batches and the output preserves input order.
A failed batch aborts the whole call; callers retry the whole document so no
partially embedded state ever reaches the index.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog
from openai import APIConnectionError, APIError, APITimeoutError, AsyncOpenAI

from augur.errors import EmbeddingError
from augur.utils.resilience import (
    EMBEDDING_RETRY,
    TRANSIENT_ERRORS,
    RetryConfig,
    call_with_retry,
    with_timeout,
)

if TYPE_CHECKING:
    from augur.config import Settings

log = structlog.get_logger()


class Embedder(Protocol):
    """Anything that can turn text into vectors."""

    async def embed_query(self, text: str) -> list[float]: ...

    async def embed_many(self, texts: list[str]) -> list[list[float]]: ...


class EmbeddingClient:
    """Batched embedding calls against the configured embedding model."""

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str,
        dimensions: int | None = None,
        batch_size: int = 10,
        timeout: float = 20.0,
        retry_config: RetryConfig = EMBEDDING_RETRY,
    ) -> None:
        self._client = client
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.timeout = timeout
        self._retry = RetryConfig(
            max_attempts=retry_config.max_attempts,
            base_delay=retry_config.base_delay,
            max_delay=retry_config.max_delay,
            retryable_exceptions=(*TRANSIENT_ERRORS, APIConnectionError, APITimeoutError),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> EmbeddingClient:
        client = AsyncOpenAI(
            api_key=settings.openai_api_key.get_secret_value() or None,
            base_url=settings.openai_base_url,
            max_retries=0,
        )
        return cls(
            client,
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
            batch_size=settings.embedding_batch_size,
            timeout=settings.embedding_timeout,
        )

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        async def request() -> list[list[float]]:
            kwargs: dict[str, object] = {"model": self.model, "input": batch}
            if self.dimensions:
                kwargs["dimensions"] = self.dimensions
            response = await with_timeout(
                self._client.embeddings.create(**kwargs),  # type: ignore[arg-type]
                self.timeout,
                "embedding",
            )
            ordered = sorted(response.data, key=lambda item: item.index)
            return [item.embedding for item in ordered]

        return await call_with_retry(request, self._retry, "embedding")

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed ``texts`` in order, batch by batch.

        Raises:
            EmbeddingError: If any batch fails; nothing partial is returned.
        """
        vectors: list[list[float]] = []
        for offset in range(0, len(texts), self.batch_size):
            batch = texts[offset : offset + self.batch_size]
            try:
                embedded = await self._embed_batch(batch)
            except (APIError, *TRANSIENT_ERRORS) as e:
                raise EmbeddingError(
                    f"Embedding batch failed: {e}",
                    details={"batch_offset": offset, "batch_size": len(batch)},
                ) from e
            if len(embedded) != len(batch):
                raise EmbeddingError(
                    "Embedding API returned a mismatched batch",
                    details={"expected": len(batch), "received": len(embedded)},
                )
            vectors.extend(embedded)

        log.debug("Embedded texts", count=len(texts), batches=-(-len(texts) // self.batch_size))
        return vectors

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single query string."""
        vectors = await self.embed_many([text])
        return vectors[0]
