from __future__ import annotations

import logging
import numbers
from dataclasses import replace
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

from openai import AsyncOpenAI, OpenAIError

from linkintel.config import settings
from linkintel.discovery.merge import LinkCandidate

logger = logging.getLogger(__name__)

# Called after every batch with (embedded_so_far, failed_batches_so_far).
BatchCallback = Callable[[int, int], Awaitable[None]]


class EmbeddingServiceError(RuntimeError):
    """Raised when the embedding service is unavailable or returns an unusable response."""


class EmbeddingClient(Protocol):
    async def embed(self, texts: list[str]) -> Any:
        ...


class OpenAIEmbeddingClient:
    """Batched text -> vector calls against the OpenAI embeddings API."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.EMBEDDING_MODEL
        self.timeout = timeout or settings.EMBEDDING_TIMEOUT_SECONDS
        self._client: Optional[AsyncOpenAI] = None

    def _get_client(self) -> AsyncOpenAI:
        if not self.api_key:
            raise EmbeddingServiceError("OPENAI_API_KEY not configured")
        if not self._client:
            self._client = AsyncOpenAI(api_key=self.api_key, timeout=float(self.timeout), max_retries=1)
        return self._client

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        client = self._get_client()
        try:
            response = await client.embeddings.create(model=self.model, input=texts)
        except OpenAIError as exc:
            raise EmbeddingServiceError(f"Embedding request failed: {exc}") from exc
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]


def validate_vectors(vectors: Any, expected: int) -> list[list[float]]:
    """Return `vectors` as float lists or raise EmbeddingServiceError if the shape is wrong."""
    if not isinstance(vectors, list):
        raise EmbeddingServiceError("Embedding response is not a list")
    if len(vectors) != expected:
        raise EmbeddingServiceError(f"Embedding response has {len(vectors)} vectors, expected {expected}")
    cleaned: list[list[float]] = []
    for vector in vectors:
        if not isinstance(vector, (list, tuple)) or not vector:
            raise EmbeddingServiceError("Embedding vector is empty or not a list")
        if not all(isinstance(value, numbers.Real) and not isinstance(value, bool) for value in vector):
            raise EmbeddingServiceError("Embedding vector contains non-numeric values")
        cleaned.append([float(value) for value in vector])
    return cleaned


class EmbeddingGenerator:
    def __init__(self, client: EmbeddingClient, *, batch_size: Optional[int] = None) -> None:
        self.client = client
        self.batch_size = batch_size or settings.EMBEDDING_BATCH_SIZE

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        vectors = await self.client.embed(texts)
        return validate_vectors(vectors, len(texts))

    async def embed_one(self, text: str) -> Optional[list[float]]:
        """Single-text embedding for ad hoc writes; failures return None."""
        try:
            return (await self.embed_texts([text]))[0]
        except Exception as exc:  # noqa: BLE001
            logger.warning("embeddings.single_failed", extra={"error": str(exc)})
            return None

    async def embed_candidates(
        self,
        candidates: Sequence[LinkCandidate],
        *,
        on_batch: Optional[BatchCallback] = None,
    ) -> list[LinkCandidate]:
        """
        Attach embeddings to titled candidates, one service call per batch.

        A failing batch is emitted without embeddings; the run continues.
        """
        output: list[LinkCandidate] = []
        failed_batches = 0
        for start in range(0, len(candidates), self.batch_size):
            batch = list(candidates[start : start + self.batch_size])
            texts = [candidate.title or candidate.url for candidate in batch]
            try:
                vectors = await self.embed_texts(texts)
            except Exception as exc:  # noqa: BLE001
                failed_batches += 1
                logger.warning(
                    "embeddings.batch_failed",
                    extra={"batch_start": start, "batch_size": len(batch), "error": str(exc)},
                )
                output.extend(batch)
            else:
                output.extend(replace(candidate, embedding=vector) for candidate, vector in zip(batch, vectors))
            if on_batch is not None:
                await on_batch(len(output), failed_batches)
        return output
