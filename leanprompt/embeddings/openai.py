# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""OpenAI and OpenAI-compatible embedding oracle."""
import asyncio
import logging
from typing import List, Optional, Sequence

from leanprompt.embeddings.base import EmbeddingOracle, validate_embedding
from leanprompt.errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)


class OpenAIEmbeddingOracle(EmbeddingOracle):
    """Embeddings via ``client.embeddings.create``."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "text-embedding-3-small",
        base_url: Optional[str] = None,
        max_chars: int = 8000,
        batch_size: int = 100,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url
        self._max_chars = max_chars
        self._batch_size = max(1, batch_size)
        self._client = None

    @property
    def model(self) -> str:
        return self._model

    def _make_client(self):
        if self._client is None:
            import openai
            kwargs = {}
            if self._api_key:
                kwargs["api_key"] = self._api_key
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self._client = openai.AsyncOpenAI(**kwargs)
        return self._client

    def _truncate(self, text: str) -> str:
        return text[:self._max_chars]

    async def embed(self, text: str) -> List[float]:
        if not text.strip():
            raise EmbeddingUnavailable("Cannot embed empty text")
        client = self._make_client()
        try:
            response = await client.embeddings.create(
                model=self._model,
                input=self._truncate(text),
            )
        except Exception as e:
            raise EmbeddingUnavailable("Embedding request failed: {}".format(e)) from e
        if not response.data:
            raise EmbeddingUnavailable("Embedding response had no data")
        return validate_embedding(response.data[0].embedding)

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Send list inputs in chunks of ``batch_size``, all chunks concurrently."""
        chunks = [
            list(texts[i:i + self._batch_size])
            for i in range(0, len(texts), self._batch_size)
        ]
        results = await asyncio.gather(*(self._embed_chunk(c) for c in chunks))
        vectors: List[List[float]] = []
        for chunk_vectors in results:
            vectors.extend(chunk_vectors)
        return vectors

    async def _embed_chunk(self, chunk: List[str]) -> List[List[float]]:
        if any(not t.strip() for t in chunk):
            raise EmbeddingUnavailable("Cannot embed empty text")
        client = self._make_client()
        try:
            response = await client.embeddings.create(
                model=self._model,
                input=[self._truncate(t) for t in chunk],
            )
        except Exception as e:
            raise EmbeddingUnavailable("Batch embedding request failed: {}".format(e)) from e

        data = sorted(response.data, key=lambda d: d.index)
        if len(data) != len(chunk):
            raise EmbeddingUnavailable("Expected {} embeddings, got {}".format(len(chunk), len(data)))
        return [validate_embedding(d.embedding) for d in data]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
