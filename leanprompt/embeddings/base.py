# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Abstract embedding oracle interface."""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from leanprompt.errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)

# nomic-embed-text is 768-d, text-embedding-3-large is 3072-d
MAX_EMBEDDING_DIM = 4096


def validate_embedding(vector: Optional[Sequence[float]]) -> List[float]:
    """Return the vector as a list of floats, or raise EmbeddingUnavailable."""
    if vector is None:
        raise EmbeddingUnavailable("Backend returned no embedding")
    values = [float(v) for v in vector]
    if not values:
        raise EmbeddingUnavailable("Backend returned an empty embedding")
    if len(values) > MAX_EMBEDDING_DIM:
        raise EmbeddingUnavailable("Embedding has {} dimensions (max {})".format(
            len(values), MAX_EMBEDDING_DIM,
        ))
    return values


@dataclass(frozen=True)
class EmbeddingOutcome:
    """Per-text embedding result: either a vector or the reason it is missing."""

    vector: Optional[List[float]] = None
    error: Optional[EmbeddingUnavailable] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.vector is not None

    @classmethod
    def success(cls, vector: List[float]) -> "EmbeddingOutcome":
        return cls(vector=vector)

    @classmethod
    def failure(cls, error: EmbeddingUnavailable) -> "EmbeddingOutcome":
        return cls(error=error)


class EmbeddingOracle(ABC):
    """Maps text to a fixed-length vector.

    Implementations must be idempotent and side-effect free. ``embed`` raises
    EmbeddingUnavailable when the backend cannot produce a vector.
    """

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Return the embedding vector for ``text``."""

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed many texts at once. Raises if any single request fails.

        The default issues every request concurrently; backends with a native
        batch endpoint override this.
        """
        return list(await asyncio.gather(*(self.embed(t) for t in texts)))

    async def embed_outcome(self, text: str) -> EmbeddingOutcome:
        """Embed one text, capturing failure as a value instead of raising."""
        try:
            return EmbeddingOutcome.success(validate_embedding(await self.embed(text)))
        except EmbeddingUnavailable as e:
            return EmbeddingOutcome.failure(e)
        except Exception as e:
            logger.debug("Embedding backend error: %s", e)
            return EmbeddingOutcome.failure(EmbeddingUnavailable(str(e)))

    async def close(self) -> None:
        """Release network resources. No-op by default."""
