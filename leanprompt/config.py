# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Runtime settings for the embedding backend."""
import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# Default embedding model per backend.
DEFAULT_EMBEDDING_MODELS = {
    "ollama": "nomic-embed-text",
    "openai": "text-embedding-3-small",
}

_MAX_EMBED_CHARS_LIMIT = 100_000
_MAX_BATCH_SIZE = 2048


@dataclass
class OptimizerSettings:
    """Settings for the embedding oracle used by the optimizer.

    Can be created directly, from a dict, or from environment variables.
    """
    provider: str = "ollama"
    api_key: str = ""
    embedding_model: str = ""
    base_url: Optional[str] = None
    max_embed_chars: int = 8000
    embed_batch_size: int = 10

    @classmethod
    def from_dict(cls, data: dict) -> "OptimizerSettings":
        return cls(
            provider=data.get("provider", "ollama"),
            api_key=data.get("api_key", ""),
            embedding_model=data.get("embedding_model", ""),
            base_url=data.get("base_url") or None,
            max_embed_chars=data.get("max_embed_chars", 8000),
            embed_batch_size=data.get("embed_batch_size", 10),
        )

    @classmethod
    def from_env(cls) -> "OptimizerSettings":
        """Create settings from environment variables.

        Reads LEANPROMPT_EMBEDDING_PROVIDER, LEANPROMPT_EMBEDDING_MODEL, etc.
        Falls back to OPENAI_API_KEY and OLLAMA_BASE_URL when the
        leanprompt-specific variables are not set.
        """
        provider = os.getenv("LEANPROMPT_EMBEDDING_PROVIDER", "ollama")
        api_key = os.getenv("LEANPROMPT_API_KEY", "")
        if not api_key and provider == "openai":
            api_key = os.getenv("OPENAI_API_KEY", "")

        base_url = os.getenv("LEANPROMPT_BASE_URL") or None
        if base_url is None and provider == "ollama":
            ollama_url = os.getenv("OLLAMA_BASE_URL")
            if ollama_url:
                base_url = ollama_url.rstrip("/") + "/v1"

        return cls(
            provider=provider,
            api_key=api_key,
            embedding_model=os.getenv("LEANPROMPT_EMBEDDING_MODEL", ""),
            base_url=base_url,
            max_embed_chars=int(os.getenv("LEANPROMPT_MAX_EMBED_CHARS", "8000")),
            embed_batch_size=int(os.getenv("LEANPROMPT_EMBED_BATCH_SIZE", "10")),
        )

    def __post_init__(self):
        """Validate settings values."""
        if self.provider not in DEFAULT_EMBEDDING_MODELS:
            logger.warning("Unknown embedding provider %r, using ollama", self.provider)
            self.provider = "ollama"

        if self.max_embed_chars < 1:
            logger.warning("max_embed_chars %s < 1, setting to 1", self.max_embed_chars)
            self.max_embed_chars = 1
        elif self.max_embed_chars > _MAX_EMBED_CHARS_LIMIT:
            logger.warning("max_embed_chars %s > %d, clamping", self.max_embed_chars, _MAX_EMBED_CHARS_LIMIT)
            self.max_embed_chars = _MAX_EMBED_CHARS_LIMIT

        if self.embed_batch_size < 1:
            logger.warning("embed_batch_size %s < 1, setting to 1", self.embed_batch_size)
            self.embed_batch_size = 1
        elif self.embed_batch_size > _MAX_BATCH_SIZE:
            logger.warning("embed_batch_size %s > %d, clamping", self.embed_batch_size, _MAX_BATCH_SIZE)
            self.embed_batch_size = _MAX_BATCH_SIZE

    @property
    def resolved_model(self) -> str:
        """Return the embedding model with a sensible default per provider."""
        if self.embedding_model:
            return self.embedding_model
        return DEFAULT_EMBEDDING_MODELS[self.provider]
