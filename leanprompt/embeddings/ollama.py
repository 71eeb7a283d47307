# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Local Ollama embedding oracle (OpenAI-compatible endpoint)."""
import logging
from typing import List

from leanprompt.embeddings.openai import OpenAIEmbeddingOracle

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434/v1"


class OllamaEmbeddingOracle(OpenAIEmbeddingOracle):
    """Ollama embeddings using the OpenAI-compatible API endpoint."""

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = DEFAULT_OLLAMA_URL,
        max_chars: int = 8000,
        batch_size: int = 10,
    ) -> None:
        super().__init__(
            api_key="ollama",  # Ollama doesn't need a real key
            model=model,
            base_url=base_url,
            max_chars=max_chars,
            batch_size=batch_size,
        )

    async def check_server(self) -> bool:
        """Return True if the Ollama server answers."""
        try:
            await self._make_client().models.list()
            return True
        except Exception as e:
            logger.warning(
                "Ollama server not accessible at %s (%s). Start it with: ollama serve",
                self._base_url, e,
            )
            return False

    async def list_models(self) -> List[str]:
        """Return the model names the server has pulled."""
        try:
            page = await self._make_client().models.list()
        except Exception as e:
            logger.warning("Failed to list Ollama models: %s", e)
            return []
        return [m.id for m in page.data]
