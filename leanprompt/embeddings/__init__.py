# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
from leanprompt.embeddings.base import EmbeddingOracle, EmbeddingOutcome, validate_embedding

__all__ = [
    "EmbeddingOracle", "EmbeddingOutcome", "validate_embedding",
    "ORACLE_REGISTRY", "create_oracle", "create_oracle_from_settings",
]


# Oracle registry — maps backend name to module path and class name
ORACLE_REGISTRY = {
    "openai": {
        "module": "leanprompt.embeddings.openai",
        "class": "OpenAIEmbeddingOracle",
    },
    "ollama": {
        "module": "leanprompt.embeddings.ollama",
        "class": "OllamaEmbeddingOracle",
    },
}


def create_oracle(backend: str, **kwargs) -> EmbeddingOracle:
    """Create an embedding oracle by name using the registry.

    Falls back to Ollama for unknown backend names.
    """
    import importlib

    entry = ORACLE_REGISTRY.get(backend, ORACLE_REGISTRY["ollama"])
    mod = importlib.import_module(entry["module"])
    cls = getattr(mod, entry["class"])
    return cls(**kwargs)


def create_oracle_from_settings(settings) -> EmbeddingOracle:
    """Build the oracle described by an OptimizerSettings instance."""
    kwargs = {
        "model": settings.resolved_model,
        "max_chars": settings.max_embed_chars,
        "batch_size": settings.embed_batch_size,
    }
    if settings.base_url:
        kwargs["base_url"] = settings.base_url
    if settings.provider == "openai":
        kwargs["api_key"] = settings.api_key
    return create_oracle(settings.provider, **kwargs)
