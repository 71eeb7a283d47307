# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""leanprompt — shrink prompts with a genetic search over embedding similarity."""
from leanprompt.config import OptimizerSettings
from leanprompt.errors import (
    ConfigError, DimensionMismatch, EmbeddingUnavailable, LeanPromptError,
    OriginalEmbeddingFailed,
)
from leanprompt.evolution.loop import GeneticOptimizer, optimize, optimize_async
from leanprompt.evolution.models import GeneticConfig, GenerationSnapshot, OptimizationResult

__version__ = "0.3.0"
__all__ = [
    "GeneticOptimizer", "optimize", "optimize_async",
    "GeneticConfig", "GenerationSnapshot", "OptimizationResult",
    "OptimizerSettings",
    "LeanPromptError", "ConfigError", "DimensionMismatch",
    "EmbeddingUnavailable", "OriginalEmbeddingFailed",
    "__version__",
]
