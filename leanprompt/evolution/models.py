# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Data models for the genetic prompt optimizer."""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from leanprompt.errors import ConfigError


class GeneticConfig(BaseModel):
    """Configuration for the evolution loop."""

    model_config = ConfigDict(extra="forbid")

    population_size: int = 50
    max_generations: int = 100
    mutation_rate: float = 0.1
    crossover_rate: float = 0.8
    elite_size: int = 5

    # Fitness weights (expected to sum to 1.0, not enforced)
    similarity_weight: float = 0.7
    token_weight: float = 0.3

    # Hard constraints
    min_similarity: float = 0.85
    max_token_reduction: float = 0.3

    # Stop criteria
    early_stop_generations: int = 20

    # Seed for the injected RNG; None means nondeterministic
    seed: Optional[int] = None

    def check(self) -> "GeneticConfig":
        """Validate cross-field invariants. Returns self for chaining."""
        if self.population_size < 1:
            raise ConfigError("population_size must be >= 1, got {}".format(self.population_size))
        if self.max_generations < 1:
            raise ConfigError("max_generations must be >= 1, got {}".format(self.max_generations))
        if self.elite_size < 1:
            raise ConfigError("elite_size must be >= 1, got {}".format(self.elite_size))
        if self.elite_size > self.population_size:
            raise ConfigError("elite_size ({}) must not exceed population_size ({})".format(
                self.elite_size, self.population_size,
            ))
        if self.early_stop_generations < 1:
            raise ConfigError("early_stop_generations must be >= 1, got {}".format(
                self.early_stop_generations,
            ))
        for name in ("min_similarity", "max_token_reduction", "mutation_rate", "crossover_rate"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError("{} must be within [0, 1], got {}".format(name, value))
        return self


def resolve_config(
    config: Union["GeneticConfig", Dict[str, Any], None],
    target_reduction: Optional[float] = None,
    min_similarity: Optional[float] = None,
) -> GeneticConfig:
    """Merge a full or partial config with per-call overrides and validate it.

    The caller's object is never mutated.
    """
    if target_reduction is not None and not 0.0 <= target_reduction <= 1.0:
        raise ConfigError("target_reduction must be within [0, 1], got {}".format(target_reduction))
    if min_similarity is not None and not 0.0 <= min_similarity <= 1.0:
        raise ConfigError("min_similarity must be within [0, 1], got {}".format(min_similarity))

    try:
        if config is None:
            cfg = GeneticConfig()
        elif isinstance(config, GeneticConfig):
            cfg = config.model_copy()
        else:
            cfg = GeneticConfig(**config)
    except ValidationError as e:
        raise ConfigError("Invalid genetic config: {}".format(e)) from e
    except TypeError as e:
        raise ConfigError("Invalid genetic config: {}".format(e)) from e

    overrides: Dict[str, Any] = {}
    if target_reduction is not None:
        overrides["max_token_reduction"] = target_reduction
    if min_similarity is not None:
        overrides["min_similarity"] = min_similarity
    if overrides:
        cfg = cfg.model_copy(update=overrides)

    return cfg.check()


class SearchContext(BaseModel):
    """Per-call baseline: the original prompt, its embedding and token count."""

    model_config = ConfigDict(frozen=True)

    original_prompt: str
    original_embedding: List[float]
    original_tokens: int


class FitnessRecord(BaseModel):
    """Score of one genome in one generation."""

    model_config = ConfigDict(frozen=True)

    genome: str
    fitness: float = 0.0
    token_count: int = 0
    similarity: float = 0.0
    error: Optional[str] = None  # set when the embedding was unavailable


class GenerationSnapshot(BaseModel):
    """Statistics recorded once per generation."""

    model_config = ConfigDict(frozen=True)

    generation: int
    best_fitness: float
    avg_fitness: float
    best_token_count: int
    best_similarity: float


class OptimizationResult(BaseModel):
    """Final outcome of one optimize() call."""

    model_config = ConfigDict(frozen=True)

    original_prompt: str
    optimized_prompt: str
    original_tokens: int
    optimized_tokens: int
    token_reduction_percent: float
    similarity_score: float
    generation_count: int
    processing_time_ms: int
    history: List[GenerationSnapshot] = Field(default_factory=list)
    stop_reason: str = ""  # "converged" or "exhausted"

    @property
    def tokens_saved(self) -> int:
        return self.original_tokens - self.optimized_tokens

    @property
    def unchanged(self) -> bool:
        """True when the search fell back to the original prompt."""
        return self.optimized_prompt == self.original_prompt
