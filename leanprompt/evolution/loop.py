# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Evolution loop — the main orchestrator for prompt compression.

Flow:
  1. Embed the original prompt once (the baseline for every similarity)
  2. Seed the population: the original + one variant per strategy slot
  3. For each generation:
     a. Embed and score every genome (one concurrent batch)
     b. Rank by fitness, record a snapshot, track the best genome seen
     c. Stop when generations run out or the best stops improving
     d. Otherwise breed the next generation (elites + offspring)
  4. Re-check the best genome and assemble the result

Guarantees:
  - The original prompt is always in generation 0 and always valid, so the
    worst outcome is returning it unchanged
  - No state survives between calls
"""
import asyncio
import json
import logging
import random
import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml

from leanprompt.embeddings.base import EmbeddingOracle
from leanprompt.errors import ConfigError, OriginalEmbeddingFailed
from leanprompt.evolution.models import (
    FitnessRecord, GenerationSnapshot, GeneticConfig, OptimizationResult,
    SearchContext, resolve_config,
)
from leanprompt.evolution.mutator import PromptMutator
from leanprompt.evolution.population import next_generation
from leanprompt.evolution.scorer import cosine_similarity, estimate_tokens, evaluate_population

logger = logging.getLogger(__name__)

ConfigLike = Union[GeneticConfig, Dict[str, Any], None]
ProgressCallback = Callable[[GenerationSnapshot], None]

_LOG_EVERY = 10


class StopReason(str, Enum):
    """Why the generation loop ended."""
    CONVERGED = "converged"   # no strict improvement for early_stop_generations
    EXHAUSTED = "exhausted"   # reached max_generations


def read_config_file(path: Optional[str] = None) -> Dict[str, Any]:
    """Read the raw config mapping from YAML without validating it.

    A missing file gives an empty mapping.
    """
    if path is None:
        return {}

    p = Path(path)
    if not p.exists():
        return {}

    with open(p, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError("Malformed YAML in {}: {}".format(path, e)) from e

    if not isinstance(data, dict):
        raise ConfigError("Config file {} must contain a mapping".format(path))
    return data


def load_config(path: Optional[str] = None) -> GeneticConfig:
    """Load a GeneticConfig from YAML. Falls back to defaults."""
    return resolve_config(read_config_file(path))


class GeneticOptimizer:
    """Orchestrates the genetic search for a shorter equivalent prompt.

    Usage:
        optimizer = GeneticOptimizer(oracle, config={"population_size": 30})
        result = await optimizer.run(prompt, target_reduction=0.3)
        print(result.optimized_prompt, result.token_reduction_percent)

    An ``rng`` given to the constructor is shared by every run() on this
    optimizer and advances across calls. Pass ``rng`` to run() instead, or set
    ``config.seed``, to give each call its own random stream.
    """

    def __init__(
        self,
        oracle: Optional[EmbeddingOracle] = None,
        config: ConfigLike = None,
        rng: Optional[random.Random] = None,
    ):
        self._oracle = oracle
        self._config = config
        self._rng = rng

    async def run(
        self,
        prompt: str,
        target_reduction: Optional[float] = None,
        min_similarity: Optional[float] = None,
        config: ConfigLike = None,
        on_progress: Optional[ProgressCallback] = None,
        rng: Optional[random.Random] = None,
    ) -> OptimizationResult:
        """Run the full evolution loop for one prompt.

        Parameters
        ----------
        prompt : str
            The text to compress.
        target_reduction : float, optional
            Largest allowed token reduction in [0, 1]; overrides the config's
            ``max_token_reduction`` for this call.
        min_similarity : float, optional
            Smallest allowed cosine similarity in [0, 1]; overrides the
            config's ``min_similarity`` for this call.
        config : GeneticConfig or dict, optional
            Replaces the optimizer-level config for this call.
        on_progress : callable, optional
            Called with each GenerationSnapshot as it is recorded.
        rng : random.Random, optional
            Random source for this call only. Falls back to the optimizer's
            rng, then to a fresh ``random.Random(config.seed)``.

        Raises
        ------
        ConfigError
            Before any embedding request, for invalid parameters.
        OriginalEmbeddingFailed
            If the original prompt cannot be embedded.
        """
        t0 = time.monotonic()
        cfg = resolve_config(
            config if config is not None else self._config,
            target_reduction, min_similarity,
        )
        if not prompt or not prompt.strip():
            raise ConfigError("prompt must not be empty")

        oracle = self._oracle
        owns_oracle = oracle is None
        if owns_oracle:
            from leanprompt.config import OptimizerSettings
            from leanprompt.embeddings import create_oracle_from_settings
            oracle = create_oracle_from_settings(OptimizerSettings.from_env())

        try:
            return await self._evolve(prompt, cfg, oracle, t0, on_progress, rng or self._rng)
        finally:
            if owns_oracle:
                await oracle.close()

    async def _evolve(
        self,
        prompt: str,
        cfg: GeneticConfig,
        oracle: EmbeddingOracle,
        t0: float,
        on_progress: Optional[ProgressCallback],
        rng: Optional[random.Random],
    ) -> OptimizationResult:
        rng = rng or random.Random(cfg.seed)
        mutator = PromptMutator(rng)

        context = await _build_context(prompt, oracle)
        population = mutator.initial_population(prompt, cfg.population_size)

        logger.info(
            "Starting genetic optimization: %d tokens, max reduction %.1f%%, min similarity %.1f%%",
            context.original_tokens, cfg.max_token_reduction * 100, cfg.min_similarity * 100,
        )

        history: List[GenerationSnapshot] = []
        best: Optional[FitnessRecord] = None
        no_improve_count = 0
        generation = 0

        while True:
            records = await evaluate_population(population, context, cfg, oracle)

            # sorted() is stable: on ties earlier genomes (the original first) win
            ranked = sorted(records, key=lambda r: r.fitness, reverse=True)
            top = ranked[0]
            snapshot = GenerationSnapshot(
                generation=generation,
                best_fitness=top.fitness,
                avg_fitness=sum(r.fitness for r in records) / len(records),
                best_token_count=top.token_count,
                best_similarity=top.similarity,
            )
            history.append(snapshot)

            if best is None or top.fitness > best.fitness:
                best = top
                no_improve_count = 0
            else:
                no_improve_count += 1

            if on_progress:
                on_progress(snapshot)
            if generation % _LOG_EVERY == 0 or generation == cfg.max_generations - 1:
                reduction = (context.original_tokens - top.token_count) / context.original_tokens
                logger.info(
                    "Generation %d: best fitness %.3f, tokens %d (%.1f%% reduction), similarity %.1f%%",
                    generation, top.fitness, top.token_count, reduction * 100, top.similarity * 100,
                )

            if generation == cfg.max_generations - 1:
                stop_reason = StopReason.EXHAUSTED
                break
            if no_improve_count >= cfg.early_stop_generations:
                stop_reason = StopReason.CONVERGED
                logger.info(
                    "Early stopping at generation %d (no improvement for %d generations)",
                    generation, no_improve_count,
                )
                break

            population = next_generation(ranked, cfg, mutator, rng)
            generation += 1

        result = await _assemble_result(context, cfg, best, history, oracle, t0, stop_reason)
        logger.info(
            "Genetic optimization complete: %d -> %d tokens (%.1f%% reduction), "
            "similarity %.1f%%, %d generations, %d ms",
            result.original_tokens, result.optimized_tokens, result.token_reduction_percent,
            result.similarity_score * 100, result.generation_count, result.processing_time_ms,
        )
        return result


async def _build_context(prompt: str, oracle: EmbeddingOracle) -> SearchContext:
    """Embed the original prompt once. Without it there is no baseline."""
    outcome = await oracle.embed_outcome(prompt)
    if not outcome.ok:
        raise OriginalEmbeddingFailed(
            "Failed to generate embedding for original prompt: {}".format(outcome.error),
        ) from outcome.error
    return SearchContext(
        original_prompt=prompt,
        original_embedding=outcome.vector,
        original_tokens=estimate_tokens(prompt),
    )


async def _assemble_result(
    context: SearchContext,
    cfg: GeneticConfig,
    best: FitnessRecord,
    history: List[GenerationSnapshot],
    oracle: EmbeddingOracle,
    t0: float,
    stop_reason: StopReason,
) -> OptimizationResult:
    """Re-check the best genome and build the immutable result."""
    optimized = best.genome
    similarity = 1.0

    if optimized != context.original_prompt:
        if best.fitness <= 0:
            optimized = context.original_prompt
        else:
            outcome = await oracle.embed_outcome(optimized)
            if outcome.ok:
                similarity = cosine_similarity(context.original_embedding, outcome.vector)
            else:
                logger.warning("Final re-embedding failed, using recorded similarity: %s", outcome.error)
                similarity = best.similarity
            if similarity < cfg.min_similarity:
                logger.warning(
                    "Best candidate re-scored below min similarity (%.3f < %.3f), keeping original",
                    similarity, cfg.min_similarity,
                )
                optimized = context.original_prompt
                similarity = 1.0

    optimized_tokens = estimate_tokens(optimized)
    return OptimizationResult(
        original_prompt=context.original_prompt,
        optimized_prompt=optimized,
        original_tokens=context.original_tokens,
        optimized_tokens=optimized_tokens,
        token_reduction_percent=(
            100 * (context.original_tokens - optimized_tokens) / context.original_tokens
        ),
        similarity_score=similarity,
        generation_count=len(history),
        processing_time_ms=int((time.monotonic() - t0) * 1000),
        history=history,
        stop_reason=stop_reason.value,
    )


async def optimize_async(
    prompt: str,
    target_reduction: Optional[float] = None,
    min_similarity: Optional[float] = None,
    config: ConfigLike = None,
    oracle: Optional[EmbeddingOracle] = None,
    rng: Optional[random.Random] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> OptimizationResult:
    """Coroutine form of optimize()."""
    optimizer = GeneticOptimizer(oracle=oracle, config=config)
    return await optimizer.run(
        prompt, target_reduction, min_similarity, on_progress=on_progress, rng=rng,
    )


def optimize(
    prompt: str,
    target_reduction: Optional[float] = None,
    min_similarity: Optional[float] = None,
    config: ConfigLike = None,
    oracle: Optional[EmbeddingOracle] = None,
    rng: Optional[random.Random] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> OptimizationResult:
    """Compress ``prompt``, blocking until the search completes or raises."""
    return asyncio.run(optimize_async(
        prompt, target_reduction, min_similarity,
        config=config, oracle=oracle, rng=rng, on_progress=on_progress,
    ))


def result_to_record(
    result: OptimizationResult,
    config: Optional[GeneticConfig] = None,
) -> Dict[str, Any]:
    """Structured record for JSON output."""
    record: Dict[str, Any] = {
        "original_prompt": result.original_prompt,
        "optimized_prompt": result.optimized_prompt,
        "results": {
            "original_tokens": result.original_tokens,
            "optimized_tokens": result.optimized_tokens,
            "tokens_saved": result.tokens_saved,
            "token_reduction_percent": result.token_reduction_percent,
            "similarity": result.similarity_score,
            "generation_count": result.generation_count,
            "stop_reason": result.stop_reason,
            "processing_time_ms": result.processing_time_ms,
            "estimated_cost_savings_percent": result.token_reduction_percent,
        },
        "history": [s.model_dump() for s in result.history],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if config is not None:
        record["genetic_config"] = config.model_dump()
    return record


def save_result(
    result: OptimizationResult,
    path: Union[str, Path],
    config: Optional[GeneticConfig] = None,
) -> Path:
    """Write the result record as JSON and return the path."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(out, "w", encoding="utf-8") as f:
        json.dump(result_to_record(result, config), f, ensure_ascii=False, indent=2)
    logger.info("Result saved to %s", out)
    return out


def format_optimization_report(result: OptimizationResult, verbose: bool = False) -> str:
    """Format a human-readable optimization report."""
    lines = [
        "=" * 60,
        "Genetic Prompt Optimization",
        "=" * 60,
        "Original tokens: {}  Optimized tokens: {}  Saved: {}".format(
            result.original_tokens, result.optimized_tokens, result.tokens_saved,
        ),
        "Token reduction: {:.1f}%  Similarity: {:.1f}%".format(
            result.token_reduction_percent, result.similarity_score * 100,
        ),
        "Generations: {}  Time: {} ms".format(result.generation_count, result.processing_time_ms),
    ]
    if result.generation_count:
        lines.append("Average time per generation: {:.0f} ms".format(
            result.processing_time_ms / result.generation_count,
        ))
    lines.append("Estimated cost savings: {:.1f}% per use".format(result.token_reduction_percent))
    if result.unchanged:
        lines.append("No shorter equivalent found; original prompt kept.")
    lines += ["", "Optimized prompt:", '"{}"'.format(result.optimized_prompt)]

    if verbose and result.history:
        lines += [
            "",
            "Gen | Best Fitness | Avg Fitness | Tokens | Similarity",
            "----|--------------|-------------|--------|-----------",
        ]
        for s in result.history:
            lines.append("{:>3} | {:>12.3f} | {:>11.3f} | {:>6} | {:.1f}%".format(
                s.generation, s.best_fitness, s.avg_fitness,
                s.best_token_count, s.best_similarity * 100,
            ))

    return "\n".join(lines)
