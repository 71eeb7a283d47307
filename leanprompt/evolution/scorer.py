# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Fitness scoring for prompt candidates.

Two signals per genome:
  A) Semantic similarity — cosine of its embedding vs the original's
  B) Token reduction — how much shorter it is than the original

Hard constraints reject a genome outright (fitness 0) when it drifts below
``min_similarity`` or cuts more than ``max_token_reduction``.
"""
import logging
import math
from typing import Dict, List, Sequence

from leanprompt.embeddings.base import EmbeddingOracle, EmbeddingOutcome, validate_embedding
from leanprompt.errors import DimensionMismatch, EmbeddingUnavailable
from leanprompt.evolution.models import FitnessRecord, GeneticConfig, SearchContext

logger = logging.getLogger(__name__)


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per 4 bytes of UTF-8. Not a tokenizer."""
    return math.ceil(len(text.encode("utf-8")) / 4)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Pure Python cosine similarity. 0.0 if either vector has zero norm."""
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


async def embed_population(
    population: Sequence[str],
    oracle: EmbeddingOracle,
) -> List[EmbeddingOutcome]:
    """Embed every genome, one outcome per genome in population order.

    Identical genomes are embedded once. The whole set goes out as a single
    batch; if the batch raises, each genome is requested on its own so one
    bad text cannot sink the generation.
    """
    unique: List[str] = []
    seen = set()
    for genome in population:
        if genome.strip() and genome not in seen:
            seen.add(genome)
            unique.append(genome)

    by_text: Dict[str, EmbeddingOutcome] = {}
    if unique:
        try:
            vectors = await oracle.embed_batch(unique)
            if len(vectors) != len(unique):
                raise EmbeddingUnavailable("Expected {} embeddings, got {}".format(
                    len(unique), len(vectors),
                ))
            for text, vector in zip(unique, vectors):
                try:
                    by_text[text] = EmbeddingOutcome.success(validate_embedding(vector))
                except EmbeddingUnavailable as e:
                    by_text[text] = EmbeddingOutcome.failure(e)
        except Exception as e:
            logger.warning("Batch embedding failed, falling back to individual requests: %s", e)
            for text in unique:
                by_text[text] = await oracle.embed_outcome(text)

    empty = EmbeddingOutcome.failure(EmbeddingUnavailable("Genome is empty"))
    return [by_text.get(genome, empty) for genome in population]


def score_genome(
    genome: str,
    outcome: EmbeddingOutcome,
    context: SearchContext,
    config: GeneticConfig,
) -> FitnessRecord:
    """Score one genome given its embedding outcome."""
    token_count = estimate_tokens(genome)

    if not outcome.ok:
        logger.debug("Embedding unavailable for candidate (%d tokens): %s", token_count, outcome.error)
        return FitnessRecord(
            genome=genome, fitness=0.0, token_count=token_count,
            similarity=0.0, error=str(outcome.error),
        )

    try:
        similarity = cosine_similarity(context.original_embedding, outcome.vector)
    except DimensionMismatch as e:
        logger.debug("Discarding candidate embedding: %s", e)
        return FitnessRecord(
            genome=genome, fitness=0.0, token_count=token_count,
            similarity=0.0, error=str(e),
        )

    token_reduction = (context.original_tokens - token_count) / context.original_tokens

    if similarity < config.min_similarity or token_reduction > config.max_token_reduction:
        fitness = 0.0
    else:
        token_term = 0.0
        if config.max_token_reduction > 0:
            token_term = token_reduction / config.max_token_reduction
        fitness = config.similarity_weight * similarity + config.token_weight * token_term
        # Candidates longer than the original can push the token term negative
        fitness = max(0.0, fitness)

    return FitnessRecord(
        genome=genome,
        fitness=fitness,
        token_count=token_count,
        similarity=similarity,
    )


async def evaluate_population(
    population: Sequence[str],
    context: SearchContext,
    config: GeneticConfig,
    oracle: EmbeddingOracle,
) -> List[FitnessRecord]:
    """Score a whole generation. Never raises for per-genome embedding failures."""
    outcomes = await embed_population(population, oracle)
    records = [
        score_genome(genome, outcome, context, config)
        for genome, outcome in zip(population, outcomes)
    ]
    failed = sum(1 for r in records if r.error)
    if failed:
        logger.debug("%d/%d candidates had no embedding this generation", failed, len(records))
    return records
