# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Population management — elitism, tournament selection, breeding."""
import random
from typing import List, Sequence

from leanprompt.evolution.models import FitnessRecord, GeneticConfig
from leanprompt.evolution.mutator import PromptMutator

TOURNAMENT_SIZE = 3


def tournament_select(
    ranked: Sequence[FitnessRecord],
    rng: random.Random,
    size: int = TOURNAMENT_SIZE,
) -> str:
    """Sample ``size`` records (with replacement) and return the fittest genome."""
    contestants = [ranked[rng.randrange(len(ranked))] for _ in range(size)]
    return max(contestants, key=lambda r: r.fitness).genome


def next_generation(
    ranked: Sequence[FitnessRecord],
    config: GeneticConfig,
    mutator: PromptMutator,
    rng: random.Random,
) -> List[str]:
    """Build the next population from records sorted by fitness, best first.

    The top ``elite_size`` genomes are carried over unchanged; the rest are
    children of tournament-selected parents.
    """
    if not ranked:
        raise ValueError("Cannot breed from an empty population")

    population = [r.genome for r in ranked[:config.elite_size]]
    while len(population) < config.population_size:
        parent1 = tournament_select(ranked, rng)
        parent2 = tournament_select(ranked, rng)
        population.append(mutator.offspring(parent1, parent2, config))
    return population
