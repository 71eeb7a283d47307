# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Genetic prompt compression — evolve a shorter prompt with the same meaning.

Usage:
    leanprompt optimize "..."     Compress one prompt
    leanprompt batch prompts.json Compress many prompts
"""
from leanprompt.evolution.models import (
    FitnessRecord, GenerationSnapshot, GeneticConfig,
    OptimizationResult, SearchContext,
)

__all__ = [
    "FitnessRecord", "GenerationSnapshot", "GeneticConfig",
    "OptimizationResult", "SearchContext",
]
