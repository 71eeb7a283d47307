# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Prompt variation engine — generate shorter prompt variants for evolution.

Seeding strategies (one per initial genome, cycled by index):
  A. Remove words — drop 10-15% of words at random positions
  B. Synonyms — swap long words for shorter ones, drop intensifiers
  C. Simplify — strip verbose stock phrases
  D. Redundancy — collapse "X and Y" pairs that say the same thing
  E. Merge sentences — join adjacent sentences with a comma
  F. Filler — remove hedges and filler adverbs

Offspring operators:
  - Crossover — single-point splice of two parents' word lists
  - Mutation — insert / delete / replace / swap one word
"""
import math
import random
import re
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from leanprompt.evolution.models import GeneticConfig


class Strategy(str, Enum):
    """Seeding strategies for the initial population."""
    REMOVE_WORDS = "remove_words"
    SYNONYMS = "synonyms"
    SIMPLIFY = "simplify"
    REDUNDANCY = "redundancy"
    MERGE_SENTENCES = "merge_sentences"
    FILLER = "filler"

    @classmethod
    def for_index(cls, index: int) -> "Strategy":
        members = list(cls)
        return members[index % len(members)]


class MutationOp(str, Enum):
    """Single-word point mutations."""
    INSERT = "insert"
    DELETE = "delete"
    REPLACE = "replace"
    SWAP = "swap"


# Empty string means "drop the word".
SYNONYMS: Dict[str, List[str]] = {
    "comprehensive": ["complete", "full", "thorough"],
    "detailed": ["specific", "precise", "exact"],
    "analysis": ["study", "review", "examination"],
    "developments": ["advances", "progress", "innovations"],
    "technologies": ["tech", "systems", "solutions"],
    "various": ["different", "multiple", "diverse"],
    "industries": ["sectors", "fields", "areas"],
    "business": ["commercial", "corporate", "enterprise"],
    "models": ["approaches", "strategies", "frameworks"],
    "please": [""],
    "very": [""],
    "extremely": [""],
    "thorough": ["complete", "full"],
    "examination": ["review", "study"],
    "implications": ["effects", "impacts"],
    "ramifications": ["consequences", "effects"],
    "groundbreaking": ["innovative", "revolutionary"],
    "innovations": ["advances", "developments"],
    "potentially": [""],
    "fundamentally": ["completely", "entirely"],
    "transform": ["change", "alter"],
    "landscape": ["environment", "sector"],
    "production": ["generation", "creation"],
    "distribution": ["delivery", "supply"],
}

VERBOSE_PHRASES = [
    re.compile(r"\b(if you would be so kind as to do so)\b", re.IGNORECASE),
    re.compile(r"\b(I would appreciate if you could)\b", re.IGNORECASE),
    re.compile(r"\b(please provide)\b", re.IGNORECASE),
    re.compile(r"\b(very comprehensive and extremely detailed)\b", re.IGNORECASE),
    re.compile(r"\b(multifaceted implications and ramifications)\b", re.IGNORECASE),
    re.compile(r"\b(groundbreaking innovations)\b", re.IGNORECASE),
    re.compile(r"\b(potentially revolutionize and fundamentally transform)\b", re.IGNORECASE),
]

REDUNDANT_PAIRS: List[Tuple["re.Pattern", str]] = [
    (re.compile(r"\b(very|extremely)\s+(comprehensive|detailed)\b", re.IGNORECASE), r"\2"),
    (re.compile(r"\b(comprehensive and detailed)\b", re.IGNORECASE), "comprehensive"),
    (re.compile(r"\b(implications and ramifications)\b", re.IGNORECASE), "implications"),
    (re.compile(r"\b(revolutionize and transform)\b", re.IGNORECASE), "transform"),
    (re.compile(r"\b(production and distribution)\b", re.IGNORECASE), "distribution"),
]

FILLER_GROUPS = [
    re.compile(r"\b(very|really|quite|extremely|absolutely|completely|totally|entirely)\b", re.IGNORECASE),
    re.compile(r"\b(just|simply|merely|only)\b", re.IGNORECASE),
    re.compile(r"\b(actually|basically|essentially|fundamentally)\b", re.IGNORECASE),
    re.compile(r"\b(like|sort of|kind of|type of)\b", re.IGNORECASE),
    re.compile(r"\b(potentially|possibly|maybe|perhaps|might)\b", re.IGNORECASE),
    re.compile(r"\b(generally|usually|typically|normally)\b", re.IGNORECASE),
    re.compile(r"\b(relatively|comparatively)\b", re.IGNORECASE),
]

COMMON_WORDS = ["the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"]
GENERIC_SYNONYMS = ["analysis", "study", "review", "examination", "investigation"]

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def _tidy(text: str) -> str:
    """Collapse whitespace and drop spaces left in front of punctuation."""
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"\s+([,.;:!?])", r"\1", text)
    return text.strip()


class PromptMutator:
    """Rule-based text variation with a single injected RNG.

    Every operator returns a new string and never mutates its inputs.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
        self._strategies: Dict[Strategy, Callable[[str, int], str]] = {
            Strategy.REMOVE_WORDS: self._remove_words,
            Strategy.SYNONYMS: self._replace_synonyms,
            Strategy.SIMPLIFY: self._simplify_structure,
            Strategy.REDUNDANCY: self._remove_redundancy,
            Strategy.MERGE_SENTENCES: self._merge_sentences,
            Strategy.FILLER: self._remove_filler,
        }
        self._mutations: Dict[MutationOp, Callable[[List[str]], List[str]]] = {
            MutationOp.INSERT: self._insert_word,
            MutationOp.DELETE: self._delete_word,
            MutationOp.REPLACE: self._replace_word,
            MutationOp.SWAP: self._swap_words,
        }

    # ------------------------------------------------------------------
    # Initial population
    # ------------------------------------------------------------------

    def initial_population(self, prompt: str, size: int) -> List[str]:
        """Genome 0 is the untouched prompt; the rest cycle through strategies."""
        population = [prompt]
        for i in range(1, size):
            population.append(self.apply_strategy(Strategy.for_index(i), prompt, i))
        return population

    def apply_strategy(self, strategy: Strategy, prompt: str, index: int = 0) -> str:
        return self._strategies[strategy](prompt, index)

    def _remove_words(self, prompt: str, index: int) -> str:
        words = prompt.split()
        if len(words) <= 1:
            return prompt
        count = math.floor(len(words) * 0.1) + (index % 5)
        count = min(count, len(words) - 1)
        drop = set(self._rng.sample(range(len(words)), count))
        return " ".join(w for i, w in enumerate(words) if i not in drop)

    def _replace_synonyms(self, prompt: str, index: int) -> str:
        result = prompt
        for word, synonyms in SYNONYMS.items():
            if self._rng.random() < 0.3:
                synonym = self._rng.choice(synonyms)
                if synonym:
                    result = re.sub(r"\b{}\b".format(word), synonym, result, flags=re.IGNORECASE)
                else:
                    result = re.sub(r"\b{}\b\s*".format(word), "", result, flags=re.IGNORECASE)
        return _tidy(result)

    def _simplify_structure(self, prompt: str, index: int) -> str:
        result = prompt
        for phrase in VERBOSE_PHRASES:
            if self._rng.random() < 0.5:
                result = phrase.sub("", result)
        return _tidy(result)

    def _remove_redundancy(self, prompt: str, index: int) -> str:
        result = prompt
        for pattern, replacement in REDUNDANT_PAIRS:
            if self._rng.random() < 0.6:
                result = pattern.sub(replacement, result)
        return _tidy(result)

    def _merge_sentences(self, prompt: str, index: int) -> str:
        sentences = [s.strip() for s in _SENTENCE_SPLIT.split(prompt) if s.strip()]
        if len(sentences) < 2:
            return prompt

        merged = []
        i = 0
        while i < len(sentences):
            if i + 1 < len(sentences) and self._rng.random() < 0.4:
                merged.append("{}, {}".format(sentences[i], sentences[i + 1]))
                i += 2
            else:
                merged.append(sentences[i])
                i += 1

        result = ". ".join(merged)
        if prompt.rstrip()[-1:] in ".!?":
            result += "."
        return _tidy(result)

    def _remove_filler(self, prompt: str, index: int) -> str:
        result = prompt
        for pattern in FILLER_GROUPS:
            if self._rng.random() < 0.7:
                result = pattern.sub("", result)
        return _tidy(result)

    # ------------------------------------------------------------------
    # Offspring
    # ------------------------------------------------------------------

    def offspring(self, parent1: str, parent2: str, config: GeneticConfig) -> str:
        """Crossover with probability crossover_rate, then maybe one mutation."""
        child = parent1
        if self._rng.random() < config.crossover_rate:
            child = self.crossover(parent1, parent2)
        if self._rng.random() < config.mutation_rate:
            child = self.mutate(child)
        return child

    def crossover(self, parent1: str, parent2: str) -> str:
        """Single-point crossover on words: parent1[:point] + parent2[point:]."""
        words1 = parent1.split()
        words2 = parent2.split()
        bound = min(len(words1), len(words2))
        point = self._rng.randrange(bound) if bound > 0 else 0
        return " ".join(words1[:point] + words2[point:])

    def mutate(self, genome: str, op: Optional[MutationOp] = None) -> str:
        """Apply exactly one mutation; a random one unless ``op`` is given."""
        if op is None:
            op = self._rng.choice(list(MutationOp))
        words = genome.split()
        return " ".join(self._mutations[op](list(words)))

    def _insert_word(self, words: List[str]) -> List[str]:
        word = self._rng.choice(COMMON_WORDS)
        words.insert(self._rng.randint(0, len(words)), word)
        return words

    def _delete_word(self, words: List[str]) -> List[str]:
        if len(words) <= 3:
            return words
        del words[self._rng.randrange(len(words))]
        return words

    def _replace_word(self, words: List[str]) -> List[str]:
        if not words:
            return words
        words[self._rng.randrange(len(words))] = self._rng.choice(GENERIC_SYNONYMS)
        return words

    def _swap_words(self, words: List[str]) -> List[str]:
        if len(words) < 2:
            return words
        i = self._rng.randrange(len(words))
        j = self._rng.randrange(len(words))
        words[i], words[j] = words[j], words[i]
        return words
