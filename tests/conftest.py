# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Shared fixtures: offline embedding oracles."""
import re
import zlib

import pytest

from leanprompt.embeddings.base import EmbeddingOracle
from leanprompt.errors import EmbeddingUnavailable

_WORD = re.compile(r"[a-z]+")


class BagOfWordsOracle(EmbeddingOracle):
    """Deterministic hashed word-count vectors.

    ``fail`` is an optional predicate; texts it accepts raise
    EmbeddingUnavailable. ``batch_fails`` makes every batch call raise so the
    per-genome fallback is exercised.
    """

    def __init__(self, dim=256, fail=None, batch_fails=False):
        self.dim = dim
        self.fail = fail
        self.batch_fails = batch_fails
        self.calls = 0
        self.batch_calls = 0
        self.texts = []
        self.closed = False

    async def embed(self, text):
        self.calls += 1
        self.texts.append(text)
        if self.fail is not None and self.fail(text):
            raise EmbeddingUnavailable("fake backend refused: {!r}".format(text[:20]))
        vector = [0.0] * self.dim
        for word in _WORD.findall(text.lower()):
            vector[zlib.crc32(word.encode("utf-8")) % self.dim] += 1.0
        return vector

    async def embed_batch(self, texts):
        self.batch_calls += 1
        if self.batch_fails:
            raise RuntimeError("batch endpoint down")
        return await super().embed_batch(texts)

    async def close(self):
        self.closed = True


class KeywordOracle(EmbeddingOracle):
    """One dimension per keyword: 1.0 if the text mentions it.

    Any text that keeps every keyword is a perfect match, so shorter
    rewordings always score higher than the original.
    """

    def __init__(self, keywords):
        self.keywords = [k.lower() for k in keywords]
        self.calls = 0
        self.closed = False

    async def embed(self, text):
        self.calls += 1
        words = set(_WORD.findall(text.lower()))
        vector = [1.0 if k in words else 0.0 for k in self.keywords]
        if not any(vector):
            raise EmbeddingUnavailable("no keywords present")
        return vector

    async def close(self):
        self.closed = True


@pytest.fixture
def bow_oracle():
    return BagOfWordsOracle()


@pytest.fixture
def make_bow_oracle():
    return BagOfWordsOracle


@pytest.fixture
def keyword_oracle():
    return KeywordOracle(["analysis", "current", "market", "trends"])
