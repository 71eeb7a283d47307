# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Exception hierarchy for leanprompt."""


class LeanPromptError(Exception):
    """Base class for all leanprompt errors."""


class ConfigError(LeanPromptError, ValueError):
    """Invalid optimizer configuration. Raised before any work starts."""


class DimensionMismatch(LeanPromptError, ValueError):
    """Two vectors of different length were compared."""

    def __init__(self, len_a: int, len_b: int):
        super().__init__(
            "Vectors must have the same length (got {} and {})".format(len_a, len_b),
        )
        self.len_a = len_a
        self.len_b = len_b


class EmbeddingUnavailable(LeanPromptError):
    """The embedding backend could not produce a vector for a text.

    Non-fatal for candidates: the evaluator turns it into a zero fitness.
    """


class OriginalEmbeddingFailed(LeanPromptError):
    """The original prompt could not be embedded, so there is no baseline."""
