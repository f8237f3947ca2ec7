"""Deterministic lexical heuristics used when the language model is unavailable.

``HeuristicEstimator`` is the seam: the pipeline only ever talks to the
interface, so the lexical implementation can be swapped or tested on its own.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from semantic_uq.analysis.types import FeatureSource, SemanticVector, UncertaintyFactor

_WORD_PATTERN = re.compile(r"[A-Za-z]+(?:'[A-Za-z]+)?")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_DIGIT_PATTERN = re.compile(r"\d")

_TECHNICAL_TERMS = (
    "api",
    "algorithm",
    "function",
    "method",
    "class",
    "object",
    "database",
    "server",
    "client",
    "framework",
    "library",
    "implementation",
    "interface",
    "protocol",
    "authentication",
    "configuration",
    "deployment",
    "testing",
    "debug",
)

_POSITIVE_WORDS = {
    "good",
    "great",
    "excellent",
    "success",
    "successful",
    "effective",
    "improve",
    "improves",
    "better",
    "optimal",
    "efficient",
    "reliable",
}

_NEGATIVE_WORDS = {
    "error",
    "errors",
    "problem",
    "problems",
    "issue",
    "issues",
    "fail",
    "fails",
    "failure",
    "wrong",
    "bad",
    "poor",
    "inefficient",
    "unreliable",
    "broken",
}

_UNCERTAINTY_WORDS = {
    "maybe",
    "perhaps",
    "might",
    "could",
    "possibly",
    "uncertain",
    "unclear",
    "ambiguous",
    "probably",
}

_HEDGING_PHRASES = (
    "maybe",
    "perhaps",
    "possibly",
    "probably",
    "might be",
    "it seems",
    "i think",
    "i believe",
    "not sure",
    "it is likely",
    "unclear",
)

_CONTRADICTORY_PAIRS = (
    ("possible", "impossible"),
    ("correct", "incorrect"),
    ("valid", "invalid"),
    ("necessary", "unnecessary"),
    ("true", "false"),
    ("always", "never"),
)

MIN_DETAILED_WORDS = 10
COMPLEXITY_WORD_SCALE = 20.0


class HeuristicEstimator(ABC):
    """Fallback estimators that never call the language model."""

    @abstractmethod
    def semantic_vector(self, text: str) -> SemanticVector:
        """Rate *text* on the five semantic dimensions."""

    @abstractmethod
    def single_response_factors(self, text: str) -> list[UncertaintyFactor]:
        """Uncertainty factors visible in a lone response."""


class LexicalHeuristicEstimator(HeuristicEstimator):
    """Keyword and marker counting over the raw text."""

    def semantic_vector(self, text: str) -> SemanticVector:
        lower = text.lower()
        words = _WORD_PATTERN.findall(lower)
        tokens = set(words)
        word_count = len(text.split())

        concreteness = 0.8 if _DIGIT_PATTERN.search(text) or _has_proper_noun(text) else 0.5

        technical_hits = sum(1 for term in _TECHNICAL_TERMS if term in lower)
        technicality = min(1.0, technical_hits / word_count) if word_count else 0.0

        if tokens & _POSITIVE_WORDS:
            emotional_tone = 0.7
        elif tokens & _NEGATIVE_WORDS:
            emotional_tone = 0.3
        else:
            emotional_tone = 0.5

        certainty = 0.3 if tokens & _UNCERTAINTY_WORDS else 0.7
        complexity = min(1.0, word_count / COMPLEXITY_WORD_SCALE)

        return SemanticVector(
            (concreteness, technicality, emotional_tone, certainty, complexity),
            source=FeatureSource.HEURISTIC,
        )

    def single_response_factors(self, text: str) -> list[UncertaintyFactor]:
        factors: list[UncertaintyFactor] = []
        lower = text.lower()

        if any(phrase in lower for phrase in _HEDGING_PHRASES):
            factors.append(UncertaintyFactor.HEDGING_LANGUAGE)

        if len(text.split()) < MIN_DETAILED_WORDS:
            factors.append(UncertaintyFactor.INSUFFICIENT_DETAIL)

        if self.has_internal_contradiction(text):
            factors.append(UncertaintyFactor.INTERNAL_CONTRADICTIONS)

        return factors

    @staticmethod
    def has_internal_contradiction(text: str) -> bool:
        """Crude antonym check: both halves of a contradictory pair appear."""
        tokens = set(_WORD_PATTERN.findall(text.lower()))
        return any(a in tokens and b in tokens for a, b in _CONTRADICTORY_PAIRS)


def _has_proper_noun(text: str) -> bool:
    """A capitalized word that does not merely open a sentence."""
    for sentence in _SENTENCE_SPLIT.split(text.strip()):
        words = sentence.split()
        for word in words[1:]:
            if word[:1].isupper():
                return True
    return False
