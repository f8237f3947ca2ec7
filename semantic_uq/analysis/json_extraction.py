"""Typed extraction of JSON objects from free-form model replies.

Models wrap JSON in prose, Markdown fences or reasoning blocks. The reply is
scanned for the first balanced ``{...}`` object that decodes, and that object
is validated against a pydantic schema whose fields carry their own
defaults. Callers either get the decoded model or a ``ParseError``, or use
``decode_with_fallback`` for a tagged ``Ok | Fallback`` result.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from semantic_uq.core.exceptions import ParseError
from semantic_uq.gateway.normalizer import strip_reasoning

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


# ---------------------------------------------------------------------------
# Tagged result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Ok(Generic[T]):
    """A value genuinely decoded from the model reply."""

    value: T
    is_fallback: ClassVar[bool] = False


@dataclass(frozen=True)
class Fallback(Generic[T]):
    """A documented default used because decoding failed."""

    value: T
    reason: str = ""
    is_fallback: ClassVar[bool] = True


ParseOutcome = Union[Ok[T], Fallback[T]]


# ---------------------------------------------------------------------------
# Reply schemas
# ---------------------------------------------------------------------------


def _score(value: Any, default: float = 0.5) -> float:
    """Coerce a rating to [0, 1]; anything non-numeric becomes the default."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if score != score:  # NaN
        return default
    return max(0.0, min(1.0, score))


class _Reply(BaseModel):
    model_config = ConfigDict(extra="ignore")


class FeatureRatings(_Reply):
    """Five-dimension rating of one response. Missing dimensions default to 0.5."""

    concreteness: float = 0.5
    technicality: float = 0.5
    emotional_tone: float = 0.5
    certainty: float = 0.5
    complexity: float = 0.5

    @field_validator("*", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return _score(value)


class EntailmentVerdict(_Reply):
    """NLI classification. ``relation`` is required; confidence defaults to 0.5."""

    relation: str
    confidence: float = 0.5
    explanation: str = ""
    logical_basis: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return _score(value)

    @field_validator("explanation", "logical_basis", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)


class ConsistencyJudgment(_Reply):
    """Internal self-consistency rubric for a single response."""

    consistency_score: float = 0.5
    logical_issues: list[str] = []
    contradictions: list[str] = []
    overall_assessment: str = ""

    @field_validator("consistency_score", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return _score(value)

    @field_validator("logical_issues", "contradictions", mode="before")
    @classmethod
    def _strings(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return [str(v) for v in value]

    @field_validator("overall_assessment", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)


class ValidityJudgment(_Reply):
    """Logical validity of a response relative to the query."""

    validity_score: float = 0.5
    relevance: float = 0.5
    completeness: float = 0.5
    reasoning: float = 0.5
    evidence: float = 0.5

    @field_validator("*", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return _score(value)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def _balanced_object_at(text: str, start: int) -> str | None:
    """Return the balanced ``{...}`` substring starting at *start*, string-aware."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def extract_json_object(text: str) -> dict | None:
    """Find the first balanced substring that decodes to a JSON object."""
    if not text:
        return None
    text = strip_reasoning(text)
    start = text.find("{")
    while start != -1:
        candidate = _balanced_object_at(text, start)
        if candidate is None:
            start = text.find("{", start + 1)
            continue
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            return data
        start = text.find("{", start + 1)
    return None


def decode_reply(text: str, schema: type[M]) -> M:
    """Decode *text* into *schema* or raise ParseError."""
    data = extract_json_object(text)
    if data is None:
        raise ParseError(f"no JSON object found for {schema.__name__}")
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"{schema.__name__} validation failed: {e.error_count()} error(s)") from e


def decode_with_fallback(text: str, schema: type[M], default: M) -> ParseOutcome[M]:
    """Decode *text* into *schema*, tagging the schema default on failure."""
    try:
        return Ok(decode_reply(text, schema))
    except ParseError as e:
        logger.debug("Falling back to default %s: %s", schema.__name__, e)
        return Fallback(default, reason=str(e))
