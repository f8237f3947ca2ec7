"""Response Normalizer — post-processes GenerationResponses.

Applies final normalization steps after the provider adapter returns:
  - Strips reasoning blocks (<think>...</think>) emitted by reasoning models
  - Trims surrounding whitespace
  - Keeps token totals consistent
  - Ensures completion timestamps are set
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

from semantic_uq.gateway.types import GenerationResponse, RequestStatus

_THINK_PATTERN = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)


def normalize_response(response: GenerationResponse) -> GenerationResponse:
    """Apply normalization to a generation response.

    Idempotent.
    """
    if response.status == RequestStatus.SUCCESS:
        if response.completed_at is None:
            response.completed_at = datetime.now(timezone.utc)
        response.content = strip_reasoning(response.content)

    if response.total_tokens == 0 and (response.input_tokens or response.output_tokens):
        response.total_tokens = response.input_tokens + response.output_tokens

    return response


def strip_reasoning(text: str) -> str:
    """Remove <think> blocks so JSON extraction sees only the final answer."""
    if not text:
        return ""
    if "<think>" in text.lower():
        text = _THINK_PATTERN.sub("", text)
    return text.strip()
