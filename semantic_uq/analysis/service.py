"""Thin bridge between the analysis stages and a TextGenerator."""

from __future__ import annotations

from semantic_uq.core.exceptions import ServiceError
from semantic_uq.gateway.types import ChatMessage, TextGenerator


async def request_text(
    generator: TextGenerator,
    messages: list[ChatMessage],
    temperature: float,
) -> str:
    """Return the reply content or raise ServiceError.

    A non-success status and any exception raised by the generator both
    become ServiceError. Cancellation is left alone.
    """
    try:
        response = await generator.generate(messages, temperature=temperature)
    except ServiceError:
        raise
    except Exception as e:
        raise ServiceError(f"generator raised {type(e).__name__}") from e

    if not response.ok:
        raise ServiceError(
            f"generation failed with status {response.status.value}",
            status=response.status.value,
            error_code=response.error_code,
        )
    return response.content
