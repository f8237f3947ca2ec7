"""Engine exception hierarchy.

ServiceError and ParseError never leave the pipeline: every stage catches
them and substitutes its documented default. InputError and
CancellationError are the only failures a caller sees.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all engine errors."""


class ServiceError(EngineError):
    """The text-generation call failed (network, timeout, non-2xx, open circuit)."""

    def __init__(self, message: str, status: str = "", error_code: str = ""):
        super().__init__(message)
        self.status = status
        self.error_code = error_code


class ParseError(EngineError):
    """The service replied but no usable JSON object or relation label was found."""


class InputError(EngineError):
    """The caller passed an unusable input (e.g. an empty response set)."""


class CancellationError(EngineError):
    """The caller aborted the analysis before it completed."""
