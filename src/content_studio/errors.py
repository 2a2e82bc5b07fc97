"""
Error types raised by the generation client, the operation tracker and the task orchestrators.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import Operation


class GenerationError(Exception):
    """Base class for every error surfaced to consumers of the generation core."""


class ServiceError(GenerationError):
    """Transport failure, authentication failure, or a rejection by the external service."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SchemaParseError(GenerationError):
    """Structured output could not be parsed; ``raw_text`` keeps the service output."""

    def __init__(self, message: str, raw_text: str) -> None:
        super().__init__(message)
        self.raw_text = raw_text


class ValidationError(GenerationError):
    """A caller-side precondition was violated before anything was dispatched."""


class OperationFailure(GenerationError):
    """A video job ended in FAILED; ``operation`` is the final snapshot."""

    def __init__(self, message: str, operation: "Operation") -> None:
        super().__init__(message)
        self.operation = operation


class OperationTimeout(OperationFailure):
    """Polling exceeded the configured attempt count or deadline."""


class OperationCancelled(OperationFailure):
    """Polling was stopped through the tracker's cancellation token."""
