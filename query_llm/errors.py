"""Error types shared across the transport, pipeline and evaluator."""

from __future__ import annotations

from typing import Optional


class LLMError(RuntimeError):
    """Raised when the language model fails to provide the requested output."""


class TransportError(LLMError):
    """Raised for non-2xx responses and connection failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class StreamParseError(LLMError):
    """Raised when a server-sent event carries a payload that is not JSON."""

    def __init__(self, message: str, *, payload: str = "") -> None:
        super().__init__(message)
        self.payload = payload


class ResponseShapeError(LLMError):
    """Raised when a buffered completion body has no usable choice."""


class ScenarioError(RuntimeError):
    """Raised for conditions that must stop a scenario run immediately."""


__all__ = [
    "LLMError",
    "TransportError",
    "StreamParseError",
    "ResponseShapeError",
    "ScenarioError",
]
