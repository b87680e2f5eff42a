from __future__ import annotations

from typing import Tuple


GENERIC_UPSTREAM_MESSAGE = "An error occurred while communicating with the AI model."
RESET_CHAT_MESSAGE = (
    "The AI model rejected the conversation history. "
    "Please reset the chat and try again."
)

# Substrings of upstream errors caused by a malformed conversation history.
SHAPE_ERROR_PATTERNS: Tuple[str, ...] = (
    "alternate between user and model",
    "first content should be with role 'user'",
    "contents must not be empty",
    "contents is not specified",
    "must include at least one parts field",
    "parts must not be empty",
)


class RelayError(Exception):
    """Base error carrying the HTTP status and a message safe to show clients."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequest(RelayError):
    status_code = 400


class InvalidHistory(InvalidRequest):
    pass


class UpstreamError(RelayError):
    pass


class UpstreamShapeError(UpstreamError):
    status_code = 400

    def __init__(self, message: str = RESET_CHAT_MESSAGE) -> None:
        super().__init__(message)


class UpstreamTransientError(UpstreamError):
    @classmethod
    def from_exception(cls, exc: BaseException) -> "UpstreamTransientError":
        detail = " ".join(str(exc).split())
        if not detail:
            return cls(GENERIC_UPSTREAM_MESSAGE)
        return cls(f"{GENERIC_UPSTREAM_MESSAGE} ({detail[:500]})")


def is_shape_error(exc: BaseException) -> bool:
    text = str(exc).lower()
    return any(pattern in text for pattern in SHAPE_ERROR_PATTERNS)


def classify_upstream_error(exc: BaseException) -> UpstreamError:
    """Map a failure raised by the model backend to the error returned to clients."""
    if isinstance(exc, UpstreamError):
        return exc
    if is_shape_error(exc):
        return UpstreamShapeError()
    return UpstreamTransientError.from_exception(exc)
