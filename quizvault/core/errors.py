"""Error taxonomy shared by the core services and mapped to HTTP by the server."""

from __future__ import annotations


class QuizEngineError(Exception):
    """Base class for failures the boundary layer translates into a response."""

    kind: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(QuizEngineError):
    """Quiz, question or submission does not exist."""

    kind = "not_found"


class ForbiddenError(QuizEngineError):
    """Viewer is not the assigned target or not the owner."""

    kind = "forbidden"


class UnavailableError(QuizEngineError):
    """Quiz exists but is not active."""

    kind = "unavailable"


class ConflictError(QuizEngineError):
    """A single-attempt quiz was already submitted by this viewer."""

    kind = "conflict"


class InvalidStateError(QuizEngineError):
    """Nothing to grade, or a grading key could not be trusted."""

    kind = "invalid_state"


class UpstreamFailureError(QuizEngineError):
    """The AI question generator failed or returned unusable output."""

    kind = "upstream_failure"


class QuestionValidationError(ValueError):
    """Raised when a question payload does not match its type's shape."""


class QuizValidationError(ValueError):
    """Raised when quiz settings are outside their allowed ranges."""
