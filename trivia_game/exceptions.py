"""
Exception types for the trivia game.
"""
from enum import Enum
from typing import Optional


class QuizGameError(Exception):
    """Base exception for trivia game errors."""
    pass


class FetchErrorReason(str, Enum):
    """Why a question batch could not be produced."""
    NETWORK = "network"
    PROVIDER_REJECTED = "provider_rejected"
    MALFORMED_PAYLOAD = "malformed_payload"


class FetchError(QuizGameError):
    """Raised by a question source when no valid batch could be fetched."""

    def __init__(self, reason: FetchErrorReason, message: str, response_code: Optional[int] = None):
        super().__init__(message)
        self.reason = reason
        self.response_code = response_code

    def __str__(self) -> str:
        return f"{self.reason.value}: {self.args[0]}"


class NoQuestionsError(QuizGameError):
    """Raised when a session cannot start because no questions are available."""
    pass


class InvalidSessionStateError(QuizGameError):
    """Raised when a session operation is called in a state that does not allow it."""
    pass


class ConfigError(QuizGameError):
    """Raised when the application configuration cannot be loaded."""
    pass
