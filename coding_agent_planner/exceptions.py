"""
Custom exception hierarchy for Coding Agent Planner.
Provides unified error handling for the generation client, the response
parsers and the HTTP API.
"""

from typing import Optional

from fastapi import HTTPException, status


class PlannerException(Exception):
    """Base class for all Coding Agent Planner exceptions."""

    retryable = False


class ValidationError(PlannerException):
    """Raised when required input fields are missing or invalid. Never retried."""


class ConfigurationError(PlannerException):
    """Raised for missing API keys, permission or endpoint errors (401/403/404)."""


class RateLimitError(PlannerException):
    """Raised when the generation service answers 429."""

    retryable = True

    def __init__(self, message: str = "Rate limit exceeded", retry_after: float = 60):
        super().__init__(message)
        self.retry_after = retry_after


class ServiceError(PlannerException):
    """Raised for 5xx answers or unusable payloads from the generation service."""

    retryable = True

    def __init__(self, message: str = "AI service error", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(PlannerException):
    """Raised when the generation service cannot be reached."""

    retryable = True


class RequestTimeoutError(PlannerException):
    """Raised when a call to the generation service exceeds its timeout."""

    retryable = True


class ParseError(PlannerException):
    """Raised when no usable payload can be recovered from a model response."""

    def __init__(self, message: str, original_response: Optional[str] = None):
        super().__init__(message)
        self.original_response = original_response


class PlannerAPIException(HTTPException):
    """
    Common HTTP exception for the Coding Agent Planner API.
    Provides a consistent response format.
    """
    def __init__(self, status_code: int, detail, headers: dict = None):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class RateLimitExceededException(PlannerAPIException):
    """Raised when the upstream generation service is rate limiting us."""
    def __init__(self, retry_after: float = 60, detail: str = "Rate limit exceeded. Please try again later."):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"error": detail, "retryAfter": str(int(retry_after))},
            headers={"Retry-After": str(int(retry_after))},
        )
