"""
Reviewer exceptions.

Retryable failures derive from LLMTransportError; everything else is
terminal for the request that raised it.
"""

from typing import Optional


class ReviewerError(Exception):
    """Base exception for reviewer errors."""
    pass


class MissingCredentialError(ReviewerError):
    """Provider needs an API key and none was configured."""
    pass


class LLMTransportError(ReviewerError):
    """LLM call failed on the wire (connection error or non-2xx status)."""

    def __init__(self, message: str, status_code: Optional[int] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class LLMTimeoutError(LLMTransportError):
    """LLM call timed out."""
    pass


class LLMRetriesExhaustedError(ReviewerError):
    """Every attempt failed; wraps the last retryable error."""

    def __init__(self, last_error: LLMTransportError, attempts: int):
        super().__init__(f"All {attempts} attempt(s) failed: {last_error}")
        self.last_error = last_error
        self.attempts = attempts


class LLMInvalidOutputError(ReviewerError):
    """LLM returned output that does not match the response schema."""
    pass


class GitHubError(ReviewerError):
    """GitHub API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
