# backend/admission/core/exceptions.py
"""
Exceptions raised by the admission layer.

Configuration and policy errors propagate to the caller. Store errors are
contained inside a decision and converted to a fail-open result.
"""

from typing import Any, Dict, Optional


class RateLimitError(Exception):
    """Base exception for all admission-control errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class InvalidConfiguration(RateLimitError):
    """Raised when required construction parameters are missing or invalid."""


class CorruptPolicy(RateLimitError):
    """Raised when a stored tenant policy cannot be parsed."""


class StoreUnavailable(RateLimitError):
    """Raised when the shared counter store cannot be reached."""
