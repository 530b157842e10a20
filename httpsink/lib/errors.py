"""Structured exception hierarchy for the HTTP sink.

Provides specific exception types for the failure modes of batched HTTP
delivery, with rich context (status code, URL, attempt count) for operator
diagnosis.

Taxonomy:
- ConfigurationError: raised at construction/validation time, before any
  delivery attempt.
- TransientDeliveryError: a single failed attempt that is eligible for retry.
- TerminalDeliveryError: delivery abandoned (FAIL action, retry deadline
  exceeded, unusable URL, credential failure). The batch is dropped.
- EncodingError: charset or placeholder substitution failure. Terminal for
  the flush it happens in.
- AuthenticationError: OAuth2 token could not be acquired.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

__all__ = [
    "SinkError",
    "ConfigurationError",
    "DeliveryError",
    "TransientDeliveryError",
    "TerminalDeliveryError",
    "EncodingError",
    "AuthenticationError",
]


class SinkError(Exception):
    """Base exception for all HTTP sink errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if self.details:
            detail_lines = [f"  {k}: {v}" for k, v in self.details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(SinkError):
    """Error in sink configuration.

    Raised when configuration is invalid or incomplete. Always raised before
    any record is delivered.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        issues: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value
        self.issues = issues or []

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        if issues:
            details["issue_count"] = len(issues)
            issue_lines = "\n".join(f"  - {issue}" for issue in issues)
            message = f"{message}\n\nIssues found:\n{issue_lines}"

        super().__init__(message, details=details, **kwargs)


class DeliveryError(SinkError):
    """Error delivering a batch to the remote endpoint."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        attempts: Optional[int] = None,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.status_code = status_code
        self.url = url
        self.attempts = attempts
        self.cause = cause

        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code
        if url:
            details["url"] = url
        if attempts is not None:
            details["attempts"] = attempts
        if cause is not None:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class TransientDeliveryError(DeliveryError):
    """A failed attempt that the retry policy allows to be retried."""


class TerminalDeliveryError(DeliveryError):
    """Delivery abandoned; the batch has been dropped."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "The batch was dropped and will not be re-sent. Check the endpoint "
                "status and the error handling table, then re-run the pipeline."
            )
        super().__init__(message, suggestion=suggestion, **kwargs)


class EncodingError(SinkError):
    """Charset or placeholder substitution failure."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        charset: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.charset = charset

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if charset:
            details["charset"] = charset

        super().__init__(message, details=details, **kwargs)


class AuthenticationError(SinkError):
    """Error acquiring an OAuth2 access token."""

    def __init__(
        self,
        message: str,
        *,
        token_url: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.token_url = token_url
        self.cause = cause

        details = kwargs.pop("details", {})
        if token_url:
            details["token_url"] = token_url
        if cause is not None:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Check the OAuth2 client id, client secret and refresh token. "
                "Verify environment variables are set."
            )

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)
