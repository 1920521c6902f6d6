"""
Custom exceptions for the Broker AI orchestrator.

This module provides the error taxonomy shared by providers, the resilience
layer and the orchestrator. All exceptions inherit from BrokerAIException and
carry an error code for consistent logging.

Retry classification (see broker_ai.resilience.retry.is_retryable):
    AuthenticationError        -> never retried (credential problem)
    UnsupportedOperationError  -> never retried (capability problem)
    TransientError             -> retried (5xx, 429, connection resets)
    ProviderTimeoutError       -> retried (per-call ceiling exceeded)
    ResponseParseError         -> retried (model returned malformed output)

Reference:
- Release It! (Nygard): Stability patterns, fail fast on unrecoverable errors
- GUIDELINES: Specific exceptions, always capture with 'as e'
"""

from enum import Enum
from typing import Any, Optional


# =============================================================================
# Error Codes Enum
# =============================================================================


class ErrorCode(str, Enum):
    """
    Error codes for Broker AI exceptions.

    These codes provide a consistent way to identify error types in logs
    and monitoring records.
    """

    BROKER_AI_ERROR = "BROKER_AI_ERROR"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    UNSUPPORTED_OPERATION = "UNSUPPORTED_OPERATION"
    TRANSIENT_ERROR = "TRANSIENT_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    ALL_PROVIDERS_FAILED = "ALL_PROVIDERS_FAILED"
    KNOWLEDGE_BASE_ERROR = "KNOWLEDGE_BASE_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


# =============================================================================
# Base Exception
# =============================================================================


class BrokerAIException(Exception):
    """
    Base exception for all Broker AI errors.

    Attributes:
        message: Human-readable error message.
        error_code: Machine-readable error code from ErrorCode enum.
    """

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.BROKER_AI_ERROR,
        **kwargs: Any,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            error_code: Machine-readable error code.
            **kwargs: Additional attributes to set on the exception.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code

        for key, value in kwargs.items():
            setattr(self, key, value)


# =============================================================================
# Provider Errors
# =============================================================================


class ProviderError(BrokerAIException):
    """
    Exception for model provider issues.

    Raised when communication with a model provider fails and the failure
    does not fit one of the more specific subclasses below.

    Attributes:
        provider: Name of the provider (e.g., "openai", "anthropic").
        status_code: HTTP status code from the provider API (if applicable).
    """

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: Optional[int] = None,
        error_code: str = ErrorCode.PROVIDER_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.provider = provider
        self.status_code = status_code


class AuthenticationError(ProviderError):
    """
    Provider rejected the credentials (HTTP 401/403).

    Not retried: repeating the call with the same key cannot succeed.
    Still counted as a failure by the circuit breaker.
    """

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: Optional[int] = 401,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            provider,
            status_code=status_code,
            error_code=ErrorCode.AUTHENTICATION_ERROR,
            **kwargs,
        )


class UnsupportedOperationError(ProviderError):
    """Provider does not offer the requested capability (e.g. embeddings)."""

    def __init__(self, message: str, provider: str, **kwargs: Any) -> None:
        super().__init__(
            message,
            provider,
            error_code=ErrorCode.UNSUPPORTED_OPERATION,
            **kwargs,
        )


class TransientError(ProviderError):
    """
    Temporary provider failure: 5xx, 429 or a dropped connection.

    Attributes:
        retry_after: Seconds suggested by the provider, if any.
    """

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        error_code: str = ErrorCode.TRANSIENT_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            provider,
            status_code=status_code,
            error_code=error_code,
            **kwargs,
        )
        self.retry_after = retry_after


class ProviderTimeoutError(TransientError):
    """
    Provider call exceeded its per-call time ceiling.

    Attributes:
        timeout_seconds: The ceiling that was exceeded.
    """

    def __init__(
        self,
        message: str,
        provider: str,
        timeout_seconds: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            provider,
            status_code=kwargs.pop("status_code", None),
            error_code=ErrorCode.TIMEOUT_ERROR,
            **kwargs,
        )
        self.timeout_seconds = timeout_seconds


# =============================================================================
# Output and Aggregate Errors
# =============================================================================


class ResponseParseError(BrokerAIException):
    """
    Model output could not be decoded into the expected structure.

    Retryable: a second sample from the model is likely to be well formed.

    Attributes:
        raw_text: The offending model output (truncated for logging).
    """

    def __init__(self, message: str, raw_text: str = "", **kwargs: Any) -> None:
        super().__init__(message, ErrorCode.PARSE_ERROR, **kwargs)
        self.raw_text = raw_text[:500]


class AllProvidersFailedError(BrokerAIException):
    """
    Primary and fallback providers both failed for one request.

    Built internally by the orchestrator and absorbed into the degraded
    reply; never surfaced by chat().

    Attributes:
        provider_errors: Mapping of provider path name to its final error.
    """

    def __init__(
        self,
        provider_errors: dict[str, Exception],
        message: Optional[str] = None,
    ) -> None:
        summary = "; ".join(
            f"{name}: {type(err).__name__}: {err}" for name, err in provider_errors.items()
        )
        super().__init__(
            message or f"All providers failed ({summary})",
            ErrorCode.ALL_PROVIDERS_FAILED,
        )
        self.provider_errors = provider_errors


class KnowledgeBaseError(BrokerAIException):
    """Knowledge-base search failed or was unreachable."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, ErrorCode.KNOWLEDGE_BASE_ERROR, **kwargs)


class ConfigurationError(BrokerAIException):
    """Required configuration (such as an API key) is missing or invalid."""

    def __init__(self, message: str, setting: Optional[str] = None) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR)
        self.setting = setting
