"""
Core module for the Broker AI orchestrator.

This module contains configuration and the shared exception taxonomy.
"""

from broker_ai.core.config import Settings, get_settings
from broker_ai.core.exceptions import (
    AllProvidersFailedError,
    AuthenticationError,
    BrokerAIException,
    ConfigurationError,
    ErrorCode,
    KnowledgeBaseError,
    ProviderError,
    ProviderTimeoutError,
    ResponseParseError,
    TransientError,
    UnsupportedOperationError,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Exceptions
    "ErrorCode",
    "BrokerAIException",
    "ProviderError",
    "AuthenticationError",
    "UnsupportedOperationError",
    "TransientError",
    "ProviderTimeoutError",
    "ResponseParseError",
    "AllProvidersFailedError",
    "KnowledgeBaseError",
    "ConfigurationError",
]
