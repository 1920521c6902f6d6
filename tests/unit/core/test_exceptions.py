"""
Tests for the exception hierarchy.

Test Categories:
- Base exception attributes
- Provider error subclasses and error codes
- Aggregate and parse errors
"""

import pytest


class TestBrokerAIException:
    """Tests for the base exception."""

    def test_message_and_default_code(self) -> None:
        from broker_ai.core.exceptions import BrokerAIException, ErrorCode

        exc = BrokerAIException("something broke")

        assert str(exc) == "something broke"
        assert exc.message == "something broke"
        assert exc.error_code == ErrorCode.BROKER_AI_ERROR

    def test_extra_kwargs_become_attributes(self) -> None:
        from broker_ai.core.exceptions import BrokerAIException

        exc = BrokerAIException("oops", request_id="r-1")

        assert exc.request_id == "r-1"


class TestProviderErrors:
    """Tests for provider error subclasses."""

    def test_authentication_error(self) -> None:
        from broker_ai.core.exceptions import AuthenticationError, ErrorCode, ProviderError

        exc = AuthenticationError("bad key", provider="openai")

        assert isinstance(exc, ProviderError)
        assert exc.provider == "openai"
        assert exc.status_code == 401
        assert exc.error_code == ErrorCode.AUTHENTICATION_ERROR

    def test_transient_error_keeps_retry_after(self) -> None:
        from broker_ai.core.exceptions import ErrorCode, TransientError

        exc = TransientError("rate limited", provider="openai", status_code=429, retry_after=2.5)

        assert exc.status_code == 429
        assert exc.retry_after == 2.5
        assert exc.error_code == ErrorCode.TRANSIENT_ERROR

    def test_timeout_is_transient(self) -> None:
        from broker_ai.core.exceptions import ErrorCode, ProviderTimeoutError, TransientError

        exc = ProviderTimeoutError("slow", provider="anthropic", timeout_seconds=30.0)

        assert isinstance(exc, TransientError)
        assert exc.timeout_seconds == 30.0
        assert exc.status_code is None
        assert exc.error_code == ErrorCode.TIMEOUT_ERROR

    def test_timeout_accepts_status_code(self) -> None:
        from broker_ai.core.exceptions import ProviderTimeoutError

        exc = ProviderTimeoutError("408", provider="openai", status_code=408)

        assert exc.status_code == 408

    def test_unsupported_operation(self) -> None:
        from broker_ai.core.exceptions import ErrorCode, UnsupportedOperationError

        exc = UnsupportedOperationError("no embeddings", provider="anthropic")

        assert exc.error_code == ErrorCode.UNSUPPORTED_OPERATION
        assert exc.status_code is None


class TestAggregateErrors:
    """Tests for parse and all-providers errors."""

    def test_parse_error_truncates_raw_text(self) -> None:
        from broker_ai.core.exceptions import ResponseParseError

        exc = ResponseParseError("not json", raw_text="x" * 2000)

        assert len(exc.raw_text) == 500

    def test_all_providers_failed_summarises_errors(self) -> None:
        from broker_ai.core.exceptions import AllProvidersFailedError, TransientError

        errors = {
            "primary": TransientError("503", provider="openai"),
            "fallback": RuntimeError("down"),
        }
        exc = AllProvidersFailedError(errors)

        assert exc.provider_errors is errors
        assert "primary: TransientError: 503" in str(exc)
        assert "fallback: RuntimeError: down" in str(exc)

    def test_configuration_error_names_setting(self) -> None:
        from broker_ai.core.exceptions import ConfigurationError, ErrorCode

        exc = ConfigurationError("missing key", setting="openai_api_key")

        assert exc.setting == "openai_api_key"
        assert exc.error_code == ErrorCode.CONFIGURATION_ERROR

    @pytest.mark.parametrize(
        "name",
        [
            "ProviderError",
            "AuthenticationError",
            "TransientError",
            "ResponseParseError",
            "KnowledgeBaseError",
            "ConfigurationError",
        ],
    )
    def test_all_inherit_from_base(self, name: str) -> None:
        from broker_ai.core import exceptions

        assert issubclass(getattr(exceptions, name), exceptions.BrokerAIException)
