"""Tests for the sink exception hierarchy."""

import pytest

from httpsink.lib.errors import (
    AuthenticationError,
    ConfigurationError,
    DeliveryError,
    EncodingError,
    SinkError,
    TerminalDeliveryError,
    TransientDeliveryError,
)


class TestSinkError:
    """Tests for the base exception."""

    def test_message_only(self) -> None:
        error = SinkError("Something broke")
        assert str(error) == "Something broke"
        assert error.details == {}

    def test_details_and_suggestion_in_str(self) -> None:
        error = SinkError("Something broke", details={"url": "https://x"}, suggestion="Retry later")
        text = str(error)
        assert "url: https://x" in text
        assert "Suggestion: Retry later" in text

    def test_to_dict(self) -> None:
        error = SinkError("Something broke", details={"k": "v"})
        assert error.to_dict() == {
            "error_type": "SinkError",
            "message": "Something broke",
            "details": {"k": "v"},
            "suggestion": None,
        }


class TestConfigurationError:
    """Tests for ConfigurationError."""

    def test_issues_listed(self) -> None:
        error = ConfigurationError("Bad config", issues=["a is required", "b is negative"])
        assert "  - a is required" in str(error)
        assert error.details["issue_count"] == 2
        assert error.issues == ["a is required", "b is negative"]

    def test_field_and_value(self) -> None:
        error = ConfigurationError("Bad method", field="method", value="PATCH")
        assert error.details == {"field": "method", "value": "PATCH"}


class TestDeliveryErrors:
    """Tests for delivery exceptions."""

    def test_hierarchy(self) -> None:
        assert issubclass(TransientDeliveryError, DeliveryError)
        assert issubclass(TerminalDeliveryError, DeliveryError)
        assert issubclass(DeliveryError, SinkError)

    def test_context(self) -> None:
        cause = ConnectionError("refused")
        error = TransientDeliveryError(
            "Attempt failed", status_code=None, url="https://x", attempts=2, cause=cause
        )
        assert error.details["url"] == "https://x"
        assert error.details["attempts"] == 2
        assert error.details["cause_type"] == "ConnectionError"
        assert "status_code" not in error.details

    def test_terminal_has_default_suggestion(self) -> None:
        error = TerminalDeliveryError("Gave up", status_code=500)
        assert "dropped" in error.suggestion
        assert error.status_code == 500

    def test_terminal_custom_suggestion(self) -> None:
        error = TerminalDeliveryError("Gave up", suggestion="Call the API owner")
        assert error.suggestion == "Call the API owner"


class TestOtherErrors:
    """Tests for encoding and authentication errors."""

    def test_encoding_error(self) -> None:
        error = EncodingError("Bad charset", field="id", charset="x-foo")
        assert error.details == {"field": "id", "charset": "x-foo"}

    def test_authentication_error(self) -> None:
        error = AuthenticationError("No token", token_url="https://login/token")
        assert error.details["token_url"] == "https://login/token"
        assert "OAuth2" in error.suggestion

    def test_all_catchable_as_sink_error(self) -> None:
        for cls in (ConfigurationError, EncodingError, AuthenticationError, TerminalDeliveryError):
            with pytest.raises(SinkError):
                raise cls("x")
