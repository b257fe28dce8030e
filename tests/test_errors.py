"""Tests for error translation and classification."""

import asyncio

import httpx
import openai
from google.genai import errors as genai_errors

from Errors import (AuthError, NetworkError, QuotaError, ValidationFailure,
                    classify_error, translate_genai_error,
                    translate_openai_error)

REQUEST = httpx.Request("POST", "https://example.com/v1/chat/completions")


def _status_error(cls, status, message):
    return cls(message, response=httpx.Response(status, request=REQUEST), body=None)


class TestClassifyError:
    """Tests for the closed Auth/Quota/Network/Validation mapping."""

    def test_typed_failures_map_one_to_one(self) -> None:
        """Test each typed failure keeps its kind and message."""
        cases = [
            (AuthError("no key"), "Auth"),
            (QuotaError("out of balance"), "Quota"),
            (NetworkError("unreachable"), "Network"),
            (ValidationFailure("bad json", raw_content="{oops"), "Validation"),
        ]
        for exc, kind in cases:
            error = classify_error(exc)
            assert error.kind == kind
            assert error.message == exc.message

    def test_validation_keeps_raw_content(self) -> None:
        """Test raw text survives classification for diagnostics."""
        error = classify_error(ValidationFailure("bad json", raw_content="{oops"))
        assert error.raw_content == "{oops"

    def test_timeout_is_network(self) -> None:
        """Test a timeout classifies as Network."""
        assert classify_error(asyncio.TimeoutError()).kind == "Network"

    def test_unexpected_exception_is_network(self) -> None:
        """Test unknown failures do not escape the taxonomy."""
        error = classify_error(KeyError("candidates"))
        assert error.kind == "Network"
        assert "candidates" in error.message


class TestTranslateOpenAIError:
    """Tests for OpenAI-compatible SDK errors."""

    def test_authentication_error(self) -> None:
        """Test 401 is Auth."""
        exc = _status_error(openai.AuthenticationError, 401, "Incorrect API key provided")
        assert isinstance(translate_openai_error(exc, "aliyun"), AuthError)

    def test_rate_limit_error(self) -> None:
        """Test 429 is Quota."""
        exc = _status_error(openai.RateLimitError, 429, "Requests rate limit exceeded")
        assert isinstance(translate_openai_error(exc, "aliyun"), QuotaError)

    def test_balance_message_is_quota(self) -> None:
        """Test an arrearage message on another status is Quota."""
        exc = _status_error(openai.BadRequestError, 400, "Arrearage: account balance is insufficient")
        assert isinstance(translate_openai_error(exc, "aliyun"), QuotaError)

    def test_server_error_is_network(self) -> None:
        """Test other statuses are Network."""
        exc = _status_error(openai.InternalServerError, 500, "upstream failure")
        error = translate_openai_error(exc, "hunyuan")
        assert isinstance(error, NetworkError)
        assert "hunyuan" in error.message

    def test_connection_error_is_network(self) -> None:
        """Test transport failures are Network."""
        exc = openai.APIConnectionError(request=REQUEST)
        assert isinstance(translate_openai_error(exc, "hunyuan"), NetworkError)


class TestTranslateGenaiError:
    """Tests for google-genai SDK errors."""

    def _error(self, code, status, message):
        return genai_errors.ClientError(
            code, {"error": {"code": code, "message": message, "status": status}}
        )

    def test_resource_exhausted_is_quota(self) -> None:
        """Test RESOURCE_EXHAUSTED is Quota."""
        exc = self._error(429, "RESOURCE_EXHAUSTED", "Quota exceeded")
        assert isinstance(translate_genai_error(exc, "gemini"), QuotaError)

    def test_invalid_key_is_auth(self) -> None:
        """Test an invalid key reported as 400 is still Auth."""
        exc = self._error(400, "INVALID_ARGUMENT", "API key not valid. Please pass a valid API key.")
        assert isinstance(translate_genai_error(exc, "gemini"), AuthError)

    def test_permission_denied_is_auth(self) -> None:
        """Test PERMISSION_DENIED is Auth."""
        exc = self._error(403, "PERMISSION_DENIED", "Permission denied")
        assert isinstance(translate_genai_error(exc, "gemini"), AuthError)

    def test_transport_error_is_network(self) -> None:
        """Test httpx failures are Network."""
        exc = httpx.ConnectError("connection refused", request=REQUEST)
        assert isinstance(translate_genai_error(exc, "gemini"), NetworkError)
