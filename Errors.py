"""
Error taxonomy for the analysis core.
Typed failures raised by the prompt builder, invokers and normalizer, plus
the classifier that turns any failure into a ClassifiedError at the
orchestrator boundary.
"""

import asyncio
import logging
from typing import Optional

import httpx
import openai
from google.genai import errors as genai_errors

from Constants import ErrorKind
from Schemas import ClassifiedError

logger = logging.getLogger(__name__)

# Lower-cased fragments backends use when an account is out of balance or quota.
_QUOTA_MARKERS = (
    "quota",
    "insufficient",
    "balance",
    "rate limit",
    "resource_exhausted",
    "arrearage",
    "余额",
    "欠费",
    "限流",
)

_AUTH_MARKERS = (
    "api key not valid",
    "api_key_invalid",
    "invalid api key",
    "invalid_api_key",
    "unauthorized",
    "authentication",
)


###############################################################################
# Typed Failures
###############################################################################


class AnalysisError(Exception):
    """Base class for failures the orchestrator knows how to classify."""

    kind: ErrorKind = "Network"

    def __init__(self, message: str, raw_content: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.raw_content = raw_content


class AuthError(AnalysisError):
    """Credential missing or rejected by the backend."""

    kind: ErrorKind = "Auth"


class QuotaError(AnalysisError):
    """Backend reports balance or rate-limit exhaustion."""

    kind: ErrorKind = "Quota"


class NetworkError(AnalysisError):
    """Transport failure or a non-2xx status unrelated to auth/quota."""

    kind: ErrorKind = "Network"


class ValidationFailure(AnalysisError):
    """Unusable request, or a response that failed parse/schema checks."""

    kind: ErrorKind = "Validation"


###############################################################################
# SDK Translation (used by invokers at the call site)
###############################################################################


def _has_marker(message: str, markers: tuple) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in markers)


def _from_status(status: Optional[int], message: str, provider: str) -> AnalysisError:
    """Map an HTTP status plus backend message to a typed failure."""
    text = f"{provider} error ({status}): {message}" if status else f"{provider} error: {message}"
    if status in (401, 403) or _has_marker(message, _AUTH_MARKERS):
        return AuthError(text)
    if status in (402, 429) or _has_marker(message, _QUOTA_MARKERS):
        return QuotaError(text)
    return NetworkError(text)


def translate_openai_error(exc: Exception, provider: str) -> AnalysisError:
    """Translate an exception from the OpenAI SDK (via langchain-openai)."""
    if isinstance(exc, openai.AuthenticationError):
        return AuthError(f"{provider} rejected the API key: {exc.message}")
    if isinstance(exc, openai.PermissionDeniedError):
        return AuthError(f"{provider} denied access: {exc.message}")
    if isinstance(exc, openai.RateLimitError):
        return QuotaError(f"{provider} quota or rate limit reached: {exc.message}")
    if isinstance(exc, openai.APIStatusError):
        return _from_status(exc.status_code, exc.message, provider)
    if isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError)):
        return NetworkError(f"{provider} is unreachable: {exc}")
    if isinstance(exc, openai.APIError):
        return _from_status(None, exc.message, provider)
    if isinstance(exc, httpx.HTTPError):
        return NetworkError(f"{provider} transport error: {exc}")
    return NetworkError(f"{provider} request failed: {exc}")


def translate_genai_error(exc: Exception, provider: str) -> AnalysisError:
    """Translate an exception from the google-genai SDK."""
    if isinstance(exc, genai_errors.APIError):
        message = exc.message or str(exc)
        status_text = exc.status or ""
        if status_text == "RESOURCE_EXHAUSTED":
            return QuotaError(f"{provider} quota or rate limit reached: {message}")
        if status_text in ("UNAUTHENTICATED", "PERMISSION_DENIED"):
            return AuthError(f"{provider} rejected the API key: {message}")
        return _from_status(exc.code, message, provider)
    if isinstance(exc, httpx.HTTPError):
        return NetworkError(f"{provider} transport error: {exc}")
    return NetworkError(f"{provider} request failed: {exc}")


###############################################################################
# Classifier (used once, at the orchestrator boundary)
###############################################################################


def classify_error(exc: BaseException) -> ClassifiedError:
    """
    Map any failure into the closed Auth/Quota/Network/Validation taxonomy.

    Typed failures map one-to-one. Anything else is unexpected: it is logged
    with its traceback and surfaced as Network so the host keeps running.
    """
    if isinstance(exc, AnalysisError):
        return ClassifiedError(kind=exc.kind, message=exc.message, raw_content=exc.raw_content)

    if isinstance(exc, asyncio.TimeoutError):
        return ClassifiedError(kind="Network", message="The model did not answer before the timeout.")

    logger.error(f"Unexpected failure during analysis: {exc!r}", exc_info=exc)
    return ClassifiedError(kind="Network", message=f"Unexpected error: {exc}")
