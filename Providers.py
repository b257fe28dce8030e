"""
Provider invokers for the QuantMind analysis dashboard.
One strategy per backend, each honoring its fixed capability set:
vision input, web-search grounding and forced-JSON output.
"""

import base64
import binascii
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Type

from google import genai
from google.genai import types as genai_types
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from Constants import PROVIDER_NAMES
from Errors import (AuthError, ValidationFailure, translate_genai_error,
                    translate_openai_error)
from PromptBuilder import build_directive
from Schemas import PromptDirective, ProviderCapability, ProviderConfig, RawResponse
from SystemPrompts import SEARCH_UNAVAILABLE_NOTE

logger = logging.getLogger(__name__)


###############################################################################
# Capabilities
###############################################################################

PROVIDER_CAPABILITIES: Dict[str, ProviderCapability] = {
    "gemini": ProviderCapability(
        supports_vision=True, supports_web_search=True, supports_forced_json=True
    ),
    "hunyuan": ProviderCapability(
        supports_vision=False, supports_web_search=True, supports_forced_json=False
    ),
    "aliyun": ProviderCapability(
        supports_vision=False, supports_web_search=True, supports_forced_json=True
    ),
}

JSON_ONLY_SYSTEM_SUFFIX = "You are a helpful assistant that outputs strictly structured JSON data."


###############################################################################
# Base Invoker
###############################################################################


class ProviderInvoker(ABC):
    """
    Sends one directive to one backend.

    Performs exactly one network call per invocation and never retries;
    re-attempts are always a fresh, user-triggered invocation.
    """

    name: str = ""

    @property
    def capability(self) -> ProviderCapability:
        return PROVIDER_CAPABILITIES[self.name]

    def prepare(self, directive: PromptDirective) -> PromptDirective:
        """Degrade the directive to what this backend can accept."""
        if directive.image is not None and not self.capability.supports_vision:
            logger.info(f"{self.name} has no vision input; rebuilding the prompt without the image")
            directive = build_directive(
                directive.request, now=directive.reference_time, deliver_image=False
            )
        if not self.capability.supports_web_search:
            directive = directive.with_note(SEARCH_UNAVAILABLE_NOTE)
        return directive

    async def invoke(self, directive: PromptDirective, config: ProviderConfig) -> RawResponse:
        """
        Send the directive and return the raw reply.

        Raises:
            AuthError: no credential configured (raised before any network call)
            QuotaError, NetworkError: backend or transport failure
            ValidationFailure: the directive cannot be encoded for this backend
        """
        if not config.has_credential:
            raise AuthError(
                f"No API key configured for {self.name}. Add it in settings or set "
                f"the corresponding environment variable."
            )

        prepared = self.prepare(directive)
        logger.info(f"Invoking {self.name} for {prepared.kind} ({prepared.market})")
        raw = await self._send(prepared, config)
        logger.info(
            f"{self.name} replied with {len(raw.text)} chars, {len(raw.citations)} citations"
        )
        return raw

    @abstractmethod
    async def _send(self, directive: PromptDirective, config: ProviderConfig) -> RawResponse:
        """Perform the single network call."""


###############################################################################
# Gemini (global, search grounded, vision, native JSON schema)
###############################################################################


def _grounding_citations(response: Any) -> List[Dict[str, Optional[str]]]:
    """Collect web citations from the first candidate's grounding metadata."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    citations = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        if web is None:
            continue
        citations.append({"uri": web.uri, "title": web.title})
    return citations


class GeminiInvoker(ProviderInvoker):
    name = "gemini"

    def _build_parts(self, directive: PromptDirective) -> List[genai_types.Part]:
        parts = [genai_types.Part.from_text(text=directive.full_user_prompt)]
        if directive.image is not None:
            try:
                image_bytes = base64.b64decode(directive.image.data, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValidationFailure(f"Attached image is not valid base64: {e}") from e
            parts.append(
                genai_types.Part.from_bytes(data=image_bytes, mime_type=directive.image.mime_type)
            )
        return parts

    def _build_config(
        self, directive: PromptDirective, config: ProviderConfig
    ) -> genai_types.GenerateContentConfig:
        kwargs: Dict[str, Any] = {
            "system_instruction": directive.system_prompt,
            "temperature": config.endpoint_params.get("temperature"),
        }
        if self.capability.supports_web_search:
            kwargs["tools"] = [genai_types.Tool(google_search=genai_types.GoogleSearch())]
        if self.capability.supports_forced_json:
            kwargs["response_mime_type"] = "application/json"
            kwargs["response_schema"] = directive.response_model
        return genai_types.GenerateContentConfig(**kwargs)

    async def _send(self, directive: PromptDirective, config: ProviderConfig) -> RawResponse:
        parts = self._build_parts(directive)
        client = genai.Client(api_key=config.api_key)

        try:
            response = await client.aio.models.generate_content(
                model=config.endpoint_params["model"],
                contents=[genai_types.Content(role="user", parts=parts)],
                config=self._build_config(directive, config),
            )
        except Exception as e:
            raise translate_genai_error(e, self.name) from e
        finally:
            await client.aio.aclose()

        return RawResponse(text=response.text or "", citations=_grounding_citations(response))


###############################################################################
# OpenAI-compatible regional backends (via langchain-openai)
###############################################################################


def get_chat_model(config: ProviderConfig, extra_body: Optional[Dict[str, Any]] = None) -> ChatOpenAI:
    """Create a configured ChatOpenAI instance for an OpenAI-compatible endpoint."""
    params = config.endpoint_params
    kwargs: Dict[str, Any] = {
        "model": params["model"],
        "temperature": params.get("temperature", 0),
        "max_tokens": params.get("max_tokens"),
        "api_key": config.api_key,
        # a single call per invocation; retries are the user's decision
        "max_retries": 0,
    }
    if params.get("base_url"):
        kwargs["base_url"] = params["base_url"]
    if extra_body:
        kwargs["extra_body"] = extra_body

    return ChatOpenAI(**kwargs)


class OpenAICompatibleInvoker(ProviderInvoker):
    """Chat-completions backend; JSON is requested by prompt, or natively when supported."""

    # provider-specific request fields that switch on live search
    search_params: Dict[str, Any] = {}

    def _extra_body(self) -> Dict[str, Any]:
        if self.capability.supports_web_search:
            return dict(self.search_params)
        return {}

    def _build_messages(self, directive: PromptDirective) -> List[BaseMessage]:
        return [
            SystemMessage(content=f"{directive.system_prompt}\n{JSON_ONLY_SYSTEM_SUFFIX}"),
            HumanMessage(content=directive.full_user_prompt),
        ]

    async def _send(self, directive: PromptDirective, config: ProviderConfig) -> RawResponse:
        llm = get_chat_model(config, extra_body=self._extra_body())
        if self.capability.supports_forced_json:
            llm = llm.bind(response_format={"type": "json_object"})

        try:
            response = await llm.ainvoke(self._build_messages(directive))
        except Exception as e:
            raise translate_openai_error(e, self.name) from e

        content = response.content
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        # these endpoints return no structured citations
        return RawResponse(text=content or "")


class HunyuanInvoker(OpenAICompatibleInvoker):
    name = "hunyuan"
    search_params = {"enable_enhancement": True}


class AliyunInvoker(OpenAICompatibleInvoker):
    name = "aliyun"
    search_params = {"enable_search": True}


###############################################################################
# Registry (closed over ProviderName)
###############################################################################

INVOKER_CLASSES: Dict[str, Type[ProviderInvoker]] = {
    "gemini": GeminiInvoker,
    "hunyuan": HunyuanInvoker,
    "aliyun": AliyunInvoker,
}

if set(INVOKER_CLASSES) != set(PROVIDER_NAMES) or set(PROVIDER_CAPABILITIES) != set(
    PROVIDER_NAMES
):
    raise RuntimeError("Every provider needs exactly one invoker and one capability record")


def get_invoker(provider: str) -> ProviderInvoker:
    """Return the invoker strategy for a provider."""
    try:
        return INVOKER_CLASSES[provider]()
    except KeyError:
        raise ValidationFailure(f"Unknown provider: {provider}") from None
