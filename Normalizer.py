"""
Response normalization for the analysis core.
Parses a backend's raw reply, validates it against the kind's schema
contract and assembles the provider-agnostic AnalysisResult.
"""

import json
import logging
from typing import List, Optional

from pydantic import ValidationError

from Errors import ValidationFailure
from Schemas import (AnalysisRequest, AnalysisResult, ContractModel,
                     GroundingSource, RawResponse, get_payload_model)
from Utilities import dedupe_citations, extract_json_text, now_ms, parse_json_object

logger = logging.getLogger(__name__)


def _summarize_validation(error: ValidationError, limit: int = 3) -> str:
    """Compact 'field.path: message' summary of the first few schema errors."""
    parts = []
    for item in error.errors()[:limit]:
        location = ".".join(str(p) for p in item["loc"]) or "<root>"
        parts.append(f"{location}: {item['msg']}")
    remaining = error.error_count() - limit
    if remaining > 0:
        parts.append(f"... and {remaining} more")
    return "; ".join(parts)


def parse_payload(raw_text: str, kind: str) -> ContractModel:
    """
    Validate a raw reply against the payload contract for `kind`.

    The reply must be one JSON object (fences and stray prose around it are
    tolerated) carrying every required field with the declared types. No
    partial payload is ever returned.

    Raises:
        ValidationFailure: carrying the raw text for diagnostics
    """
    try:
        parse_json_object(raw_text)
    except (json.JSONDecodeError, TypeError) as e:
        raise ValidationFailure(
            f"{kind} response is not a JSON object: {e}", raw_content=raw_text
        ) from e

    model = get_payload_model(kind)
    try:
        return model.model_validate_json(extract_json_text(raw_text))
    except ValidationError as e:
        raise ValidationFailure(
            f"{kind} response does not match its schema: {_summarize_validation(e)}",
            raw_content=raw_text,
        ) from e


def normalize_response(
    raw: RawResponse,
    request: AnalysisRequest,
    provider: str,
    timestamp: Optional[int] = None,
) -> AnalysisResult:
    """
    Build the AnalysisResult for a successful backend reply.

    Args:
        raw: Backend text plus any grounding citations
        request: The request the reply answers
        provider: Backend that produced the reply
        timestamp: Epoch milliseconds (defaults to now)

    Returns:
        Immutable AnalysisResult whose payload matches the request kind
    """
    payload = parse_payload(raw.text, request.kind)

    sources: List[GroundingSource] = [
        GroundingSource(uri=c["uri"], title=c["title"]) for c in dedupe_citations(raw.citations)
    ]
    if sources:
        logger.debug(f"{len(sources)} grounding sources after de-duplication")

    return AnalysisResult(
        raw_content=raw.text,
        kind=request.kind,
        payload=payload,
        grounding_sources=sources,
        timestamp=now_ms() if timestamp is None else timestamp,
        provider_used=provider,
        market=request.market,
    )
