"""
Prompt construction for every analysis kind.
Turns an AnalysisRequest into a PromptDirective: task instructions, the
data-priority rules and the JSON-only output contract.
"""

import logging
from datetime import datetime
from typing import List, Optional

from Constants import (MARKET_INDEX_EXAMPLES, MARKET_LABELS,
                       MARKET_OUTPUT_LANGUAGE, MARKET_TIMEZONES, PERIOD_LABELS)
from Errors import ValidationFailure
from Schemas import (AnalysisRequest, PromptDirective, get_payload_model,
                     payload_json_schema)
from SystemPrompts import (ANALYST_SYSTEM_PROMPT, BATCH_IMAGE_CALIBRATION,
                           BATCH_IMAGE_LIST_INPUT, BATCH_LIST_INPUT,
                           BATCH_TIMING_TASK, DATA_PRIORITY_RULES,
                           JSON_OUTPUT_INSTRUCTIONS, MACRO_FORECAST_TASK,
                           MARKET_OVERVIEW_TASK, MARKET_QUERY_BLOCK,
                           PRICE_ANCHOR_RULE, REASONING_RULE,
                           SEARCH_DATA_RULE, SINGLE_STOCK_TASK,
                           TIMING_IMAGE_INPUT, TIMING_SEARCH_INPUT,
                           TIMING_TASK, VISION_UNAVAILABLE_NOTE,
                           VISUAL_PRECEDENCE_RULE)
from Utilities import format_time_context, market_now

logger = logging.getLogger(__name__)


###############################################################################
# Helper Functions
###############################################################################


def _build_priority_rules(request: AnalysisRequest, with_image: bool) -> str:
    """Ordered data-priority rules; the first applicable rule wins."""
    rules: List[str] = []
    if request.price_anchor:
        rules.append(PRICE_ANCHOR_RULE.format(price_anchor=request.price_anchor))
    if with_image:
        rules.append(VISUAL_PRECEDENCE_RULE)
    rules.append(SEARCH_DATA_RULE)
    rules.append(REASONING_RULE)

    numbered = "\n".join(f"{i}. {rule}" for i, rule in enumerate(rules, start=1))
    return DATA_PRIORITY_RULES.format(rules=numbered)


def _build_task(request: AnalysisRequest, with_image: bool) -> str:
    """Render the kind-specific task instructions."""
    market_label = MARKET_LABELS[request.market]
    kind = request.kind

    if kind == "MarketOverview":
        period = request.period or "day"
        query_block = MARKET_QUERY_BLOCK.format(query=request.query) if request.query else ""
        return MARKET_OVERVIEW_TASK.format(
            market_label=market_label,
            period_label=PERIOD_LABELS[period],
            index_examples=", ".join(MARKET_INDEX_EXAMPLES[request.market]),
            query_block=query_block,
        )

    if kind == "SingleStock":
        return SINGLE_STOCK_TASK.format(market_label=market_label, query=request.query)

    if kind == "Timing":
        input_block = TIMING_IMAGE_INPUT if with_image else TIMING_SEARCH_INPUT
        return TIMING_TASK.format(
            market_label=market_label, query=request.query, input_block=input_block
        )

    if kind == "BatchTiming":
        if request.query:
            list_block = BATCH_LIST_INPUT.format(query=request.query)
        else:
            list_block = BATCH_IMAGE_LIST_INPUT
        if with_image:
            list_block += "\n\n" + BATCH_IMAGE_CALIBRATION
        return BATCH_TIMING_TASK.format(market_label=market_label, list_block=list_block)

    if kind == "MacroForecast":
        return MACRO_FORECAST_TASK.format(market_label=market_label, query=request.query)

    raise ValidationFailure(f"Unsupported analysis kind: {kind}")


def _missing_subject(request: AnalysisRequest, with_image: bool) -> Optional[str]:
    """Explain why a request has nothing to analyze, or None if usable."""
    if not request.query and not request.has_image:
        return "Enter a query or attach a screenshot before running the analysis."
    if not request.query and not with_image:
        return (
            "The selected model cannot read screenshots. Enter the tickers or topic as "
            "text, or choose a vision-capable provider."
        )
    if request.kind in ("SingleStock", "Timing", "MacroForecast") and not request.query:
        # these tasks name their subject in the prompt; an image alone is not enough
        return f"{request.kind} analysis needs a ticker or topic in the query."
    return None


###############################################################################
# Builder
###############################################################################


def build_directive(
    request: AnalysisRequest,
    now: Optional[datetime] = None,
    deliver_image: bool = True,
) -> PromptDirective:
    """
    Build the directive for one analysis request.

    Runs before any network access. A request without a query and without an
    image is refused so the caller never invokes a provider for it. When the
    target backend cannot read images, the prompt is written as if no image
    was attached and carries a note that visual data was unavailable.

    Args:
        request: The user's analysis request
        now: Reference time for the time context line (defaults to now)
        deliver_image: Whether the attached image will reach the backend

    Returns:
        PromptDirective carrying system/user prompts and the schema contract

    Raises:
        ValidationFailure: the request has nothing the backend can analyze
    """
    with_image = request.has_image and deliver_image
    problem = _missing_subject(request, with_image)
    if problem:
        logger.info(f"Refusing {request.kind} request: {problem}")
        raise ValidationFailure(problem)

    moment = market_now(MARKET_TIMEZONES[request.market], now)
    system_prompt = ANALYST_SYSTEM_PROMPT.format(
        market_label=MARKET_LABELS[request.market],
        time_context=format_time_context(moment),
        language=MARKET_OUTPUT_LANGUAGE[request.market],
    )

    user_prompt = "\n".join(
        [
            _build_task(request, with_image),
            _build_priority_rules(request, with_image),
            JSON_OUTPUT_INSTRUCTIONS.format(schema=payload_json_schema(request.kind)),
        ]
    )

    notes = ()
    if request.has_image and not with_image:
        notes = (VISION_UNAVAILABLE_NOTE,)

    logger.debug(
        f"Built {request.kind} directive for {request.market} "
        f"(image={with_image}, anchor={bool(request.price_anchor)})"
    )

    return PromptDirective(
        kind=request.kind,
        market=request.market,
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        response_model=get_payload_model(request.kind),
        request=request,
        reference_time=now,
        image=request.image if with_image else None,
        notes=notes,
    )
