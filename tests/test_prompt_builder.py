"""Tests for directive construction."""

from datetime import datetime, timezone

import pytest

from Errors import ValidationFailure
from PromptBuilder import build_directive
from SystemPrompts import VISION_UNAVAILABLE_NOTE
from Schemas import (AnalysisRequest, BatchTimingPayload, ImageInput,
                     MarketOverviewPayload, TimingPayload)

FIXED_NOW = datetime(2026, 10, 16, 6, 5, tzinfo=timezone.utc)
IMAGE = ImageInput(data="iVBORw0KGgo=", mime_type="image/png")


class TestRequestChecks:
    """Tests for requests that must never reach a provider."""

    def test_empty_request_refused(self) -> None:
        """Test no query and no image is a Validation failure."""
        with pytest.raises(ValidationFailure):
            build_directive(AnalysisRequest(kind="BatchTiming", query="   "))

    def test_timing_needs_a_ticker(self) -> None:
        """Test an image alone does not name the Timing subject."""
        with pytest.raises(ValidationFailure, match="Timing"):
            build_directive(AnalysisRequest(kind="Timing", image=IMAGE))

    def test_batch_timing_accepts_image_only(self) -> None:
        """Test the ticker list can come from the screenshot."""
        directive = build_directive(AnalysisRequest(kind="BatchTiming", image=IMAGE), now=FIXED_NOW)
        assert "ticker list directly from the attached screenshot" in directive.user_prompt
        assert directive.image == IMAGE
        assert directive.response_model is BatchTimingPayload


class TestDataPriority:
    """Tests for the ordered data-priority rules."""

    def test_search_rule_without_image(self) -> None:
        """Test a text-only request has no visual precedence rule."""
        directive = build_directive(AnalysisRequest(kind="Timing", query="000001"), now=FIXED_NOW)
        assert "AUTHORITATIVE" not in directive.user_prompt
        assert "most recent market data" in directive.user_prompt

    def test_image_takes_precedence_over_search(self) -> None:
        """Test an attached image is ranked above search results."""
        directive = build_directive(
            AnalysisRequest(kind="Timing", query="000001", image=IMAGE), now=FIXED_NOW
        )
        prompt = directive.user_prompt
        assert "AUTHORITATIVE" in prompt
        assert prompt.index("AUTHORITATIVE") < prompt.index("most recent market data")
        assert "candlestick screenshot" in prompt

    def test_price_anchor_ranks_first(self) -> None:
        """Test a stated price outranks both image and search."""
        directive = build_directive(
            AnalysisRequest(kind="Timing", query="000001", image=IMAGE, price_anchor="12.30"),
            now=FIXED_NOW,
        )
        prompt = directive.user_prompt
        assert "CURRENT PRICE is 12.30" in prompt
        assert prompt.index("CURRENT PRICE is 12.30") < prompt.index("AUTHORITATIVE")


class TestDirectiveContent:
    """Tests for the rest of the directive."""

    def test_schema_embedded_in_prompt(self) -> None:
        """Test the payload schema is part of the instructions."""
        directive = build_directive(AnalysisRequest(kind="Timing", query="000001"), now=FIXED_NOW)
        assert directive.response_model is TimingPayload
        for name in TimingPayload.model_fields:
            assert name in directive.user_prompt
        assert "Return ONLY one valid JSON object" in directive.user_prompt

    def test_time_context_in_market_timezone(self) -> None:
        """Test the time context is local to the market."""
        cn = build_directive(AnalysisRequest(kind="Timing", query="000001"), now=FIXED_NOW)
        us = build_directive(
            AnalysisRequest(kind="Timing", market="US", query="NVDA"), now=FIXED_NOW
        )
        assert "Friday 2026-10-16 14:05 (Asia/Shanghai)" in cn.system_prompt
        assert "Friday 2026-10-16 02:05 (America/New_York)" in us.system_prompt

    def test_output_language_follows_market(self) -> None:
        """Test CN output is requested in Chinese and US in English."""
        cn = build_directive(AnalysisRequest(kind="Timing", query="000001"), now=FIXED_NOW)
        us = build_directive(
            AnalysisRequest(kind="Timing", market="US", query="NVDA"), now=FIXED_NOW
        )
        assert "Simplified Chinese" in cn.system_prompt
        assert "English" in us.system_prompt

    def test_market_overview_period_and_indices(self) -> None:
        """Test overview prompts carry the period and market indices."""
        directive = build_directive(
            AnalysisRequest(kind="MarketOverview", market="HK", period="month", query="overview"),
            now=FIXED_NOW,
        )
        assert "the current month" in directive.user_prompt
        assert "Hang Seng Index" in directive.user_prompt
        assert directive.response_model is MarketOverviewPayload

    def test_no_capability_notes_yet(self) -> None:
        """Test a text-only directive carries no capability notes."""
        directive = build_directive(AnalysisRequest(kind="Timing", query="000001"), now=FIXED_NOW)
        assert directive.notes == ()
        assert directive.full_user_prompt == directive.user_prompt


class TestImageDelivery:
    """Tests for prompts built for backends that cannot read images."""

    def test_undelivered_image_leaves_no_visual_instructions(self) -> None:
        """Test the prompt never refers to a screenshot the backend will not see."""
        directive = build_directive(
            AnalysisRequest(kind="Timing", query="000001", image=IMAGE),
            now=FIXED_NOW,
            deliver_image=False,
        )
        assert directive.image is None
        assert "AUTHORITATIVE" not in directive.user_prompt
        assert "candlestick screenshot" not in directive.user_prompt
        assert "recent daily pattern" in directive.user_prompt
        assert directive.notes == (VISION_UNAVAILABLE_NOTE,)

    def test_batch_list_from_text_without_calibration(self) -> None:
        """Test a batch request falls back to the typed tickers only."""
        directive = build_directive(
            AnalysisRequest(kind="BatchTiming", query="600519, 000858", image=IMAGE),
            now=FIXED_NOW,
            deliver_image=False,
        )
        assert "600519, 000858" in directive.user_prompt
        assert "Visual Calibration" not in directive.user_prompt
        assert "attached screenshot" not in directive.user_prompt

    def test_image_only_batch_refused(self) -> None:
        """Test a screenshot-only ticker list is refused when the image cannot be read."""
        with pytest.raises(ValidationFailure, match="cannot read screenshots"):
            build_directive(
                AnalysisRequest(kind="BatchTiming", image=IMAGE), now=FIXED_NOW, deliver_image=False
            )

    def test_directive_remembers_request(self) -> None:
        """Test the directive keeps what is needed to rebuild it."""
        request = AnalysisRequest(kind="Timing", query="000001", image=IMAGE)
        directive = build_directive(request, now=FIXED_NOW)
        assert directive.request == request
        assert directive.reference_time == FIXED_NOW
