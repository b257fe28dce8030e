"""Tests for payload contracts and the request/result models."""

import json

import pytest
from pydantic import ValidationError

from Constants import ANALYSIS_KINDS, ENVELOPE_DATA_KEYS
from Schemas import (PAYLOAD_MODELS, AnalysisOutcome, AnalysisRequest,
                     AnalysisResult, ClassifiedError, GroundingSource,
                     ImageInput, ProviderConfig, TimingPayload,
                     get_payload_model, payload_json_schema, required_fields)


def _payload(kind, data):
    return get_payload_model(kind).model_validate_json(json.dumps(data))


class TestPayloadContracts:
    """Tests for the per-kind payload models."""

    def test_every_kind_has_a_model(self) -> None:
        """Test the contract covers every analysis kind."""
        assert set(PAYLOAD_MODELS) == set(ANALYSIS_KINDS)
        assert set(ENVELOPE_DATA_KEYS) == set(ANALYSIS_KINDS)

    def test_every_sample_validates(self, payload_samples) -> None:
        """Test a well-formed payload validates for each kind."""
        for kind, data in payload_samples.items():
            payload = _payload(kind, data)
            assert isinstance(payload, PAYLOAD_MODELS[kind])

    def test_integer_score_accepted_as_number(self, timing_data) -> None:
        """Test JSON integers satisfy numeric fields."""
        payload = _payload("Timing", timing_data)
        assert payload.position_score == 82.0

    def test_numeric_string_rejected_for_number(self, timing_data) -> None:
        """Test no coercion from string to number."""
        timing_data["position_score"] = "82"
        with pytest.raises(ValidationError):
            _payload("Timing", timing_data)

    def test_number_rejected_for_string(self, timing_data) -> None:
        """Test no coercion from number to string."""
        timing_data["stop_loss"] = 11.8
        with pytest.raises(ValidationError):
            _payload("Timing", timing_data)

    def test_missing_required_field(self, timing_data) -> None:
        """Test a missing field fails validation."""
        del timing_data["kline_analysis"]
        with pytest.raises(ValidationError):
            _payload("Timing", timing_data)

    def test_enum_values_are_exact(self, timing_data) -> None:
        """Test enumerated values are case sensitive."""
        timing_data["action"] = "buy"
        with pytest.raises(ValidationError):
            _payload("Timing", timing_data)

    def test_extra_keys_ignored(self, timing_data) -> None:
        """Test unknown keys from a backend do not fail validation."""
        timing_data["confidence"] = "high"
        payload = _payload("Timing", timing_data)
        assert not hasattr(payload, "confidence")

    def test_nested_enum_checked(self, payload_samples) -> None:
        """Test enums inside nested objects are enforced."""
        data = payload_samples["MarketOverview"]
        data["market_volume"]["volume_trend"] = "flat"
        with pytest.raises(ValidationError):
            _payload("MarketOverview", data)

    def test_payloads_are_frozen(self, timing_data) -> None:
        """Test payloads cannot be mutated after validation."""
        payload = _payload("Timing", timing_data)
        with pytest.raises(ValidationError):
            payload.action = "Sell"

    def test_schema_lists_required_fields(self) -> None:
        """Test the rendered schema names every required field."""
        schema = json.loads(payload_json_schema("Timing"))
        assert set(schema["required"]) == set(required_fields("Timing"))
        assert schema["properties"]["action"]["enum"] == ["Buy", "Wait", "Sell", "Reduce"]

    def test_unknown_kind_raises(self) -> None:
        """Test an unknown kind has no contract."""
        with pytest.raises(ValueError, match="Unknown analysis kind"):
            get_payload_model("Portfolio")


class TestRequestModels:
    """Tests for ImageInput and AnalysisRequest."""

    def test_image_data_uri_prefix_stripped(self) -> None:
        """Test a data-URI prefix is removed from image data."""
        image = ImageInput(data="data:image/png;base64,iVBORw0KGgo=", mime_type="image/png")
        assert image.data == "iVBORw0KGgo="

    def test_empty_image_rejected(self) -> None:
        """Test image data cannot be only a prefix."""
        with pytest.raises(ValidationError):
            ImageInput(data="data:image/png;base64,", mime_type="image/png")

    def test_unsupported_mime_rejected(self) -> None:
        """Test non-raster MIME types are rejected."""
        with pytest.raises(ValidationError):
            ImageInput(data="abcd", mime_type="application/pdf")

    def test_query_stripped_and_blank_anchor_dropped(self) -> None:
        """Test whitespace handling on request text fields."""
        request = AnalysisRequest(kind="Timing", query="  000001 ", price_anchor="   ")
        assert request.query == "000001"
        assert request.price_anchor is None
        assert request.market == "CN"
        assert not request.has_image

    def test_unknown_market_rejected(self) -> None:
        """Test markets are a closed set."""
        with pytest.raises(ValidationError):
            AnalysisRequest(kind="Timing", market="JP", query="7203")

    def test_provider_config_masks_key(self) -> None:
        """Test the API key never shows up in repr."""
        config = ProviderConfig(provider="gemini", api_key="secret-value")
        assert "secret-value" not in repr(config)
        assert config.has_credential
        assert not ProviderConfig(provider="gemini", api_key="  ").has_credential


class TestAnalysisResult:
    """Tests for the provider-agnostic result."""

    def _result(self, kind, payload, **overrides):
        fields = dict(
            raw_content="{}",
            kind=kind,
            payload=payload,
            timestamp=1760000000000,
            provider_used="gemini",
            market="CN",
        )
        fields.update(overrides)
        return AnalysisResult(**fields)

    def test_payload_must_match_kind(self, timing_data) -> None:
        """Test a Timing payload cannot be labelled as another kind."""
        payload = _payload("Timing", timing_data)
        with pytest.raises(ValidationError, match="does not match kind"):
            self._result("BatchTiming", payload)

    def test_envelope_uses_kind_specific_key(self, payload_samples) -> None:
        """Test each kind renders under its own data key."""
        for kind, data in payload_samples.items():
            envelope = self._result(kind, _payload(kind, data)).to_envelope()
            assert envelope[ENVELOPE_DATA_KEYS[kind]] == _payload(kind, data).model_dump()
            assert envelope["isStructured"] is True
            assert envelope["modelUsed"] == "gemini"
            assert envelope["market"] == "CN"
            assert "groundingSource" not in envelope

    def test_envelope_includes_sources(self, timing_data) -> None:
        """Test grounding sources are rendered when present."""
        result = self._result(
            "Timing",
            _payload("Timing", timing_data),
            grounding_sources=[GroundingSource(uri="https://example.com/a")],
        )
        assert result.to_envelope()["groundingSource"] == [{"uri": "https://example.com/a"}]


class TestOutcomeModels:
    """Tests for ClassifiedError and AnalysisOutcome."""

    def test_validation_error_message_is_generic(self) -> None:
        """Test schema failures show a generic message but keep raw text."""
        error = ClassifiedError(kind="Validation", message="stop_loss: missing", raw_content="{")
        assert "stop_loss" not in error.display_message
        assert error.raw_content == "{"
        assert not error.needs_credentials

    def test_auth_error_needs_credentials(self) -> None:
        """Test Auth failures ask for credentials and keep their message."""
        error = ClassifiedError(kind="Auth", message="No API key configured for gemini.")
        assert error.needs_credentials
        assert error.display_message == "No API key configured for gemini."

    def test_outcome_requires_exactly_one(self) -> None:
        """Test an outcome cannot carry both or neither of result and error."""
        with pytest.raises(ValidationError):
            AnalysisOutcome(surface="Timing", generation=1, state="Failed")

    def test_failed_outcome(self) -> None:
        """Test a failed outcome reports not ok."""
        outcome = AnalysisOutcome(
            surface="Timing",
            generation=1,
            state="Failed",
            error=ClassifiedError(kind="Network", message="down"),
        )
        assert not outcome.ok
