"""
Schema definitions for the QuantMind analysis dashboard.
Contains the per-kind Pydantic payload contracts for structured LLM output
and the request/result models passed between the orchestration layers.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import (BaseModel, ConfigDict, Field, field_validator,
                      model_validator)

# Import types from constants (single source of truth)
from Constants import (DEFAULT_IMAGE_MIME, ENVELOPE_DATA_KEYS,
                       SUPPORTED_IMAGE_MIMES, AnalysisKind, CapitalFlow,
                       ErrorKind, IndexDirection, InvocationState, MarketType,
                       Period, ProviderName, RiskLevel, TimingAction,
                       VolumeTrend)
from Utilities import strip_data_uri

###############################################################################
# Pydantic Models for Structured LLM Output (schema contracts)
###############################################################################


class ContractModel(BaseModel):
    """Base for payload contracts: every field required, no type coercion."""

    model_config = ConfigDict(strict=True, extra="ignore", frozen=True)


# --- Timing ---


class TimingPayload(ContractModel):
    """Structured output for a single-ticker timing signal."""

    action: TimingAction = Field(description="Trading action: Buy, Wait, Sell or Reduce")
    position_score: float = Field(description="Position suitability score, 0-100")
    entry_logic: str = Field(description="Why and when to enter")
    entry_price_window: str = Field(description="Entry price range, e.g. '12.1-12.4'")
    stop_loss: str = Field(description="Stop-loss price and trigger")
    target_profit: str = Field(description="Take-profit target price")
    kline_analysis: str = Field(description="Candlestick and volume pattern reading")

    model_config = ConfigDict(
        strict=True,
        extra="ignore",
        frozen=True,
        json_schema_extra={
            "example": {
                "action": "Buy",
                "position_score": 82,
                "entry_logic": "Volume breakout above the 20-day platform",
                "entry_price_window": "12.1-12.4",
                "stop_loss": "11.8",
                "target_profit": "13.5",
                "kline_analysis": "Bullish engulfing on expanding volume",
            }
        },
    )


# --- Batch Timing ---


class BatchTimingStock(ContractModel):
    """One scored ticker inside a batch timing sweep."""

    name: str
    code: str
    win_rate: float = Field(description="Estimated win rate of an entry now, 0-100")
    verdict: str = Field(description="Decision: buy now, buy on pullback, wait or avoid")
    verdict_label: str = Field(description="Short human readable verdict label")
    sector_heat: str = Field(description="Heat of the ticker's sector today")
    capital_flow: CapitalFlow
    technical_score: str = Field(description="Technical setup score and note")
    key_price: str = Field(description="Core actionable price level")
    logic_summary: str


class BatchTimingPayload(ContractModel):
    """Structured output for batch timing of a ticker list."""

    market_context: str
    overall_risk_score: float = Field(description="Overall market risk, 0-100")
    stocks: List[BatchTimingStock]


# --- Market Overview ---


class MarketIndexQuote(ContractModel):
    name: str
    value: str
    direction: IndexDirection
    percent: str = Field(description="Signed percentage change, e.g. '+0.85%'")


class MarketSentiment(ContractModel):
    score: float = Field(description="Sentiment score, 0-100")
    summary: str


class MarketVolume(ContractModel):
    total_volume: str
    volume_trend: VolumeTrend
    volume_delta: str
    capital_mood: str


class MacroLogic(ContractModel):
    external_impact: str
    policy_focus: str
    core_verdict: str


class CapitalRotation(ContractModel):
    inflow_sectors: List[str]
    outflow_sectors: List[str]
    rotation_logic: str


class MarketOverviewPayload(ContractModel):
    """Structured output for the market overview dashboard."""

    data_date: str = Field(description="Trading date the figures refer to")
    market_indices: List[MarketIndexQuote]
    market_sentiment: MarketSentiment
    market_volume: MarketVolume
    macro_logic: MacroLogic
    capital_rotation: CapitalRotation


# --- Single Stock ---


class SingleStockPayload(ContractModel):
    """Structured output for a single-stock quantitative diagnosis."""

    latest_price: str
    pe_ttm: str = Field(description="Trailing twelve month P/E")
    pb: str = Field(description="Price to book")
    recent_change: str = Field(description="Recent price change, e.g. '+6.2% over 5 days'")
    take_profit: str = Field(description="First take-profit price with its logic")
    stop_loss: str = Field(description="Stop-loss price with its logic")
    support_level: str
    resistance_level: str
    risk_level: RiskLevel
    risk_points: List[str] = Field(description="Three core risk points")
    holder_advice: str = Field(description="Advice for current holders")
    watcher_advice: str = Field(description="Advice for watchers: entry timing and price range")


# --- Macro Forecast ---


class ForecastSector(ContractModel):
    name: str
    heat_index: float = Field(description="Sector heat, 1-100")
    logic: str
    catalysts: List[str]


class ShortTermOutlook(ContractModel):
    period: str
    top_sectors: List[ForecastSector]


class LogicStep(ContractModel):
    event: str
    impact: str
    result: str


class StrategicPlanning(ContractModel):
    theme: str
    vision: str
    potential_winners: List[str]
    key_policy_indicators: List[str]


class MacroForecastPayload(ContractModel):
    """Structured output for the macro deduction / policy forecast."""

    summary: str
    short_term_outlook: ShortTermOutlook
    logic_chain: List[LogicStep]
    strategic_planning_15th: StrategicPlanning = Field(
        description="Outlook under the 15th Five-Year Plan"
    )
    risk_warning: str


StructuredPayload = Union[
    MarketOverviewPayload,
    SingleStockPayload,
    TimingPayload,
    BatchTimingPayload,
    MacroForecastPayload,
]

PAYLOAD_MODELS: Dict[str, Type[ContractModel]] = {
    "MarketOverview": MarketOverviewPayload,
    "SingleStock": SingleStockPayload,
    "Timing": TimingPayload,
    "BatchTiming": BatchTimingPayload,
    "MacroForecast": MacroForecastPayload,
}


def get_payload_model(kind: str) -> Type[ContractModel]:
    """Return the schema contract for an analysis kind."""
    try:
        return PAYLOAD_MODELS[kind]
    except KeyError:
        raise ValueError(f"Unknown analysis kind: {kind}") from None


def payload_json_schema(kind: str) -> str:
    """Render the JSON schema of a kind's payload for embedding in prompts."""
    return json.dumps(get_payload_model(kind).model_json_schema(), ensure_ascii=False, indent=2)


def required_fields(kind: str) -> List[str]:
    """Top-level required field names for a kind."""
    return list(get_payload_model(kind).model_fields)


###############################################################################
# Request Models
###############################################################################


class ImageInput(BaseModel):
    """Single raster image, base64 without its data-URI prefix."""

    model_config = ConfigDict(frozen=True)

    data: str = Field(min_length=1)
    mime_type: str = DEFAULT_IMAGE_MIME

    @field_validator("data")
    @classmethod
    def _strip_prefix(cls, value: str) -> str:
        value = strip_data_uri(value)
        if not value:
            raise ValueError("Image data is empty")
        return value

    @field_validator("mime_type")
    @classmethod
    def _check_mime(cls, value: str) -> str:
        if value not in SUPPORTED_IMAGE_MIMES:
            raise ValueError(f"Unsupported image type: {value}")
        return value


class AnalysisRequest(BaseModel):
    """One user action; created per click and owned by the call that issued it."""

    model_config = ConfigDict(frozen=True)

    kind: AnalysisKind
    market: MarketType = "CN"
    period: Optional[Period] = None
    query: str = ""
    price_anchor: Optional[str] = None
    image: Optional[ImageInput] = None

    @field_validator("query")
    @classmethod
    def _strip_query(cls, value: str) -> str:
        return value.strip()

    @field_validator("price_anchor")
    @classmethod
    def _blank_anchor(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @property
    def has_image(self) -> bool:
        return self.image is not None


###############################################################################
# Provider Models
###############################################################################


class ProviderCapability(BaseModel):
    """Fixed capability triple a backend supports."""

    model_config = ConfigDict(frozen=True)

    supports_vision: bool
    supports_web_search: bool
    supports_forced_json: bool


class ProviderConfig(BaseModel):
    """Credential and endpoint parameters read from a settings snapshot."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderName
    api_key: Optional[str] = None
    endpoint_params: Dict[str, Any] = Field(default_factory=dict)

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    def __repr__(self) -> str:
        # keep keys out of logs and tracebacks
        masked = "***" if self.has_credential else None
        return f"ProviderConfig(provider={self.provider!r}, api_key={masked!r}, endpoint_params={self.endpoint_params!r})"

    __str__ = __repr__


@dataclass(frozen=True)
class PromptDirective:
    """Built prompt for one request: instructions plus the schema contract."""

    kind: str
    market: str
    system_prompt: str
    user_prompt: str
    response_model: Type[ContractModel]
    request: AnalysisRequest
    reference_time: Optional[datetime] = None
    image: Optional[ImageInput] = None
    notes: tuple = ()

    @property
    def full_user_prompt(self) -> str:
        if not self.notes:
            return self.user_prompt
        return self.user_prompt + "\n\n" + "\n".join(self.notes)

    def with_note(self, note: str) -> "PromptDirective":
        return replace(self, notes=self.notes + (note,))


@dataclass(frozen=True)
class RawResponse:
    """Backend output before normalization."""

    text: str
    citations: List[Dict[str, Optional[str]]] = field(default_factory=list)


###############################################################################
# Result Models
###############################################################################


class GroundingSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    uri: str
    title: Optional[str] = None


class AnalysisResult(BaseModel):
    """Provider-agnostic result; immutable after construction."""

    model_config = ConfigDict(frozen=True)

    raw_content: str
    kind: AnalysisKind
    payload: StructuredPayload
    grounding_sources: List[GroundingSource] = Field(default_factory=list)
    timestamp: int
    provider_used: ProviderName
    market: MarketType

    @model_validator(mode="after")
    def _payload_matches_kind(self) -> "AnalysisResult":
        expected = PAYLOAD_MODELS[self.kind]
        if type(self.payload) is not expected:
            raise ValueError(
                f"Payload {type(self.payload).__name__} does not match kind {self.kind}"
            )
        return self

    def to_envelope(self) -> Dict[str, Any]:
        """Render the camelCase result envelope consumed by the UI."""
        envelope: Dict[str, Any] = {
            "content": self.raw_content,
            "timestamp": self.timestamp,
            "modelUsed": self.provider_used,
            "isStructured": True,
            ENVELOPE_DATA_KEYS[self.kind]: self.payload.model_dump(),
            "market": self.market,
        }
        if self.grounding_sources:
            envelope["groundingSource"] = [
                s.model_dump(exclude_none=True) for s in self.grounding_sources
            ]
        return envelope


class ClassifiedError(BaseModel):
    """Failure surfaced to the caller as a typed value."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str
    raw_content: Optional[str] = None

    @property
    def needs_credentials(self) -> bool:
        return self.kind == "Auth"

    @property
    def display_message(self) -> str:
        if self.kind == "Validation":
            return "The model returned an analysis that could not be read. Please try again."
        return self.message


class AnalysisOutcome(BaseModel):
    """Committed outcome of one invocation on one surface."""

    model_config = ConfigDict(frozen=True)

    surface: str
    generation: int
    state: InvocationState
    result: Optional[AnalysisResult] = None
    error: Optional[ClassifiedError] = None
    elapsed_ms: int = 0

    @model_validator(mode="after")
    def _exactly_one(self) -> "AnalysisOutcome":
        if (self.result is None) == (self.error is None):
            raise ValueError("Outcome must carry exactly one of result or error")
        return self

    @property
    def ok(self) -> bool:
        return self.result is not None
