"""
Constants and type definitions for the QuantMind analysis dashboard.
Single source of truth for analysis kinds, markets, providers and limits.
"""

from typing import Dict, List, Literal, Tuple, get_args

###############################################################################
# Application
###############################################################################

APP_NAME: str = "QuantMind Market Assistant"
APP_VERSION: str = "1.2.0"

# Surfaces are independent UI panels; each one owns its own generation counter.
DEFAULT_SURFACE: str = "default"


###############################################################################
# Domain Literals (for Pydantic type validation)
###############################################################################

AnalysisKind = Literal[
    "MarketOverview",
    "SingleStock",
    "Timing",
    "BatchTiming",
    "MacroForecast",
]

MarketType = Literal["CN", "HK", "US"]

Period = Literal["day", "month"]

ProviderName = Literal["gemini", "hunyuan", "aliyun"]

ErrorKind = Literal["Auth", "Quota", "Network", "Validation"]

# Enumerated payload values
TimingAction = Literal["Buy", "Wait", "Sell", "Reduce"]
IndexDirection = Literal["up", "down"]
VolumeTrend = Literal["expansion", "contraction"]
CapitalFlow = Literal["Inflow", "Outflow", "Neutral"]
RiskLevel = Literal["Low", "Medium", "High"]

InvocationState = Literal[
    "Idle",
    "Building",
    "Invoking",
    "Validating",
    "Done",
    "Failed",
]


###############################################################################
# Runtime Lists (derived from Literals)
###############################################################################

ANALYSIS_KINDS: List[str] = list(get_args(AnalysisKind))
MARKETS: List[str] = list(get_args(MarketType))
PERIODS: List[str] = list(get_args(Period))
PROVIDER_NAMES: List[str] = list(get_args(ProviderName))
ERROR_KINDS: List[str] = list(get_args(ErrorKind))

DEFAULT_PROVIDER: str = "gemini"
DEFAULT_MARKET: str = "CN"
DEFAULT_PERIOD: str = "day"

# Allowed state machine edges; Done and Failed are terminal.
STATE_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "Idle": ("Building", "Failed"),
    "Building": ("Invoking", "Failed"),
    "Invoking": ("Validating", "Failed"),
    "Validating": ("Done", "Failed"),
    "Done": (),
    "Failed": (),
}


###############################################################################
# Market Metadata
###############################################################################

MARKET_LABELS: Dict[str, str] = {
    "CN": "A-Share (Shanghai / Shenzhen)",
    "HK": "Hong Kong",
    "US": "US Equities",
}

MARKET_TIMEZONES: Dict[str, str] = {
    "CN": "Asia/Shanghai",
    "HK": "Asia/Hong_Kong",
    "US": "America/New_York",
}

MARKET_INDEX_EXAMPLES: Dict[str, List[str]] = {
    "CN": ["SSE Composite (上证指数)", "ChiNext (创业板指)", "SZSE Component (深证成指)"],
    "HK": ["Hang Seng Index (恒生指数)", "Hang Seng Tech (恒生科技)"],
    "US": ["Nasdaq Composite", "S&P 500", "Dow Jones"],
}

MARKET_OUTPUT_LANGUAGE: Dict[str, str] = {
    "CN": "Simplified Chinese",
    "HK": "Simplified Chinese",
    "US": "English",
}

PERIOD_LABELS: Dict[str, str] = {
    "day": "today's session",
    "month": "the current month",
}


###############################################################################
# Provider Configuration
###############################################################################

PROVIDER_LABELS: Dict[str, str] = {
    "gemini": "Gemini (global, search grounded)",
    "hunyuan": "Tencent Hunyuan (CN)",
    "aliyun": "Aliyun Qwen (CN)",
}

# (primary, alias) environment variables; the alias serves alternate
# deployment toolchains that only expose VITE_-prefixed variables.
PROVIDER_ENV_KEYS: Dict[str, Tuple[str, str]] = {
    "gemini": ("GEMINI_API_KEY", "VITE_GEMINI_API_KEY"),
    "hunyuan": ("HUNYUAN_API_KEY", "VITE_HUNYUAN_API_KEY"),
    "aliyun": ("ALIYUN_API_KEY", "VITE_ALIYUN_API_KEY"),
}

PROVIDER_DEFAULT_MODELS: Dict[str, str] = {
    "gemini": "gemini-3-flash-preview",
    "hunyuan": "hunyuan-pro",
    "aliyun": "qwen-max",
}

PROVIDER_MODEL_ENV: Dict[str, str] = {
    "gemini": "GEMINI_MODEL",
    "hunyuan": "HUNYUAN_MODEL",
    "aliyun": "ALIYUN_MODEL",
}

PROVIDER_DEFAULT_BASE_URLS: Dict[str, str] = {
    "hunyuan": "https://api.hunyuan.cloud.tencent.com/v1",
    "aliyun": "https://dashscope.aliyuncs.com/compatible-mode/v1",
}

PROVIDER_BASE_URL_ENV: Dict[str, str] = {
    "hunyuan": "HUNYUAN_BASE_URL",
    "aliyun": "ALIYUN_BASE_URL",
}

LLM_TEMPERATURE: float = 0.7
LLM_MAX_TOKENS: int = 3000

SETTINGS_PATH_ENV: str = "QUANTMIND_SETTINGS_PATH"
DEFAULT_SETTINGS_PATH: str = "~/.quantmind/settings.json"
TIMEOUT_ENV: str = "ANALYSIS_TIMEOUT_S"


###############################################################################
# Result Envelope
###############################################################################

ENVELOPE_DATA_KEYS: Dict[str, str] = {
    "MarketOverview": "structuredData",
    "SingleStock": "stockData",
    "Timing": "timingData",
    "BatchTiming": "batchTimingData",
    "MacroForecast": "macroData",
}

DEFAULT_IMAGE_MIME: str = "image/jpeg"
SUPPORTED_IMAGE_MIMES: List[str] = ["image/jpeg", "image/png", "image/webp"]


###############################################################################
# Validation Helpers
###############################################################################


def is_valid_kind(name: str) -> bool:
    """Check if a string is a known analysis kind."""
    return name in ANALYSIS_KINDS


def is_valid_provider(name: str) -> bool:
    """Check if a string is a known provider."""
    return name in PROVIDER_NAMES


def can_transition(current: str, target: str) -> bool:
    """Check if the invocation state machine allows an edge."""
    return target in STATE_TRANSITIONS.get(current, ())
