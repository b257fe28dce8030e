"""Pytest configuration and fixtures."""

import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from Providers import ProviderInvoker
from Schemas import PromptDirective, ProviderConfig, RawResponse
from Settings import SettingsSnapshot, build_snapshot

TEST_KEYS = {"gemini": "test-gemini-key", "hunyuan": "test-hunyuan-key", "aliyun": "test-aliyun-key"}


class FakeInvoker(ProviderInvoker):
    """In-process invoker that replays scripted replies instead of calling a backend."""

    def __init__(
        self,
        name: str = "gemini",
        responses: Optional[List[RawResponse]] = None,
        error: Optional[BaseException] = None,
        gates: Optional[Dict[int, asyncio.Event]] = None,
        delay: float = 0,
    ):
        self.name = name
        self.responses = list(responses or [])
        self.error = error
        self.gates = gates or {}
        self.delay = delay
        self.sent: List[PromptDirective] = []

    async def _send(self, directive: PromptDirective, config: ProviderConfig) -> RawResponse:
        index = len(self.sent)
        self.sent.append(directive)
        if index in self.gates:
            await self.gates[index].wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.responses[min(index, len(self.responses) - 1)]


@pytest.fixture
def snapshot() -> SettingsSnapshot:
    """Settings snapshot with a key saved for every provider."""
    return build_snapshot(saved_keys=TEST_KEYS, environ={})


@pytest.fixture
def empty_snapshot() -> SettingsSnapshot:
    """Settings snapshot with no credentials anywhere."""
    return build_snapshot(saved_keys={}, environ={})


@pytest.fixture
def timing_data() -> Dict[str, Any]:
    """Valid Timing payload as a backend would return it."""
    return {
        "action": "Buy",
        "position_score": 82,
        "entry_logic": "Volume breakout above the 20-day platform",
        "entry_price_window": "12.1-12.4",
        "stop_loss": "11.8",
        "target_profit": "13.5",
        "kline_analysis": "Bullish engulfing on expanding volume",
    }


@pytest.fixture
def timing_json(timing_data: Dict[str, Any]) -> str:
    return json.dumps(timing_data)


@pytest.fixture
def payload_samples(timing_data: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """One valid payload per analysis kind."""
    return {
        "Timing": timing_data,
        "MarketOverview": {
            "data_date": "2026-10-16",
            "market_indices": [
                {"name": "SSE Composite", "value": "3310.12", "direction": "up", "percent": "+0.85%"},
                {"name": "ChiNext", "value": "2105.40", "direction": "down", "percent": "-0.32%"},
            ],
            "market_sentiment": {"score": 64, "summary": "Cautiously optimistic"},
            "market_volume": {
                "total_volume": "1.12 trillion",
                "volume_trend": "expansion",
                "volume_delta": "+8%",
                "capital_mood": "Risk appetite recovering",
            },
            "macro_logic": {
                "external_impact": "Softer dollar",
                "policy_focus": "Consumption support",
                "core_verdict": "Range-bound with an upward bias",
            },
            "capital_rotation": {
                "inflow_sectors": ["Semiconductors"],
                "outflow_sectors": ["Banks"],
                "rotation_logic": "Growth over defensives",
            },
        },
        "SingleStock": {
            "latest_price": "1580.00",
            "pe_ttm": "23.1",
            "pb": "7.9",
            "recent_change": "+3.2% over 5 days",
            "take_profit": "1680 near the prior high",
            "stop_loss": "1520 below the 60-day line",
            "support_level": "1540",
            "resistance_level": "1650",
            "risk_level": "Medium",
            "risk_points": ["Demand slowdown", "Channel inventory", "Valuation"],
            "holder_advice": "Hold, reduce above 1680",
            "watcher_advice": "Wait for a pullback to 1540-1560",
        },
        "BatchTiming": {
            "market_context": "Index consolidating near resistance",
            "overall_risk_score": 55,
            "stocks": [
                {
                    "name": "Ping An Bank",
                    "code": "000001",
                    "win_rate": 61.5,
                    "verdict": "buy on pullback",
                    "verdict_label": "Pullback entry",
                    "sector_heat": "Warm",
                    "capital_flow": "Inflow",
                    "technical_score": "7/10, above MA20",
                    "key_price": "11.80",
                    "logic_summary": "Financials bid as yields fall",
                }
            ],
        },
        "MacroForecast": {
            "summary": "Policy easing supports domestic demand",
            "short_term_outlook": {
                "period": "November 2026",
                "top_sectors": [
                    {
                        "name": "Consumer electronics",
                        "heat_index": 78,
                        "logic": "Trade-in subsidies",
                        "catalysts": ["Subsidy renewal", "Singles' Day sales"],
                    }
                ],
            },
            "logic_chain": [
                {"event": "Rate cut", "impact": "Lower funding cost", "result": "Growth rerating"}
            ],
            "strategic_planning_15th": {
                "theme": "New quality productive forces",
                "vision": "Upgrade of advanced manufacturing",
                "potential_winners": ["Robotics", "Semiconductor equipment"],
                "key_policy_indicators": ["Fiscal deficit ratio"],
            },
            "risk_warning": "External demand shock",
        },
    }
