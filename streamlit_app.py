"""
QuantMind Market Assistant - Streamlit UI

Interactive dashboard for market overviews, stock diagnosis, timing signals,
batch timing sweeps and macro forecasts. Every tab is one independent
surface submitting through a shared orchestrator.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st
from dotenv import load_dotenv
from pydantic import ValidationError

from Constants import (APP_NAME, APP_VERSION, DEFAULT_PERIOD, MARKET_LABELS,
                       MARKETS, PERIOD_LABELS, PERIODS, PROVIDER_ENV_KEYS,
                       PROVIDER_LABELS, PROVIDER_NAMES, SUPPORTED_IMAGE_MIMES)
from main import AnalysisOrchestrator
from Providers import PROVIDER_CAPABILITIES
from Schemas import (AnalysisOutcome, AnalysisRequest, BatchTimingPayload,
                     ImageInput, MacroForecastPayload, MarketOverviewPayload,
                     SingleStockPayload, TimingPayload)
from Settings import SettingsStore, build_snapshot
from Utilities import encode_image_bytes, safe_json_serialize

load_dotenv()

###############################################################################
# Streamlit Configuration
###############################################################################

st.set_page_config(
    page_title=APP_NAME,
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown(
    """
<style>
    .main-header {
        font-size: 2.5rem;
        font-weight: bold;
        background: linear-gradient(90deg, #1f77b4, #2ecc71);
        -webkit-background-clip: text;
        -webkit-text-fill-color: transparent;
        text-align: center;
        margin-bottom: 0.5rem;
    }

    .sub-header {
        font-size: 1.1rem;
        color: #666;
        text-align: center;
        margin-bottom: 2rem;
    }

    .stButton > button[kind="primary"] {
        background: linear-gradient(90deg, #1f77b4, #2ecc71);
        border: none;
        font-weight: 600;
        border-radius: 10px;
    }

    #MainMenu {visibility: hidden;}
    footer {visibility: hidden;}
</style>
""",
    unsafe_allow_html=True,
)

DEFAULT_OVERVIEW_QUERY = "Major indices, turnover, sentiment and sector rotation"

TIMING_ACTION_ICONS = {"Buy": "🟢", "Wait": "🟡", "Sell": "🔴", "Reduce": "🟠"}
RISK_LEVEL_ICONS = {"Low": "🟢", "Medium": "🟡", "High": "🔴"}


###############################################################################
# Session State Initialization
###############################################################################


def init_session_state():
    """Initialize all session state variables."""
    if "settings_store" not in st.session_state:
        st.session_state.settings_store = SettingsStore()
    if "saved_keys" not in st.session_state:
        # loaded once per session; written back only by the save button
        st.session_state.saved_keys = st.session_state.settings_store.load()
    if "orchestrator" not in st.session_state:
        st.session_state.orchestrator = AnalysisOrchestrator()
    if "show_credentials" not in st.session_state:
        st.session_state.show_credentials = False


###############################################################################
# Helper Functions
###############################################################################


def current_snapshot():
    return build_snapshot(st.session_state.saved_keys)


def format_score(value: float) -> str:
    return f"{value:.0f}/100"


def format_timestamp(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def read_upload(upload) -> Optional[ImageInput]:
    """Turn an uploaded file into an ImageInput (None if nothing uploaded)."""
    if upload is None:
        return None
    return ImageInput(data=encode_image_bytes(upload.getvalue()), mime_type=upload.type)


###############################################################################
# Display Components
###############################################################################


def display_header():
    """Display the main header."""
    st.markdown(f'<p class="main-header">📊 {APP_NAME}</p>', unsafe_allow_html=True)
    st.markdown(
        '<p class="sub-header">Search-grounded market analysis for A-Share, Hong Kong and US equities</p>',
        unsafe_allow_html=True,
    )


def display_sidebar() -> Dict[str, Any]:
    """Display sidebar with provider/market selection and credentials."""
    with st.sidebar:
        st.header("⚙️ Settings")

        provider = st.selectbox(
            "Model provider",
            PROVIDER_NAMES,
            format_func=lambda name: PROVIDER_LABELS[name],
        )
        capability = PROVIDER_CAPABILITIES[provider]
        st.caption(
            f"Vision: {'✅' if capability.supports_vision else '❌'} · "
            f"Web search: {'✅' if capability.supports_web_search else '❌'} · "
            f"Native JSON: {'✅' if capability.supports_forced_json else '❌'}"
        )

        market = st.selectbox("Market", MARKETS, format_func=lambda m: MARKET_LABELS[m])
        period = st.radio(
            "Overview period",
            PERIODS,
            index=PERIODS.index(DEFAULT_PERIOD),
            format_func=lambda p: PERIOD_LABELS[p],
            horizontal=True,
        )

        st.divider()
        display_credentials()

        st.divider()
        st.caption(f"v{APP_VERSION}")

    return {"provider": provider, "market": market, "period": period}


def display_credentials():
    """API key form; saving is the only action that writes the settings file."""
    configured = current_snapshot().configured_providers()

    st.subheader("🔑 API Keys")
    for name in PROVIDER_NAMES:
        st.caption(f"{'✅' if configured[name] else '❌'} {PROVIDER_LABELS[name]}")

    with st.expander("Manage keys", expanded=st.session_state.show_credentials):
        inputs = {}
        for name in PROVIDER_NAMES:
            primary, _ = PROVIDER_ENV_KEYS[name]
            inputs[name] = st.text_input(
                PROVIDER_LABELS[name],
                value=st.session_state.saved_keys.get(name, ""),
                type="password",
                help=f"Overrides {primary} from the environment",
                key=f"key_{name}",
            )
        if st.button("💾 Save keys", use_container_width=True):
            st.session_state.saved_keys = st.session_state.settings_store.save(inputs)
            st.session_state.show_credentials = False
            st.success("Keys saved")


def display_outcome(outcome: Optional[AnalysisOutcome], renderer):
    """Render a committed outcome, or the affordance for its failure kind."""
    if outcome is None:
        return

    if not outcome.ok:
        error = outcome.error
        if error.needs_credentials:
            st.error(f"🔑 {error.display_message}")
            st.info("Add an API key for this provider in the sidebar, then run again.")
        elif error.kind == "Quota":
            st.error(f"💳 {error.display_message}")
            st.info("The provider reports quota or balance exhaustion. Top up or switch provider.")
        elif error.kind == "Network":
            st.error(f"🌐 {error.display_message}")
        else:
            st.error(f"⚠️ {error.display_message}")
        if error.raw_content:
            with st.expander("📄 Raw response", expanded=False):
                st.code(error.raw_content)
        return

    result = outcome.result
    st.caption(
        f"{PROVIDER_LABELS[result.provider_used]} · {format_timestamp(result.timestamp)} · "
        f"{outcome.elapsed_ms / 1000:.1f}s"
    )
    renderer(result.payload)

    if result.grounding_sources:
        with st.expander(f"🔗 Sources ({len(result.grounding_sources)})", expanded=False):
            for source in result.grounding_sources:
                st.markdown(f"- [{source.title or source.uri}]({source.uri})")

    with st.expander("📄 Raw JSON", expanded=False):
        envelope = safe_json_serialize(result.to_envelope())
        st.code(envelope, language="json")
        st.download_button(
            label="📥 Download (JSON)",
            data=envelope,
            file_name=f"{result.kind}_{result.timestamp}.json",
            mime="application/json",
            key=f"download_{outcome.surface}_{outcome.generation}",
        )


def render_market_overview(payload: MarketOverviewPayload):
    st.markdown(f"### 📈 Market Snapshot ({payload.data_date})")

    cols = st.columns(max(len(payload.market_indices), 1))
    for col, index in zip(cols, payload.market_indices):
        with col:
            st.metric(index.name, index.value, index.percent)

    col1, col2 = st.columns(2)
    with col1:
        st.metric("Sentiment", format_score(payload.market_sentiment.score))
        st.caption(payload.market_sentiment.summary)
    with col2:
        volume = payload.market_volume
        st.metric("Turnover", volume.total_volume, volume.volume_delta)
        st.caption(f"{volume.volume_trend} · {volume.capital_mood}")

    st.markdown("#### 🧭 Macro Logic")
    st.markdown(f"**Core verdict:** {payload.macro_logic.core_verdict}")
    st.markdown(f"- External: {payload.macro_logic.external_impact}")
    st.markdown(f"- Policy: {payload.macro_logic.policy_focus}")

    st.markdown("#### 🔄 Capital Rotation")
    rotation = payload.capital_rotation
    col1, col2 = st.columns(2)
    with col1:
        st.markdown("**Inflow**")
        for sector in rotation.inflow_sectors:
            st.markdown(f"- 🟢 {sector}")
    with col2:
        st.markdown("**Outflow**")
        for sector in rotation.outflow_sectors:
            st.markdown(f"- 🔴 {sector}")
    st.info(rotation.rotation_logic)


def render_single_stock(payload: SingleStockPayload):
    st.markdown("### 🔍 Diagnosis")
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Latest Price", payload.latest_price, payload.recent_change)
    col2.metric("P/E (TTM)", payload.pe_ttm)
    col3.metric("P/B", payload.pb)
    col4.metric("Risk", f"{RISK_LEVEL_ICONS[payload.risk_level]} {payload.risk_level}")

    levels = pd.DataFrame(
        [
            {"Level": "Take profit", "Value": payload.take_profit},
            {"Level": "Stop loss", "Value": payload.stop_loss},
            {"Level": "Support", "Value": payload.support_level},
            {"Level": "Resistance", "Value": payload.resistance_level},
        ]
    )
    st.dataframe(levels, use_container_width=True, hide_index=True)

    st.markdown("#### ⚠️ Risk Points")
    for point in payload.risk_points:
        st.markdown(f"- {point}")

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("**For holders**")
        st.info(payload.holder_advice)
    with col2:
        st.markdown("**For watchers**")
        st.info(payload.watcher_advice)


def render_timing(payload: TimingPayload):
    st.markdown("### ⏱️ Timing Signal")
    col1, col2, col3 = st.columns(3)
    col1.metric("Action", f"{TIMING_ACTION_ICONS[payload.action]} {payload.action}")
    col2.metric("Position score", format_score(payload.position_score))
    col3.metric("Entry window", payload.entry_price_window)

    col1, col2 = st.columns(2)
    col1.metric("Stop loss", payload.stop_loss)
    col2.metric("Target", payload.target_profit)

    st.markdown("#### Entry Logic")
    st.markdown(payload.entry_logic)
    st.markdown("#### K-line Reading")
    st.markdown(payload.kline_analysis)


def render_batch_timing(payload: BatchTimingPayload):
    st.markdown("### 📋 Batch Timing")
    col1, col2 = st.columns([1, 3])
    col1.metric("Overall risk", format_score(payload.overall_risk_score))
    col2.info(payload.market_context)

    rows: List[Dict[str, Any]] = [
        {
            "Name": stock.name,
            "Code": stock.code,
            "Win rate": stock.win_rate,
            "Verdict": stock.verdict_label,
            "Key price": stock.key_price,
            "Sector heat": stock.sector_heat,
            "Capital flow": stock.capital_flow,
            "Technical": stock.technical_score,
        }
        for stock in payload.stocks
    ]
    df = pd.DataFrame(rows)
    if not df.empty:
        df = df.sort_values("Win rate", ascending=False)
    st.dataframe(df, use_container_width=True, hide_index=True)

    for stock in payload.stocks:
        with st.expander(f"{stock.name} ({stock.code}) · {stock.verdict}", expanded=False):
            st.markdown(stock.logic_summary)


def render_macro_forecast(payload: MacroForecastPayload):
    st.markdown("### 🌐 Macro Deduction")
    st.info(payload.summary)

    outlook = payload.short_term_outlook
    st.markdown(f"#### Short-term Outlook · {outlook.period}")
    sectors = pd.DataFrame(
        [
            {
                "Sector": sector.name,
                "Heat": sector.heat_index,
                "Logic": sector.logic,
                "Catalysts": ", ".join(sector.catalysts),
            }
            for sector in outlook.top_sectors
        ]
    )
    st.dataframe(sectors, use_container_width=True, hide_index=True)

    st.markdown("#### 🔗 Logic Chain")
    for i, step in enumerate(payload.logic_chain, start=1):
        st.markdown(f"{i}. **{step.event}** → {step.impact} → _{step.result}_")

    planning = payload.strategic_planning_15th
    st.markdown(f"#### 🏛️ 15th Five-Year Plan: {planning.theme}")
    st.markdown(planning.vision)
    col1, col2 = st.columns(2)
    with col1:
        st.markdown("**Potential winners**")
        for name in planning.potential_winners:
            st.markdown(f"- {name}")
    with col2:
        st.markdown("**Policy indicators**")
        for name in planning.key_policy_indicators:
            st.markdown(f"- {name}")

    st.warning(payload.risk_warning)


###############################################################################
# Main Application
###############################################################################


def run_analysis(surface: str, request_fields: Dict[str, Any], provider: str):
    """Submit one request for a surface and mark credentials for attention on Auth."""
    try:
        fields = dict(request_fields, image=read_upload(request_fields.get("image")))
        request = AnalysisRequest(**fields)
    except ValidationError as e:
        st.error(f"❌ Invalid input: {e.errors()[0]['msg']}")
        return

    orchestrator: AnalysisOrchestrator = st.session_state.orchestrator
    with st.spinner(f"Analyzing with {PROVIDER_LABELS[provider]}..."):
        outcome = asyncio.run(orchestrator.analyze(request, provider, current_snapshot(), surface))

    if outcome is not None and outcome.error is not None and outcome.error.needs_credentials:
        st.session_state.show_credentials = True
        st.rerun()


def display_surface(
    surface: str,
    sidebar: Dict[str, Any],
    renderer,
    query_label: Optional[str],
    query_placeholder: str = "",
    allow_image: bool = False,
    allow_price: bool = False,
    default_query: str = "",
):
    """One analysis panel per kind: inputs, run button and its committed outcome."""
    fields: Dict[str, Any] = {"kind": surface, "market": sidebar["market"]}
    if surface == "MarketOverview":
        fields["period"] = sidebar["period"]

    if query_label:
        fields["query"] = st.text_input(
            query_label, placeholder=query_placeholder, key=f"query_{surface}"
        )
    else:
        fields["query"] = default_query

    col1, col2 = st.columns(2)
    upload = None
    if allow_image:
        with col1:
            upload = st.file_uploader(
                "Chart screenshot (optional)",
                type=[mime.split("/")[1] for mime in SUPPORTED_IMAGE_MIMES] + ["jpg"],
                key=f"image_{surface}",
            )
    if allow_price:
        with col2:
            fields["price_anchor"] = st.text_input(
                "Current price (optional)", key=f"price_{surface}"
            )

    if st.button("🚀 Run Analysis", type="primary", key=f"run_{surface}"):
        fields["image"] = upload
        run_analysis(surface, fields, sidebar["provider"])

    display_outcome(st.session_state.orchestrator.tracker.latest(surface), renderer)


def main():
    """Main application entry point."""
    init_session_state()
    display_header()
    sidebar = display_sidebar()

    tab1, tab2, tab3, tab4, tab5 = st.tabs(
        [
            "📈 Market Overview",
            "🔍 Stock Diagnosis",
            "⏱️ Timing",
            "📋 Batch Timing",
            "🌐 Macro Forecast",
        ]
    )

    with tab1:
        st.caption(f"Period: {PERIOD_LABELS[sidebar['period']]}")
        display_surface(
            "MarketOverview",
            sidebar,
            render_market_overview,
            query_label=None,
            default_query=DEFAULT_OVERVIEW_QUERY,
        )

    with tab2:
        display_surface(
            "SingleStock",
            sidebar,
            render_single_stock,
            query_label="Ticker",
            query_placeholder="e.g. 600519 / 00700 / NVDA",
            allow_image=True,
            allow_price=True,
        )

    with tab3:
        display_surface(
            "Timing",
            sidebar,
            render_timing,
            query_label="Ticker",
            query_placeholder="e.g. 000001",
            allow_image=True,
            allow_price=True,
        )

    with tab4:
        display_surface(
            "BatchTiming",
            sidebar,
            render_batch_timing,
            query_label="Ticker list (or leave empty and attach a watchlist screenshot)",
            query_placeholder="e.g. 600519, 000858, 300750",
            allow_image=True,
        )

    with tab5:
        display_surface(
            "MacroForecast",
            sidebar,
            render_macro_forecast,
            query_label="Theme",
            query_placeholder="e.g. Consumption recovery under the 15th Five-Year Plan",
        )


if __name__ == "__main__":
    main()
