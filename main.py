"""
QuantMind Market Assistant - Main Entry Point

Orchestrates one analysis invocation per user action: builds the prompt,
dispatches to the selected provider, validates the reply and commits the
outcome to its surface unless a newer invocation has superseded it.
"""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv

# Import from local modules
from Constants import (ANALYSIS_KINDS, APP_NAME, APP_VERSION, DEFAULT_MARKET,
                       DEFAULT_PROVIDER, DEFAULT_SURFACE, MARKETS, PERIODS,
                       PROVIDER_ENV_KEYS, PROVIDER_NAMES, can_transition)
from Errors import AuthError, classify_error
from Normalizer import normalize_response
from PromptBuilder import build_directive
from Providers import ProviderInvoker, get_invoker
from Schemas import (AnalysisOutcome, AnalysisRequest, AnalysisResult,
                     ImageInput)
from Settings import SettingsSnapshot, SettingsStore
from Utilities import encode_image_bytes, guess_image_mime, safe_json_serialize

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


###############################################################################
# Configuration
###############################################################################


def validate_config(snapshot: SettingsSnapshot, provider: str) -> bool:
    """Check the selected provider has a credential before invoking it."""
    if not snapshot.config_for(provider).has_credential:
        primary, alias = PROVIDER_ENV_KEYS[provider]
        logger.warning(f"No API key for {provider}: set {primary} (or {alias}) or save one")
        return False
    return True


###############################################################################
# Generation Tracking
###############################################################################


class GenerationTracker:
    """
    Per-surface generation counters.

    Each submission takes the next generation for its surface. Only an
    outcome whose generation is still the newest for that surface may be
    committed; older ones are discarded when they arrive.
    """

    def __init__(self):
        self._current: Dict[str, int] = {}
        self._committed: Dict[str, AnalysisOutcome] = {}

    def issue(self, surface: str) -> int:
        generation = self._current.get(surface, 0) + 1
        self._current[surface] = generation
        return generation

    def current(self, surface: str) -> int:
        return self._current.get(surface, 0)

    def is_current(self, surface: str, generation: int) -> bool:
        return self._current.get(surface, 0) == generation

    def commit(self, outcome: AnalysisOutcome) -> bool:
        """Store the outcome if it is still current; return whether it was kept."""
        if not self.is_current(outcome.surface, outcome.generation):
            return False
        self._committed[outcome.surface] = outcome
        return True

    def latest(self, surface: str) -> Optional[AnalysisOutcome]:
        return self._committed.get(surface)


###############################################################################
# Invocation State Machine
###############################################################################


class Invocation:
    """Lifecycle of one invocation: Idle -> Building -> Invoking -> Validating -> Done | Failed."""

    def __init__(self, surface: str, generation: int):
        self.surface = surface
        self.generation = generation
        self.state = "Idle"
        self.history: List[str] = ["Idle"]

    def advance(self, target: str) -> None:
        if not can_transition(self.state, target):
            raise RuntimeError(f"Illegal transition {self.state} -> {target}")
        logger.debug(f"[{self.surface}#{self.generation}] {self.state} -> {target}")
        self.state = target
        self.history.append(target)

    @property
    def is_terminal(self) -> bool:
        return self.state in ("Done", "Failed")


###############################################################################
# Orchestrator
###############################################################################


class AnalysisOrchestrator:
    """
    Runs analysis requests and commits their outcomes per surface.

    Attributes:
        tracker: Generation counters and committed outcomes per surface
        invokers: Optional provider -> invoker overrides (used by tests)
    """

    def __init__(self, invokers: Optional[Mapping[str, ProviderInvoker]] = None):
        self.tracker = GenerationTracker()
        self.invokers = dict(invokers or {})

    def _invoker_for(self, provider: str) -> ProviderInvoker:
        if provider in self.invokers:
            return self.invokers[provider]
        return get_invoker(provider)

    async def analyze(
        self,
        request: AnalysisRequest,
        provider: str,
        settings: SettingsSnapshot,
        surface: str = DEFAULT_SURFACE,
    ) -> Optional[AnalysisOutcome]:
        """
        Run one invocation and commit its outcome.

        Never raises for analysis failures: they come back classified inside
        the outcome. Cancellation of the awaiting task still propagates.

        Args:
            request: What to analyze
            provider: Backend to use
            settings: Read-only settings snapshot for this request
            surface: UI surface the request belongs to

        Returns:
            The committed outcome, or None if a newer request on the same
            surface superseded this one while it was in flight
        """
        generation = self.tracker.issue(surface)
        invocation = Invocation(surface, generation)
        started = time.monotonic()
        logger.info(f"[{surface}#{generation}] {request.kind} via {provider} ({request.market})")

        try:
            result = await self._run(invocation, request, provider, settings)
            outcome_kwargs = {"result": result}
        except Exception as e:
            error = classify_error(e)
            invocation.advance("Failed")
            logger.warning(f"[{surface}#{generation}] {error.kind} failure: {error.message}")
            outcome_kwargs = {"error": error}

        outcome = AnalysisOutcome(
            surface=surface,
            generation=generation,
            state=invocation.state,
            elapsed_ms=int((time.monotonic() - started) * 1000),
            **outcome_kwargs,
        )

        if not self.tracker.commit(outcome):
            logger.info(
                f"[{surface}#{generation}] Discarding superseded outcome "
                f"(current generation is {self.tracker.current(surface)})"
            )
            return None

        logger.info(f"[{surface}#{generation}] {outcome.state} in {outcome.elapsed_ms} ms")
        return outcome

    async def _run(
        self,
        invocation: Invocation,
        request: AnalysisRequest,
        provider: str,
        settings: SettingsSnapshot,
    ) -> AnalysisResult:
        invocation.advance("Building")
        invoker = self._invoker_for(provider)
        directive = build_directive(request, deliver_image=invoker.capability.supports_vision)
        config = settings.config_for(provider)
        if not config.has_credential:
            raise AuthError(f"No API key configured for {provider}.")

        invocation.advance("Invoking")
        call = invoker.invoke(directive, config)
        if settings.timeout_s:
            raw = await asyncio.wait_for(call, timeout=settings.timeout_s)
        else:
            raw = await call

        invocation.advance("Validating")
        result = normalize_response(raw, request, provider)

        invocation.advance("Done")
        return result


def analyze_with_llm(
    request: AnalysisRequest,
    provider: str = DEFAULT_PROVIDER,
    settings: Optional[SettingsSnapshot] = None,
) -> AnalysisOutcome:
    """
    Convenience function to run one analysis without managing an orchestrator.

    Args:
        request: What to analyze
        provider: Backend to use
        settings: Settings snapshot (defaults to saved settings + environment)

    Returns:
        The outcome of the invocation
    """
    snapshot = settings or SettingsStore().snapshot()
    orchestrator = AnalysisOrchestrator()
    return asyncio.run(orchestrator.analyze(request, provider, snapshot))


###############################################################################
# Image Loading
###############################################################################


async def load_image_input(path: str) -> ImageInput:
    """Read an image file off the event loop and wrap it as an ImageInput."""
    image_path = Path(path)
    raw = await asyncio.to_thread(image_path.read_bytes)
    return ImageInput(data=encode_image_bytes(raw), mime_type=guess_image_mime(image_path.name))


###############################################################################
# Main Entry Point
###############################################################################


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=f"{APP_NAME} - run one market analysis")
    parser.add_argument("--kind", choices=ANALYSIS_KINDS, required=True)
    parser.add_argument("--market", choices=MARKETS, default=DEFAULT_MARKET)
    parser.add_argument("--provider", choices=PROVIDER_NAMES, default=DEFAULT_PROVIDER)
    parser.add_argument("--period", choices=PERIODS, default=None)
    parser.add_argument("--query", default="", help="Ticker, ticker list or topic")
    parser.add_argument("--price", default=None, help="Current price to anchor calculations")
    parser.add_argument("--image", default=None, help="Path to a chart screenshot")
    return parser.parse_args(argv)


def _print_header(args: argparse.Namespace) -> None:
    """Print execution header."""
    print("")
    print("=" * 70)
    print(f"{APP_NAME.upper()} v{APP_VERSION}")
    print("=" * 70)
    print(f"  Kind: {args.kind}")
    print(f"  Market: {args.market}")
    print(f"  Provider: {args.provider}")
    if args.query:
        print(f"  Query: {args.query}")
    if args.price:
        print(f"  Price anchor: {args.price}")
    if args.image:
        print(f"  Image: {args.image}")
    print("=" * 70)


async def _run_cli(args: argparse.Namespace) -> Optional[AnalysisOutcome]:
    image = await load_image_input(args.image) if args.image else None
    request = AnalysisRequest(
        kind=args.kind,
        market=args.market,
        period=args.period,
        query=args.query,
        price_anchor=args.price,
        image=image,
    )
    snapshot = SettingsStore().snapshot()
    validate_config(snapshot, args.provider)
    return await AnalysisOrchestrator().analyze(request, args.provider, snapshot)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the QuantMind command line."""
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    args = _parse_args(argv)
    _print_header(args)

    outcome = asyncio.run(_run_cli(args))

    print("")
    print("=" * 70)
    if outcome.ok:
        print(f"RESULT ({outcome.elapsed_ms} ms)")
        print("=" * 70)
        print(safe_json_serialize(outcome.result.to_envelope()))
        return 0

    print(f"FAILED: {outcome.error.kind}")
    print("=" * 70)
    print(outcome.error.display_message)
    if outcome.error.raw_content:
        print("")
        print("Raw response:")
        print(outcome.error.raw_content)
    return 1


if __name__ == "__main__":
    sys.exit(main())
