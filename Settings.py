"""
Provider settings for the QuantMind analysis dashboard.
Resolves per-provider credentials and endpoint parameters from the
environment and the locally saved settings record, and hands the core an
immutable snapshot per request.
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from Constants import (DEFAULT_SETTINGS_PATH, LLM_MAX_TOKENS, LLM_TEMPERATURE,
                       PROVIDER_BASE_URL_ENV, PROVIDER_DEFAULT_BASE_URLS,
                       PROVIDER_DEFAULT_MODELS, PROVIDER_ENV_KEYS,
                       PROVIDER_MODEL_ENV, PROVIDER_NAMES, SETTINGS_PATH_ENV,
                       TIMEOUT_ENV)
from Schemas import ProviderConfig

logger = logging.getLogger(__name__)


###############################################################################
# Credential Resolution
###############################################################################


def resolve_api_key(
    provider: str,
    saved_keys: Mapping[str, str],
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """
    Resolve a provider's API key.

    A key the user explicitly saved wins; otherwise the primary environment
    variable, then its alias. Blank values count as absent.
    """
    env = os.environ if environ is None else environ

    saved = (saved_keys.get(provider) or "").strip()
    if saved:
        return saved

    primary, alias = PROVIDER_ENV_KEYS[provider]
    for name in (primary, alias):
        value = (env.get(name) or "").strip()
        if value:
            return value
    return None


def resolve_endpoint_params(
    provider: str, environ: Optional[Mapping[str, str]] = None
) -> Dict[str, object]:
    """Model name, base URL and sampling parameters for a provider."""
    env = os.environ if environ is None else environ

    params: Dict[str, object] = {
        "model": env.get(PROVIDER_MODEL_ENV[provider]) or PROVIDER_DEFAULT_MODELS[provider],
        "temperature": LLM_TEMPERATURE,
        "max_tokens": LLM_MAX_TOKENS,
    }
    if provider in PROVIDER_DEFAULT_BASE_URLS:
        params["base_url"] = (
            env.get(PROVIDER_BASE_URL_ENV[provider]) or PROVIDER_DEFAULT_BASE_URLS[provider]
        )
    return params


def resolve_timeout(environ: Optional[Mapping[str, str]] = None) -> Optional[float]:
    """Optional per-invocation timeout in seconds; None keeps the wait unbounded."""
    env = os.environ if environ is None else environ
    raw = (env.get(TIMEOUT_ENV) or "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {TIMEOUT_ENV}={raw!r}")
        return None
    return value if value > 0 else None


###############################################################################
# Snapshot
###############################################################################


class SettingsSnapshot(BaseModel):
    """Read-only view of every provider's configuration at one instant."""

    model_config = ConfigDict(frozen=True)

    providers: Dict[str, ProviderConfig] = Field(default_factory=dict)
    timeout_s: Optional[float] = None

    def config_for(self, provider: str) -> ProviderConfig:
        config = self.providers.get(provider)
        if config is None:
            return ProviderConfig(provider=provider)
        return config

    def configured_providers(self) -> Dict[str, bool]:
        return {name: self.config_for(name).has_credential for name in PROVIDER_NAMES}


def build_snapshot(
    saved_keys: Optional[Mapping[str, str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SettingsSnapshot:
    """Build a snapshot from saved keys and the environment."""
    saved = saved_keys or {}
    providers = {
        name: ProviderConfig(
            provider=name,
            api_key=resolve_api_key(name, saved, environ),
            endpoint_params=resolve_endpoint_params(name, environ),
        )
        for name in PROVIDER_NAMES
    }
    return SettingsSnapshot(providers=providers, timeout_s=resolve_timeout(environ))


###############################################################################
# Local Settings Record
###############################################################################


def default_settings_path() -> Path:
    return Path(os.getenv(SETTINGS_PATH_ENV) or DEFAULT_SETTINGS_PATH).expanduser()


class SettingsStore:
    """
    JSON file holding the API keys a user explicitly saved.

    Loaded once at startup and written only on an explicit save action.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else default_settings_path()

    def load(self) -> Dict[str, str]:
        """Return saved keys; a missing or unreadable file means none saved."""
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read settings from {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed settings record in {self.path}")
            return {}
        keys = data.get("api_keys", {})
        if not isinstance(keys, dict):
            logger.warning(f"Ignoring malformed api_keys entry in {self.path}")
            return {}
        return {
            name: value
            for name, value in keys.items()
            if name in PROVIDER_NAMES and isinstance(value, str) and value.strip()
        }

    def save(self, api_keys: Mapping[str, str]) -> Dict[str, str]:
        """Persist non-blank keys for known providers and return what was saved."""
        cleaned = {
            name: value.strip()
            for name, value in api_keys.items()
            if name in PROVIDER_NAMES and value and value.strip()
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({"api_keys": cleaned}, indent=2), encoding="utf-8")
        logger.info(f"Saved settings for providers: {sorted(cleaned)}")
        return cleaned

    def snapshot(self, environ: Optional[Mapping[str, str]] = None) -> SettingsSnapshot:
        return build_snapshot(self.load(), environ)
