"""
pronlab/config.py
==================
Configuration - PronLab

Reads vendor credentials and lab settings from environment variables
(a local ``.env`` file is loaded first via python-dotenv) into a frozen
Settings object. Copy ``.env.example`` to ``.env`` and fill in the keys;
``.env`` must never be committed.
"""

import json
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_AZURE_REGION = "eastus"
DEFAULT_SPEECHSUPER_APP_ID = "default"
DEFAULT_LANGUAGE = "zh-TW"
DEFAULT_SESSIONS_PATH = "sessions/pronunciation-lab-sessions.json"
DEFAULT_REQUEST_TIMEOUT = 30.0  # seconds

# Cents per request
DEFAULT_COSTS: dict[str, float] = {
    "azure": 0.4,
    "speechsuper": 0.2,
    "speechace": 0.3,
    "elsa": 0.3,
    "google": 0.1,
}

DEFAULT_TEST_PHRASES: tuple[str, ...] = (
    "你好嗎",
    "早安",
    "謝謝你",
    "我想要一杯咖啡",
    "明天見",
    "Hello, how are you?",
    "The weather is nice today",
    "pronunciation assessment",
)

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


class ConfigurationError(Exception):
    """Raised when an environment setting is present but invalid."""
    pass


@dataclass(frozen=True)
class Settings:
    azure_key: str = ""
    azure_region: str = DEFAULT_AZURE_REGION
    speechsuper_key: str = ""
    speechsuper_app_id: str = DEFAULT_SPEECHSUPER_APP_ID
    generic_name: str = "generic"
    generic_key: str = ""
    generic_endpoint: str = ""
    default_language: str = DEFAULT_LANGUAGE
    auto_save_sessions: bool = True
    sessions_path: str = DEFAULT_SESSIONS_PATH
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    costs: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_COSTS))
    test_phrases: tuple[str, ...] = DEFAULT_TEST_PHRASES

    def cost_for(self, vendor: str) -> float:
        """Dollar cost of one request to ``vendor`` (0 when unpriced)."""
        return self.costs.get(vendor, 0.0) / 100


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_settings(env: dict[str, str] | None = None) -> Settings:
    """
    Build Settings from ``env`` (defaults to ``os.environ``).

    Raises:
        ConfigurationError: If a boolean, number, or JSON value is malformed.
    """
    env = os.environ if env is None else env

    return Settings(
        azure_key=env.get("AZURE_KEY", "").strip(),
        azure_region=env.get("AZURE_REGION", "").strip() or DEFAULT_AZURE_REGION,
        speechsuper_key=env.get("SPEECHSUPER_KEY", "").strip(),
        speechsuper_app_id=env.get("SPEECHSUPER_APP_ID", "").strip() or DEFAULT_SPEECHSUPER_APP_ID,
        generic_name=env.get("GENERIC_NAME", "").strip() or "generic",
        generic_key=env.get("GENERIC_API_KEY", "").strip(),
        generic_endpoint=env.get("GENERIC_ENDPOINT", "").strip().rstrip("/"),
        default_language=env.get("DEFAULT_LANGUAGE", "").strip() or DEFAULT_LANGUAGE,
        auto_save_sessions=_parse_bool(env, "AUTO_SAVE_SESSIONS", True),
        sessions_path=env.get("PRONLAB_SESSIONS_PATH", "").strip() or DEFAULT_SESSIONS_PATH,
        request_timeout=_parse_float(env, "REQUEST_TIMEOUT_SECONDS", DEFAULT_REQUEST_TIMEOUT),
        costs=_parse_costs(env.get("PRONLAB_COSTS", "")),
        test_phrases=_parse_phrases(env.get("TEST_PHRASES", "")),
    )


def _parse_bool(env, name: str, default: bool) -> bool:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got '{raw}'.")


def _parse_float(env, name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'.")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}.")
    return value


def _parse_costs(raw: str) -> dict[str, float]:
    """Merge a JSON object of cents-per-request over the default table."""
    costs = dict(DEFAULT_COSTS)
    if not raw.strip():
        return costs

    try:
        overrides = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"PRONLAB_COSTS is not valid JSON: {exc}")
    if not isinstance(overrides, dict):
        raise ConfigurationError("PRONLAB_COSTS must be a JSON object.")

    for vendor, cents in overrides.items():
        if isinstance(cents, bool) or not isinstance(cents, (int, float)):
            raise ConfigurationError(f"Cost for '{vendor}' must be a number.")
        costs[str(vendor)] = float(cents)
    return costs


def _parse_phrases(raw: str) -> tuple[str, ...]:
    phrases = tuple(p.strip() for p in raw.split("|") if p.strip())
    return phrases or DEFAULT_TEST_PHRASES
