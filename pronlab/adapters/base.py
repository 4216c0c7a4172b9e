"""
pronlab/adapters/base.py
=========================
Vendor Adapter Contract - PronLab

Responsibility:
    - Define the capability set every vendor adapter provides
      (test / test_connection / get_capabilities / map_language)
    - Define the standardized result every vendor response is mapped into
    - Define AdapterError, the single failure type adapters raise
    - Provide the one-shot HTTP helpers adapters share

Adapters are independent classes that satisfy the ``VendorAdapter``
protocol structurally; there is no shared base class.

This module does NOT:
    - Retry failed requests (a single failed attempt surfaces immediately)
    - Know about any particular vendor's wire format
"""

import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Protocol, runtime_checkable

import requests

from pronlab.audio.codec import AudioSample

logger = logging.getLogger("pronlab.adapters")

SCORE_MIN = 0.0
SCORE_MAX = 100.0


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class AdapterError(Exception):
    """Raised when a vendor call fails or returns an unusable response."""

    def __init__(self, vendor: str, message: str, http_status: int | None = None):
        self.vendor = vendor
        self.message = message
        self.http_status = http_status
        prefix = f"{vendor} API error"
        if http_status is not None:
            prefix += f": {http_status}"
        super().__init__(f"{prefix} - {message}")


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StandardizedResult:
    """
    A vendor response mapped into the common schema.

    ``score`` is the overall 0-100 score or None when the vendor gave none.
    ``details`` is a read-only mapping of optional sub-scores and
    word/phoneme breakdowns; it never contains None values. ``raw`` is
    the untouched vendor payload.
    """

    score: float | None
    details: Mapping[str, Any] = field(default_factory=dict)
    raw: Any = None

    def __post_init__(self):
        if self.score is not None and not (SCORE_MIN <= self.score <= SCORE_MAX):
            raise ValueError(f"Score {self.score} outside [{SCORE_MIN}, {SCORE_MAX}].")
        if any(v is None for v in self.details.values()):
            raise ValueError("details must not contain None values.")
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))

    @classmethod
    def build(cls, score: Any, details: dict[str, Any], raw: Any) -> "StandardizedResult":
        """Clamp the score into range and drop None-valued details."""
        return cls(
            score=clamp_score(to_score(score)),
            details={k: v for k, v in details.items() if v is not None},
            raw=raw,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"score": self.score, "details": dict(self.details), "raw": self.raw}


@dataclass(frozen=True)
class Capabilities:
    """Static, declarative description of what a vendor supports."""

    languages: frozenset[str]
    features: frozenset[str]
    audio_formats: frozenset[str]
    max_duration_seconds: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "languages": sorted(self.languages),
            "features": sorted(self.features),
            "audio_formats": sorted(self.audio_formats),
            "max_duration_seconds": self.max_duration_seconds,
        }


# ---------------------------------------------------------------------------
# Adapter protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class VendorAdapter(Protocol):
    """Capability set every pronunciation-assessment vendor implements."""

    name: str

    def test(
        self, audio: AudioSample, reference_text: str, language: str,
    ) -> StandardizedResult: ...

    def test_connection(self) -> bool: ...

    def get_capabilities(self) -> Capabilities: ...

    def map_language(self, language: str) -> str: ...


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def to_score(value: Any) -> float | None:
    """Coerce a vendor score to float; None for missing or non-numeric values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(score):
        return None
    return score


def clamp_score(score: float | None) -> float | None:
    if score is None:
        return None
    return min(SCORE_MAX, max(SCORE_MIN, score))


def send_request(vendor: str, method: str, url: str, **kwargs: Any) -> requests.Response:
    """
    Issue exactly one HTTP request and fail on transport errors or non-2xx.

    Raises:
        AdapterError: On connection failure, timeout, or a non-2xx status.
    """
    try:
        resp = requests.request(method, url, **kwargs)
    except requests.RequestException as exc:
        raise AdapterError(vendor, f"request failed: {exc}") from exc

    if not resp.ok:
        raise AdapterError(vendor, resp.text or resp.reason or "request rejected", resp.status_code)
    return resp


def parse_json(vendor: str, resp: requests.Response) -> Any:
    """Decode a JSON body, converting decode failures into AdapterError."""
    try:
        return resp.json()
    except ValueError as exc:
        raise AdapterError(vendor, f"response is not valid JSON: {exc}", resp.status_code) from exc
