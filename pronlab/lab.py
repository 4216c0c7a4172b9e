"""
pronlab/lab.py
===============
Pronunciation Lab - PronLab

Responsibility:
    Run one audio sample through every registered vendor and compare:
        1. Dispatch ``test()`` to all adapters in parallel
        2. Time each call and capture its result OR its error
        3. Wait for every adapter to settle (no fail-fast)
        4. Compute mean / min / max / spread / std dev over scored vendors
        5. Flag vendors whose score is more than 1.5 std devs from the mean
        6. Total the per-request cost of the successful calls

A failing vendor never cancels or affects its siblings: each task writes
only its own outcome slot, so no locking is needed.

This module does NOT:
    - Retry failed vendors
    - Enforce a timeout (adapters carry their own HTTP timeouts)
    - Persist results (see pronlab.sessions)
"""

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pronlab.adapters.base import StandardizedResult, VendorAdapter
from pronlab.adapters.registry import AdapterRegistry
from pronlab.audio.codec import AudioSample

logger = logging.getLogger("pronlab.lab")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

OUTLIER_STD_DEVS: float = 1.5

# Upper bound on concurrent vendor calls
MAX_WORKERS: int = 8


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssessmentRequest:
    audio: AudioSample
    reference_text: str
    language: str


@dataclass(frozen=True)
class VendorOutcome:
    """One vendor's settled call: exactly one of ``result`` / ``error`` is set."""

    vendor: str
    elapsed_ms: float
    result: StandardizedResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


@dataclass(frozen=True)
class Statistics:
    mean: float
    min: float
    max: float
    spread: float
    std_dev: float

    def to_dict(self) -> dict[str, float]:
        return {
            "mean": self.mean,
            "min": self.min,
            "max": self.max,
            "spread": self.spread,
            "std_dev": self.std_dev,
        }


@dataclass(frozen=True)
class ComparisonReport:
    timestamp: str
    reference_text: str
    language: str
    outcomes: dict[str, VendorOutcome]
    statistics: Statistics | None
    outliers: frozenset[str] = field(default_factory=frozenset)
    cost: float = 0.0

    @property
    def results(self) -> dict[str, StandardizedResult]:
        return {v: o.result for v, o in self.outcomes.items() if o.result is not None}

    @property
    def errors(self) -> dict[str, str]:
        return {v: o.error for v, o in self.outcomes.items() if o.error is not None}

    @property
    def timings(self) -> dict[str, float]:
        return {v: o.elapsed_ms for v, o in self.outcomes.items()}

    @property
    def scores(self) -> dict[str, float]:
        return scored_vendors(self.outcomes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "reference_text": self.reference_text,
            "language": self.language,
            "results": {v: r.to_dict() for v, r in self.results.items()},
            "errors": self.errors,
            "timings": self.timings,
            "scores": [{"vendor": v, "score": s} for v, s in self.scores.items()],
            "statistics": self.statistics.to_dict() if self.statistics else None,
            "outliers": sorted(self.outliers),
            "cost": self.cost,
        }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def run_single(request: AssessmentRequest, adapter: VendorAdapter) -> VendorOutcome:
    """
    Run one adapter and capture its result or error with wall-clock timing.

    Never raises for adapter failures; the error message is recorded instead.
    """
    name = adapter.name
    start = time.perf_counter()
    try:
        result = adapter.test(request.audio, request.reference_text, request.language)
    except Exception as exc:
        elapsed = (time.perf_counter() - start) * 1000
        logger.error("%s ERROR: %s", name, exc)
        return VendorOutcome(vendor=name, elapsed_ms=elapsed, error=str(exc) or type(exc).__name__)

    elapsed = (time.perf_counter() - start) * 1000
    score = "N/A" if result.score is None else f"{result.score:.2f}"
    logger.info("%s: Success - Score: %s (%.0fms)", name, score, elapsed)
    return VendorOutcome(vendor=name, elapsed_ms=elapsed, result=result)


def run_all(
    request: AssessmentRequest,
    registry: AdapterRegistry,
    costs: dict[str, float] | None = None,
) -> ComparisonReport:
    """
    Test every registered adapter in parallel and build a ComparisonReport.

    Args:
        request:  Audio, reference text and language for this run.
        registry: Adapters to test.
        costs:    Optional vendor → cents-per-request table; only successful
                  calls are charged.

    Returns:
        ComparisonReport with one outcome per adapter, in registry order.
    """
    logger.info(
        'Testing %d API(s) with: "%s" (%s)',
        len(registry), request.reference_text, request.language,
    )

    outcomes: dict[str, VendorOutcome] = {}
    if len(registry):
        with ThreadPoolExecutor(max_workers=min(MAX_WORKERS, len(registry))) as executor:
            futures = {
                executor.submit(run_single, request, adapter): adapter.name
                for adapter in registry
            }
            for future in as_completed(futures):
                outcome = future.result()
                outcomes[outcome.vendor] = outcome

    # Restore registry order regardless of completion order
    outcomes = {name: outcomes[name] for name in registry.names() if name in outcomes}

    scores = scored_vendors(outcomes)
    statistics = compute_statistics(list(scores.values()))
    outliers = find_outliers(scores, statistics)
    cost = sum(
        (costs or {}).get(vendor, 0.0) / 100
        for vendor, outcome in outcomes.items()
        if outcome.ok
    )

    _log_comparison(scores, statistics, outliers)

    return ComparisonReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        reference_text=request.reference_text,
        language=request.language,
        outcomes=outcomes,
        statistics=statistics,
        outliers=outliers,
        cost=cost,
    )


def compute_statistics(scores: list[float]) -> Statistics | None:
    """
    Mean, min, max, spread and population standard deviation.

    Returns None (not zeros) when ``scores`` is empty.
    """
    if not scores:
        return None

    n = len(scores)
    mean = sum(scores) / n
    lo, hi = min(scores), max(scores)
    std_dev = math.sqrt(sum((s - mean) ** 2 for s in scores) / n)
    return Statistics(mean=mean, min=lo, max=hi, spread=hi - lo, std_dev=std_dev)


def find_outliers(scores: dict[str, float], statistics: Statistics | None) -> frozenset[str]:
    """Vendors whose |score − mean| exceeds 1.5 × std dev."""
    if statistics is None:
        return frozenset()
    limit = OUTLIER_STD_DEVS * statistics.std_dev
    return frozenset(
        vendor for vendor, score in scores.items()
        if abs(score - statistics.mean) > limit
    )


def scored_vendors(outcomes: dict[str, VendorOutcome]) -> dict[str, float]:
    """Vendor → score for successful outcomes that carry a score."""
    return {
        vendor: outcome.result.score
        for vendor, outcome in outcomes.items()
        if outcome.result is not None and outcome.result.score is not None
    }


def check_connections(registry: AdapterRegistry) -> dict[str, bool]:
    """
    Run each adapter's connection check.

    A check that raises is logged and reported as False.
    """
    status: dict[str, bool] = {}
    for name, adapter in registry.items():
        try:
            status[name] = bool(adapter.test_connection())
        except Exception as exc:
            logger.error("%s: Connection failed - %s", name, exc)
            status[name] = False
            continue
        if status[name]:
            logger.info("%s: Connection OK", name)
        else:
            logger.warning("%s: Connection check returned negative", name)

    logger.info("Connected: %d/%d APIs", sum(status.values()), len(status))
    return status


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _log_comparison(
    scores: dict[str, float],
    statistics: Statistics | None,
    outliers: frozenset[str],
) -> None:
    if statistics is None:
        logger.info("No vendor produced a score - comparison skipped.")
        return

    logger.info("===== COMPARISON =====")
    logger.info("Average score: %.1f", statistics.mean)
    logger.info(
        "Spread: %.1f (%.1f - %.1f)", statistics.spread, statistics.min, statistics.max,
    )
    for vendor in sorted(outliers):
        logger.warning(
            "OUTLIER: %s (%.1f vs avg %.1f)", vendor, scores[vendor], statistics.mean,
        )
