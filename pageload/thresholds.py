"""
Latency thresholds and acceptance bands for the page load test.

The target site is measured from a load generator that may sit far away
from it, so every latency target is offset by a fixed baseline network
latency.  :func:`compute_thresholds` derives the three latency limits
from that offset; :class:`AcceptanceCriteria` holds the error-rate bands
that separate PASS, MARGINAL and FAIL.

Per-metric threshold rules (:class:`ThresholdRule`) mirror the limits a
load-testing engine would enforce on its own: overall and per-scenario
p95 duration, and p95 time-to-first-byte.

Key Concepts Demonstrated:
- Pure, side-effect free threshold derivation
- YAML-backed acceptance bands with strict numeric validation
- Rules that report "no data" instead of passing silently
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

if TYPE_CHECKING:
    from pageload.metrics import AggregatedMetrics

PASS_TARGET_MS = 2000
MARGINAL_TARGET_MS = 3000
TTFB_TARGET_MS = 1000

DEFAULT_BASELINE_LATENCY_MS = 200


@dataclass(frozen=True)
class ThresholdSet:
    """Latency limits derived from a baseline network latency."""

    baseline_latency_ms: float
    pass_ms: float
    marginal_ms: float
    ttfb_ms: float


def compute_thresholds(baseline_latency_ms: float) -> ThresholdSet:
    """
    Derive pass, marginal and TTFB limits from a baseline latency.

    Args:
        baseline_latency_ms: Round-trip offset between the load generator
            and the target region.  Must be zero or positive.

    Returns:
        A :class:`ThresholdSet` where each limit is its fixed target plus
        the baseline.

    Raises:
        ValueError: If *baseline_latency_ms* is negative.
    """
    if baseline_latency_ms < 0:
        raise ValueError(f"Baseline latency must be >= 0, got {baseline_latency_ms}")

    return ThresholdSet(
        baseline_latency_ms=baseline_latency_ms,
        pass_ms=PASS_TARGET_MS + baseline_latency_ms,
        marginal_ms=MARGINAL_TARGET_MS + baseline_latency_ms,
        ttfb_ms=TTFB_TARGET_MS + baseline_latency_ms,
    )


@dataclass(frozen=True)
class AcceptanceCriteria:
    """
    Error-rate bands for the verdict, in percent.

    At or below ``pass_error_rate_percent`` the error rate is acceptable;
    above ``fail_error_rate_percent`` the run fails outright.  Anything in
    between is marginal.
    """

    pass_error_rate_percent: float = 1.0
    fail_error_rate_percent: float = 3.0


def load_acceptance_criteria(path: Path) -> tuple[AcceptanceCriteria, float | None]:
    """
    Read acceptance bands from a YAML file.

    The file must define ``max_error_rate_percent`` and
    ``fail_error_rate_percent``.  ``baseline_latency_ms`` is optional and
    returned separately so callers can decide whether it overrides the
    environment.

    Args:
        path: Path to the YAML file.

    Returns:
        A ``(criteria, baseline_latency_ms)`` tuple; the baseline is
        ``None`` when the file does not set one.

    Raises:
        ValueError: If a required key is missing or non-numeric, or the
            bands are out of order.
    """
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    try:
        pass_rate = float(data["max_error_rate_percent"])
        fail_rate = float(data["fail_error_rate_percent"])
        baseline = data.get("baseline_latency_ms")
        baseline_ms = float(baseline) if baseline is not None else None
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ValueError(
            "Thresholds file must define numeric max_error_rate_percent and "
            "fail_error_rate_percent"
        ) from exc

    if pass_rate > fail_rate:
        raise ValueError(
            f"max_error_rate_percent ({pass_rate}) must not exceed "
            f"fail_error_rate_percent ({fail_rate})"
        )

    return AcceptanceCriteria(pass_rate, fail_rate), baseline_ms


# =====================================================================
# Per-metric rules
# =====================================================================


@dataclass(frozen=True)
class ThresholdRule:
    """A ``p95 < limit`` rule on one metric, optionally scoped to a scenario."""

    metric: str
    limit_ms: float
    test_type: str | None = None

    @property
    def label(self) -> str:
        scope = f"{{test_type:{self.test_type}}}" if self.test_type else ""
        return f"{self.metric}{scope} p95 < {self.limit_ms:.0f}ms"


@dataclass(frozen=True)
class RuleResult:
    rule: ThresholdRule
    observed_ms: float | None
    passed: bool | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule": self.rule.label,
            "metric": self.rule.metric,
            "test_type": self.rule.test_type,
            "limit_ms": self.rule.limit_ms,
            "observed_ms": self.observed_ms,
            "passed": self.passed,
        }


def default_rules(thresholds: ThresholdSet) -> list[ThresholdRule]:
    """Build the standard rule set for a threshold set."""
    return [
        ThresholdRule("duration", thresholds.pass_ms),
        ThresholdRule("duration", thresholds.pass_ms, test_type="average"),
        ThresholdRule("duration", thresholds.marginal_ms, test_type="peak"),
        ThresholdRule("ttfb", thresholds.ttfb_ms),
    ]


def evaluate_rules(rules: list[ThresholdRule], metrics: AggregatedMetrics) -> list[RuleResult]:
    """
    Check each rule against the aggregated metrics.

    A rule scoped to a scenario that recorded no requests yields a result
    with ``passed=None`` so reports can show it as "no data".
    """
    results: list[RuleResult] = []
    for rule in rules:
        if rule.test_type is None:
            summary = metrics.duration if rule.metric == "duration" else metrics.ttfb
        else:
            breakdown = (
                metrics.duration_by_test_type
                if rule.metric == "duration"
                else metrics.ttfb_by_test_type
            )
            summary = breakdown.get(rule.test_type)

        if summary is None or summary.count == 0:
            results.append(RuleResult(rule, observed_ms=None, passed=None))
            continue

        results.append(RuleResult(rule, observed_ms=summary.p95, passed=summary.p95 < rule.limit_ms))
    return results
