"""
Verdict engine: turn a metric snapshot into PASS, MARGINAL or FAIL.

The verdict depends on two numbers, p95 request duration and error
rate, compared against the latency thresholds and the error-rate bands:

- **FAIL** if p95 is above the marginal threshold, or the error rate is
  above the fail band
- **MARGINAL** otherwise, if p95 is above the pass threshold, or the
  error rate is above the pass band
- **PASS** otherwise

FAIL is checked first, so a run that qualifies for both is a failure.
Every report renders from the same :class:`VerdictResult`, which also
carries the individual comparisons that justified the verdict.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pageload.metrics import AggregatedMetrics
from pageload.thresholds import AcceptanceCriteria, ThresholdSet


class Verdict(str, Enum):
    """Overall outcome of a run."""

    PASS = "PASS"
    MARGINAL = "MARGINAL"
    FAIL = "FAIL"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {Verdict.PASS: 0, Verdict.MARGINAL: 1, Verdict.FAIL: 2}


@dataclass(frozen=True)
class VerdictResult:
    """A verdict plus the per-criterion comparisons behind it."""

    verdict: Verdict
    p95_ms: float
    error_rate_percent: float
    p95_within_pass: bool
    p95_within_marginal: bool
    error_rate_within_pass: bool
    error_rate_within_marginal: bool
    ttfb_within_threshold: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "verdict": self.verdict.value,
            "p95_ms": self.p95_ms,
            "error_rate_percent": self.error_rate_percent,
            "criteria": {
                "p95_within_pass": self.p95_within_pass,
                "p95_within_marginal": self.p95_within_marginal,
                "error_rate_within_pass": self.error_rate_within_pass,
                "error_rate_within_marginal": self.error_rate_within_marginal,
                "ttfb_within_threshold": self.ttfb_within_threshold,
            },
        }


def classify(
    p95_ms: float,
    error_rate_percent: float,
    thresholds: ThresholdSet,
    criteria: AcceptanceCriteria,
) -> Verdict:
    """Classify a single ``(p95, error rate)`` pair."""
    if p95_ms > thresholds.marginal_ms or error_rate_percent > criteria.fail_error_rate_percent:
        return Verdict.FAIL
    if p95_ms > thresholds.pass_ms or error_rate_percent > criteria.pass_error_rate_percent:
        return Verdict.MARGINAL
    return Verdict.PASS


def evaluate(
    metrics: AggregatedMetrics,
    thresholds: ThresholdSet,
    criteria: AcceptanceCriteria | None = None,
) -> VerdictResult:
    """
    Evaluate the final snapshot of a run.

    Args:
        metrics: The aggregated metrics.  Missing values are already zero.
        thresholds: Latency thresholds for this run.
        criteria: Error-rate bands; defaults to 1 % / 3 %.

    Returns:
        The :class:`VerdictResult` all reports should render.
    """
    criteria = criteria or AcceptanceCriteria()
    p95_ms = metrics.duration.p95
    error_rate = metrics.error_rate_percent

    return VerdictResult(
        verdict=classify(p95_ms, error_rate, thresholds, criteria),
        p95_ms=p95_ms,
        error_rate_percent=error_rate,
        p95_within_pass=p95_ms <= thresholds.pass_ms,
        p95_within_marginal=p95_ms <= thresholds.marginal_ms,
        error_rate_within_pass=error_rate <= criteria.pass_error_rate_percent,
        error_rate_within_marginal=error_rate <= criteria.fail_error_rate_percent,
        # TTFB is reported alongside the verdict but does not change it.
        ttfb_within_threshold=metrics.ttfb.p95 < thresholds.ttfb_ms,
    )
