"""
Gate CI on the verdict of a finished load-test run.

Reads either the ``summary.json`` written by the locustfile or a plain
Locust ``*_stats.csv`` file, evaluates the verdict against the latency
thresholds and acceptance bands, prints a results table, and exits with
a status CI can act on.

A run is reporting-only by default; this script is where a pipeline
decides which verdicts should break the build (``--fail-on``).

Exit codes:

- ``0``: verdict below the ``--fail-on`` level
- ``1``: verdict at or above the ``--fail-on`` level
- ``2``: the script itself failed (missing file, bad YAML, etc.)

Key Concepts Demonstrated:
- One verdict engine shared by the live run and offline gating
- Tolerant CSV parsing across Locust column-name variants
- Three-state exit codes separating "breached" from "crashed"
"""

from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pageload.metrics import AggregatedMetrics, DistributionSummary
from pageload.thresholds import (
    DEFAULT_BASELINE_LATENCY_MS,
    AcceptanceCriteria,
    compute_thresholds,
    load_acceptance_criteria,
)
from pageload.verdict import Verdict, VerdictResult, evaluate

logger = logging.getLogger(__name__)

EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_SCRIPT_ERROR = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the verdict gate."""
    parser = argparse.ArgumentParser(
        description="Evaluate a page load-test run and exit according to its verdict."
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--summary",
        type=Path,
        help="Path to summary.json written by the locustfile",
    )
    source.add_argument(
        "--stats",
        type=Path,
        help="Path to a Locust *_stats.csv file",
    )
    parser.add_argument(
        "--thresholds",
        type=Path,
        default=None,
        help="YAML file with acceptance bands (default: 1%% / 3%%)",
    )
    parser.add_argument(
        "--baseline-latency-ms",
        type=float,
        default=None,
        help=f"Baseline latency offset (default: file value or {DEFAULT_BASELINE_LATENCY_MS})",
    )
    parser.add_argument(
        "--fail-on",
        choices=[Verdict.MARGINAL.value.lower(), Verdict.FAIL.value.lower()],
        default=Verdict.FAIL.value.lower(),
        help="Lowest verdict that makes the script exit with code 1",
    )
    return parser.parse_args(argv)


# =====================================================================
# Loading metrics
# =====================================================================


_MISSING = (None, "", "N/A")


def _column(row: dict[str, Any], *names: str, required: bool = False) -> float:
    """
    Numeric value of the first populated column among *names*.

    Locust renames its CSV columns between releases, so callers pass
    every known spelling.  ``%`` signs are ignored.  An unpopulated
    optional column reads as ``0``.
    """
    for name in names:
        raw = row.get(name)
        if raw in _MISSING:
            continue
        try:
            return float(str(raw).strip().rstrip("%"))
        except ValueError as exc:
            raise ValueError(f"{name} is not a number: {raw!r}") from exc

    if required:
        raise ValueError(f"Stats CSV has no value for {names[0]}")
    return 0.0


def load_metrics_from_summary(path: Path) -> AggregatedMetrics:
    """
    Read the ``metrics`` section of a ``summary.json`` report.

    Missing values default to zero.
    """
    with path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)

    metrics = data.get("metrics", data)
    if not isinstance(metrics, dict):
        raise ValueError("Summary file has no metrics object")

    def summary(key: str) -> DistributionSummary:
        values = metrics.get(key) or {}
        return DistributionSummary(
            count=int(values.get("count", 0) or 0),
            avg=float(values.get("avg", 0) or 0),
            min=float(values.get("min", 0) or 0),
            max=float(values.get("max", 0) or 0),
            p95=float(values.get("p95", 0) or 0),
        )

    return AggregatedMetrics.from_counts(
        total_requests=int(metrics.get("total_requests", 0) or 0),
        failed_requests=int(metrics.get("failed_requests", 0) or 0),
        duration=summary("duration"),
        ttfb=summary("ttfb"),
        run_duration_seconds=float(metrics.get("run_duration_seconds", 0) or 0),
    )


def load_metrics_from_stats_csv(path: Path) -> AggregatedMetrics:
    """
    Build metrics from Locust's ``Aggregated`` CSV row.

    The CSV has no time-to-first-byte column, so TTFB is reported as zero.
    """
    with path.open("r", encoding="utf-8", newline="") as handle:
        row = next(
            (
                row
                for row in csv.DictReader(handle)
                if "Aggregated" in (row.get("Name"), row.get("Type"))
            ),
            None,
        )
    if row is None:
        raise ValueError(f"{path} has no Aggregated row")

    total = int(_column(row, "Request Count", "# requests", required=True))
    failed = int(_column(row, "Failure Count", "# failures", required=True))
    duration = DistributionSummary(
        count=total,
        avg=_column(row, "Average Response Time", "Average response time"),
        min=_column(row, "Min Response Time", "Min response time"),
        max=_column(row, "Max Response Time", "Max response time"),
        p95=_column(row, "95%", "95%ile", "95th percentile", "p95"),
    )
    return AggregatedMetrics.from_counts(
        total_requests=total,
        failed_requests=failed,
        duration=duration,
    )


# =====================================================================
# Output
# =====================================================================


def _print_summary(result: VerdictResult, *, pass_ms: float, marginal_ms: float,
                   criteria: AcceptanceCriteria) -> None:
    """Print a human-readable results table to stdout for CI logs."""
    print("Load Test Verdict")
    print("-" * 72)
    print(f"{'Metric':<22}{'Actual':>12}{'Pass <=':>12}{'Fail >':>12}{'Status':>14}")
    print("-" * 72)

    p95_status = _band(result.p95_within_pass, result.p95_within_marginal)
    error_status = _band(result.error_rate_within_pass, result.error_rate_within_marginal)

    print(
        f"{'P95 latency (ms)':<22}{result.p95_ms:>12.2f}{pass_ms:>12.2f}"
        f"{marginal_ms:>12.2f}{p95_status:>14}"
    )
    print(
        f"{'Error rate (%)':<22}{result.error_rate_percent:>12.2f}"
        f"{criteria.pass_error_rate_percent:>12.2f}"
        f"{criteria.fail_error_rate_percent:>12.2f}{error_status:>14}"
    )
    print("-" * 72)
    print(f"Overall: {result.verdict.value}")


def _band(within_pass: bool, within_marginal: bool) -> str:
    if within_pass:
        return Verdict.PASS.value
    if within_marginal:
        return Verdict.MARGINAL.value
    return Verdict.FAIL.value


def main(argv: list[str] | None = None) -> int:
    """
    Entry point: load metrics, evaluate, print, and pick an exit code.

    Returns:
        ``EXIT_PASS`` (0) below the ``--fail-on`` level,
        ``EXIT_THRESHOLD_BREACH`` (1) at or above it, or
        ``EXIT_SCRIPT_ERROR`` (2) on unexpected failures.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = parse_args(argv)

    try:
        criteria = AcceptanceCriteria()
        baseline_ms: float | None = None
        if args.thresholds is not None:
            criteria, baseline_ms = load_acceptance_criteria(args.thresholds)
        if args.baseline_latency_ms is not None:
            baseline_ms = args.baseline_latency_ms
        thresholds = compute_thresholds(
            DEFAULT_BASELINE_LATENCY_MS if baseline_ms is None else baseline_ms
        )

        if args.summary is not None:
            metrics = load_metrics_from_summary(args.summary)
        else:
            metrics = load_metrics_from_stats_csv(args.stats)

        if metrics.total_requests == 0:
            logger.warning("No requests recorded; treating missing metrics as zero")

        result = evaluate(metrics, thresholds, criteria)
        _print_summary(
            result,
            pass_ms=thresholds.pass_ms,
            marginal_ms=thresholds.marginal_ms,
            criteria=criteria,
        )
    except Exception as exc:
        print(f"Verdict check failed: {exc}", file=sys.stderr)
        return EXIT_SCRIPT_ERROR

    fail_on = Verdict(args.fail_on.upper())
    return EXIT_THRESHOLD_BREACH if result.verdict.severity >= fail_on.severity else EXIT_PASS


if __name__ == "__main__":
    raise SystemExit(main())
