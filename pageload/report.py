"""
Report rendering for a finished load-test run.

One :class:`RunReport` is built from the final metric snapshot, and all
three artifacts are rendered from it, so they can never disagree about
the verdict:

- ``summary.json``: machine-readable dump of every metric
- ``summary.html``: formatted report (Jinja2 template)
- a condensed text summary for the console / CI log

Key Concepts Demonstrated:
- Single source of truth for multiple output formats
- Template rendering with autoescaping for the HTML artifact
- Fixed-width text table in the style of CI threshold gates
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from jinja2 import Environment, PackageLoader, select_autoescape

from pageload.metrics import AggregatedMetrics
from pageload.schedule import RunSchedule
from pageload.thresholds import (
    AcceptanceCriteria,
    RuleResult,
    ThresholdSet,
    default_rules,
    evaluate_rules,
)
from pageload.verdict import VerdictResult, evaluate

logger = logging.getLogger(__name__)

JSON_REPORT_NAME = "summary.json"
HTML_REPORT_NAME = "summary.html"

_jinja = Environment(
    loader=PackageLoader("pageload", "templates"),
    autoescape=select_autoescape(["html", "j2"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass(frozen=True)
class PhaseSummary:
    name: str
    scenario: str
    description: str


@dataclass(frozen=True)
class RunReport:
    """Everything the renderers need, evaluated once."""

    metrics: AggregatedMetrics
    result: VerdictResult
    thresholds: ThresholdSet
    criteria: AcceptanceCriteria
    rule_results: list[RuleResult]
    phases: list[PhaseSummary] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def build_run_report(
    metrics: AggregatedMetrics,
    thresholds: ThresholdSet,
    criteria: AcceptanceCriteria | None = None,
    schedule: RunSchedule | None = None,
    generated_at: datetime | None = None,
) -> RunReport:
    """Evaluate the verdict and threshold rules for a snapshot."""
    criteria = criteria or AcceptanceCriteria()
    phases = []
    if schedule is not None:
        phases = [
            PhaseSummary(phase.name, phase.scenario, phase.describe())
            for phase in schedule.phases
        ]

    return RunReport(
        metrics=metrics,
        result=evaluate(metrics, thresholds, criteria),
        thresholds=thresholds,
        criteria=criteria,
        rule_results=evaluate_rules(default_rules(thresholds), metrics),
        phases=phases,
        generated_at=generated_at or datetime.now(timezone.utc),
    )


def report_data(report: RunReport) -> dict[str, Any]:
    """The JSON-serialisable form of a report."""
    thresholds = report.thresholds
    return {
        "generated_at": report.generated_at.isoformat(),
        "verdict": report.result.to_dict(),
        "metrics": report.metrics.to_dict(),
        "thresholds": {
            "baseline_latency_ms": thresholds.baseline_latency_ms,
            "pass_ms": thresholds.pass_ms,
            "marginal_ms": thresholds.marginal_ms,
            "ttfb_ms": thresholds.ttfb_ms,
        },
        "acceptance_criteria": {
            "pass_error_rate_percent": report.criteria.pass_error_rate_percent,
            "fail_error_rate_percent": report.criteria.fail_error_rate_percent,
        },
        "rules": [rule_result.to_dict() for rule_result in report.rule_results],
        "phases": [
            {"name": phase.name, "scenario": phase.scenario, "description": phase.description}
            for phase in report.phases
        ],
    }


def render_json(report: RunReport) -> str:
    return json.dumps(report_data(report), indent=2)


def render_html(report: RunReport) -> str:
    template = _jinja.get_template("report.html.j2")
    return template.render(
        report=report,
        metrics=report.metrics,
        result=report.result,
        thresholds=report.thresholds,
        criteria=report.criteria,
    )


def render_text_summary(report: RunReport) -> str:
    """Condensed console summary with one verdict line."""
    metrics = report.metrics
    result = report.result
    thresholds = report.thresholds
    criteria = report.criteria

    def mark(ok: bool) -> str:
        return "OK" if ok else "MISS"

    lines = [
        "",
        "=== Load Test Summary ===",
        "",
        f"Total Requests: {metrics.total_requests}",
        f"Failed Requests: {metrics.failed_requests}",
        f"Error Rate: {metrics.error_rate_percent:.2f}%",
        "",
        f"Page Load Time (95th percentile): {metrics.duration.p95:.2f}ms",
        f"TTFB (95th percentile): {metrics.ttfb.p95:.2f}ms",
        "",
        f"Performance Target: {result.verdict.value}",
        f"  - P95 <= {thresholds.pass_ms:.0f}ms: {mark(result.p95_within_pass)}"
        f" ({metrics.duration.p95:.2f}ms)",
        f"  - Error rate <= {criteria.pass_error_rate_percent:g}%: "
        f"{mark(result.error_rate_within_pass)} ({metrics.error_rate_percent:.2f}%)",
    ]

    if report.rule_results:
        lines.append("")
        lines.append("Threshold rules:")
        for rule_result in report.rule_results:
            if rule_result.passed is None:
                status = "NO DATA"
                observed = "-"
            else:
                status = "PASS" if rule_result.passed else "FAIL"
                observed = f"{rule_result.observed_ms:.2f}ms"
            lines.append(f"  {rule_result.rule.label:<40}{observed:>14}{status:>10}")

    lines.append("")
    lines.append(
        f"Note: Thresholds include {thresholds.baseline_latency_ms:.0f}ms baseline latency"
    )
    return "\n".join(lines) + "\n"


def write_reports(output_dir: Path, report: RunReport) -> str:
    """
    Write the JSON and HTML artifacts and return the text summary.

    Args:
        output_dir: Directory to write into; created if missing.
        report: The evaluated report.

    Returns:
        The text summary, for the caller to print or log.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    json_path = output_dir / JSON_REPORT_NAME
    html_path = output_dir / HTML_REPORT_NAME
    json_path.write_text(render_json(report), encoding="utf-8")
    html_path.write_text(render_html(report), encoding="utf-8")

    logger.info("Wrote %s and %s", json_path, html_path)
    return render_text_summary(report)
