"""
Run-wide metrics for the page load test.

Every request outcome feeds two latency distributions: total duration
and time-to-first-byte.  Rather than computing percentiles itself, the
recorder stores samples in Locust's own :class:`~locust.stats.RequestStats`,
which keeps a rounded response-time histogram and answers percentile
queries from it.  Entries are keyed by ``(page tag, test_type)`` so the
final snapshot can be broken down per scenario or per page.

Aggregation is append-only and order-independent (counts, sums, min/max
and histogram buckets), so contributions from many concurrent users
need no coordination.  In distributed runs each worker ships increments
to the master, which folds them into its own recorder the same way
Locust merges its built-in statistics.

Key Concepts Demonstrated:
- Reusing the load engine's percentile histogram instead of rolling one
- Degrading to zeros when a metric recorded nothing
- Incremental worker → master reporting
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from locust.stats import RequestStats, StatsEntry

if TYPE_CHECKING:
    from pageload.executor import RequestOutcome

logger = logging.getLogger(__name__)

UNTAGGED = "untagged"


@dataclass(frozen=True)
class DistributionSummary:
    """Avg/min/max/p95 of one latency distribution, in milliseconds."""

    count: int = 0
    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0
    p95: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "count": self.count,
            "avg": self.avg,
            "min": self.min,
            "max": self.max,
            "p95": self.p95,
        }


@dataclass(frozen=True)
class AggregatedMetrics:
    """
    Final metric snapshot consumed by the verdict engine and reports.

    Attributes:
        total_requests: Requests issued, successful or not.
        failed_requests: Requests whose outcome was unsuccessful.
        error_rate_percent: ``failed / total × 100``, or ``0`` when no
            request was recorded.
        duration: Total request duration distribution.
        ttfb: Time-to-first-byte distribution.
        run_duration_seconds: Wall-clock length of the run.
        duration_by_test_type: Duration distribution per scenario.
        ttfb_by_test_type: TTFB distribution per scenario.
        duration_by_page: Duration distribution per page tag.
    """

    total_requests: int = 0
    failed_requests: int = 0
    error_rate_percent: float = 0.0
    duration: DistributionSummary = field(default_factory=DistributionSummary)
    ttfb: DistributionSummary = field(default_factory=DistributionSummary)
    run_duration_seconds: float = 0.0
    duration_by_test_type: dict[str, DistributionSummary] = field(default_factory=dict)
    ttfb_by_test_type: dict[str, DistributionSummary] = field(default_factory=dict)
    duration_by_page: dict[str, DistributionSummary] = field(default_factory=dict)

    @classmethod
    def from_counts(
        cls,
        *,
        total_requests: int,
        failed_requests: int,
        duration: DistributionSummary | None = None,
        ttfb: DistributionSummary | None = None,
        run_duration_seconds: float = 0.0,
    ) -> AggregatedMetrics:
        """Build a snapshot from plain counts, deriving the error rate."""
        return cls(
            total_requests=total_requests,
            failed_requests=failed_requests,
            error_rate_percent=error_rate_percent(total_requests, failed_requests),
            duration=duration or DistributionSummary(),
            ttfb=ttfb or DistributionSummary(),
            run_duration_seconds=run_duration_seconds,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "failed_requests": self.failed_requests,
            "error_rate_percent": self.error_rate_percent,
            "run_duration_seconds": self.run_duration_seconds,
            "duration": self.duration.to_dict(),
            "ttfb": self.ttfb.to_dict(),
            "duration_by_test_type": _dict_of(self.duration_by_test_type),
            "ttfb_by_test_type": _dict_of(self.ttfb_by_test_type),
            "duration_by_page": _dict_of(self.duration_by_page),
        }


def error_rate_percent(total_requests: int, failed_requests: int) -> float:
    """Failure share in percent; ``0`` for an empty run."""
    if total_requests <= 0:
        return 0.0
    return (failed_requests / total_requests) * 100.0


def _dict_of(summaries: dict[str, DistributionSummary]) -> dict[str, dict[str, float]]:
    return {key: summary.to_dict() for key, summary in sorted(summaries.items())}


def summarize_entry(entry: StatsEntry) -> DistributionSummary:
    """Convert a Locust stats entry to a :class:`DistributionSummary`."""
    if entry.num_requests == 0:
        return DistributionSummary()

    return DistributionSummary(
        count=entry.num_requests,
        avg=float(entry.avg_response_time),
        min=float(entry.min_response_time or 0),
        max=float(entry.max_response_time or 0),
        p95=float(entry.get_response_time_percentile(0.95) or 0),
    )


class MetricsRecorder:
    """
    Collects request outcomes into duration and TTFB distributions.

    Entries are keyed the way Locust keys its own statistics: the page tag
    plays the role of the request name and the scenario ``test_type`` the
    role of the request method.
    """

    def __init__(self) -> None:
        self.duration = RequestStats()
        self.ttfb = RequestStats()
        self.started_at: float | None = None
        self.stopped_at: float | None = None

    def mark_started(self, now: float | None = None) -> None:
        self.started_at = time.time() if now is None else now
        self.stopped_at = None

    def mark_stopped(self, now: float | None = None) -> None:
        self.stopped_at = time.time() if now is None else now

    def record(self, outcome: RequestOutcome, tags: dict[str, str]) -> None:
        """
        Record one outcome.

        Duration is always recorded.  TTFB is recorded only when a response
        actually arrived, so transport failures do not drag its
        distribution towards zero.  Unsuccessful outcomes also count as
        failures on the duration stats, which drives the error rate.
        """
        name = tags.get("page", UNTAGGED)
        method = tags.get("test_type", UNTAGGED)

        self.duration.log_request(method, name, outcome.duration_ms, outcome.body_size_bytes)
        if outcome.ttfb_ms is not None:
            self.ttfb.log_request(method, name, outcome.ttfb_ms, outcome.body_size_bytes)

        if not outcome.success:
            self.duration.log_error(method, name, outcome.failure_reason)

    def snapshot(self) -> AggregatedMetrics:
        """Build the final :class:`AggregatedMetrics` from everything recorded."""
        total = self.duration.total
        return AggregatedMetrics(
            total_requests=total.num_requests,
            failed_requests=total.num_failures,
            error_rate_percent=error_rate_percent(total.num_requests, total.num_failures),
            duration=summarize_entry(total),
            ttfb=summarize_entry(self.ttfb.total),
            run_duration_seconds=self._run_duration(),
            duration_by_test_type=_breakdown(self.duration.entries.values(), by="method"),
            ttfb_by_test_type=_breakdown(self.ttfb.entries.values(), by="method"),
            duration_by_page=_breakdown(self.duration.entries.values(), by="name"),
        )

    def _run_duration(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.stopped_at if self.stopped_at is not None else time.time()
        return max(0.0, end - self.started_at)

    # -----------------------------------------------------------------
    # Distributed runs
    # -----------------------------------------------------------------

    def serialize_increment(self) -> dict[str, Any]:
        """
        Serialize everything recorded since the last call and reset it.

        Mirrors how Locust workers report their own statistics: each entry
        is stripped (serialized, then reset) so the master receives only
        the delta.
        """
        return {
            "duration": _strip(self.duration),
            "duration_total": self.duration.total.get_stripped_report(),
            "ttfb": _strip(self.ttfb),
            "ttfb_total": self.ttfb.total.get_stripped_report(),
        }

    def apply_increment(self, data: dict[str, Any]) -> None:
        """Fold an increment from :meth:`serialize_increment` into this recorder."""
        for key, stats in (("duration", self.duration), ("ttfb", self.ttfb)):
            for entry_data in data.get(key, []):
                entry = StatsEntry.unserialize(entry_data)
                stats.entries[(entry.name, entry.method)].extend(entry)

            total_data = data.get(f"{key}_total")
            if total_data:
                stats.total.extend(StatsEntry.unserialize(total_data))


def _strip(stats: RequestStats) -> list[dict[str, Any]]:
    return [
        entry.get_stripped_report()
        for entry in stats.entries.values()
        if not (entry.num_requests == 0 and entry.num_failures == 0)
    ]


def _breakdown(entries: Iterable[StatsEntry], *, by: str) -> dict[str, DistributionSummary]:
    """Merge entries sharing the same name (or method) and summarize each group."""
    groups: dict[str, StatsEntry] = {}
    for entry in entries:
        key = getattr(entry, by) or UNTAGGED
        if key not in groups:
            groups[key] = StatsEntry(None, key, by)
        groups[key].extend(entry)
    return {key: summarize_entry(entry) for key, entry in groups.items()}
