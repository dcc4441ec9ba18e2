"""
Request executor: one page request, four checks, three metrics.

:class:`RequestExecutor` issues a single GET through a
``requests``-compatible session, evaluates the success checks and
records the outcome into a :class:`~pageload.metrics.MetricsRecorder`.

A request succeeds only when every check passes:

- the status code is ``200``
- total duration is below the pass threshold
- time-to-first-byte is below the TTFB threshold
- the body is larger than 1 KB (a guard against blank or error pages)

Transport failures (timeouts, refused connections, malformed responses)
never escape :meth:`RequestExecutor.execute`.  They produce an
unsuccessful outcome with the sentinel status ``0`` so the calling
scenario can carry on with its next step.

Key Concepts Demonstrated:
- Named checks so failure reasons are readable in logs and reports
- ``requests.Response.elapsed`` as the time-to-first-byte measurement
- Template-method hooks (``_send`` / ``_settle``) for engine-specific
  sessions without duplicating the check logic
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

# pageload.metrics imports locust, whose gevent monkey-patching must run
# before requests/urllib3 load ssl.
from pageload.metrics import MetricsRecorder
from pageload.thresholds import ThresholdSet

import requests  # noqa: E402

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0
MIN_BODY_BYTES = 1024

# Status recorded when no HTTP response was received at all.
TRANSPORT_FAILURE_STATUS = 0


@dataclass(frozen=True)
class RequestOutcome:
    """
    Result of one request.

    Attributes:
        url: Absolute URL requested.
        status_code: HTTP status, or ``0`` when the request never got a
            response.
        duration_ms: Wall-clock time from send until the body was read.
        ttfb_ms: Time until the response headers arrived, or ``None`` for
            transport failures.
        body_size_bytes: Length of the response body.
        success: ``True`` only if every check passed.
        checks: Check name → result, in evaluation order.
        error: Transport error message, if any.
    """

    url: str
    status_code: int
    duration_ms: float
    ttfb_ms: float | None
    body_size_bytes: int
    success: bool
    checks: dict[str, bool] = field(default_factory=dict)
    error: str | None = None

    @property
    def failure_reason(self) -> str | None:
        if self.success:
            return None
        if self.error:
            return self.error
        failed = [name for name, passed in self.checks.items() if not passed]
        return "Failed checks: " + ", ".join(failed)


def evaluate_checks(
    *,
    status_code: int,
    duration_ms: float,
    ttfb_ms: float,
    body_size_bytes: int,
    thresholds: ThresholdSet,
) -> dict[str, bool]:
    """
    Run the four success checks.

    The body-size check is strict (``> 1024`` bytes); a page that renders
    at exactly 1 KB fails it.
    """
    return {
        "status is 200": status_code == 200,
        f"page load < {thresholds.pass_ms:.0f}ms": duration_ms < thresholds.pass_ms,
        f"TTFB < {thresholds.ttfb_ms:.0f}ms": ttfb_ms < thresholds.ttfb_ms,
        "body size > 1KB": body_size_bytes > MIN_BODY_BYTES,
    }


class RequestExecutor:
    """
    Issue page requests and record their outcomes.

    Args:
        session: A ``requests.Session`` (or Locust ``HttpSession``).
        thresholds: Latency limits used by the checks.
        recorder: Where outcomes are recorded.
        timeout_seconds: Per-request timeout.
    """

    def __init__(
        self,
        session: requests.Session,
        thresholds: ThresholdSet,
        recorder: MetricsRecorder,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.session = session
        self.thresholds = thresholds
        self.recorder = recorder
        self.timeout_seconds = timeout_seconds

    def execute(self, url: str, tags: dict[str, str]) -> RequestOutcome:
        """Request *url* once, check it, record it, and return the outcome."""
        started = time.perf_counter()
        try:
            response = self._send(url, tags)
            body = response.content or b""
        except requests.RequestException as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000
            outcome = self._transport_failure(url, elapsed_ms, exc)
            self.recorder.record(outcome, tags)
            return outcome

        duration_ms = (time.perf_counter() - started) * 1000

        # Locust's HttpSession swallows transport errors and hands back a
        # response with status 0 and ``error`` set instead of raising.
        error = getattr(response, "error", None)
        if response.status_code == TRANSPORT_FAILURE_STATUS or error is not None:
            outcome = self._transport_failure(url, duration_ms, error or "No response")
        else:
            outcome = self._evaluate(url, response, body, duration_ms)

        self._settle(response, outcome)
        self.recorder.record(outcome, tags)
        return outcome

    def _send(self, url: str, tags: dict[str, str]) -> Any:
        return self.session.get(url, timeout=self.timeout_seconds)

    def _settle(self, response: Any, outcome: RequestOutcome) -> None:
        """Hook for sessions that need to be told the outcome."""

    def _evaluate(self, url: str, response: Any, body: bytes, duration_ms: float) -> RequestOutcome:
        ttfb_ms = response.elapsed.total_seconds() * 1000
        checks = evaluate_checks(
            status_code=response.status_code,
            duration_ms=duration_ms,
            ttfb_ms=ttfb_ms,
            body_size_bytes=len(body),
            thresholds=self.thresholds,
        )
        outcome = RequestOutcome(
            url=url,
            status_code=response.status_code,
            duration_ms=duration_ms,
            ttfb_ms=ttfb_ms,
            body_size_bytes=len(body),
            success=all(checks.values()),
            checks=checks,
        )
        if not outcome.success:
            logger.info("Request to %s unsuccessful: %s", url, outcome.failure_reason)
        return outcome

    def _transport_failure(self, url: str, duration_ms: float, error: object) -> RequestOutcome:
        logger.warning("Request to %s failed: %s", url, error)
        return RequestOutcome(
            url=url,
            status_code=TRANSPORT_FAILURE_STATUS,
            duration_ms=duration_ms,
            ttfb_ms=None,
            body_size_bytes=0,
            success=False,
            checks={},
            error=str(error),
        )
