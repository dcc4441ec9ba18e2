"""
Unit tests for the request executor.

The session is a fake that returns canned responses or raises
``requests`` exceptions, and the clock is patched so request durations
are exact.  Together they cover the four success checks and the
transport-failure path.
"""

from __future__ import annotations

import pytest
import requests

from pageload.executor import (
    TRANSPORT_FAILURE_STATUS,
    RequestExecutor,
    evaluate_checks,
)

pytestmark = pytest.mark.unit

TAGS = {"page": "browse", "test_type": "average"}


def test_healthy_page_is_successful(session_factory, response_factory, thresholds, recorder, clock):
    """Test that a fast 200 with a large body passes every check."""
    # Arrange
    clock.step_seconds = 0.5
    session = session_factory(response_factory())
    executor = RequestExecutor(session, thresholds, recorder)

    # Act
    outcome = executor.execute("http://site.test/about", TAGS)

    # Assert
    assert outcome.success is True
    assert outcome.status_code == 200
    assert outcome.duration_ms == pytest.approx(500)
    assert outcome.ttfb_ms == pytest.approx(100)
    assert outcome.failure_reason is None
    assert all(outcome.checks.values())


def test_request_uses_sixty_second_timeout(session_factory, response_factory, thresholds, recorder):
    session = session_factory(response_factory())

    RequestExecutor(session, thresholds, recorder).execute("http://site.test/", TAGS)

    assert session.calls == [("http://site.test/", {"timeout": 60.0})]


@pytest.mark.parametrize(
    ("status_code", "duration_seconds", "ttfb_ms", "body_size", "failed_check"),
    [
        (500, 0.5, 100, 2048, "status is 200"),
        (200, 2.5, 100, 2048, "page load < 2200ms"),
        (200, 0.5, 1500, 2048, "TTFB < 1200ms"),
        (200, 0.5, 100, 1024, "body size > 1KB"),
    ],
)
def test_each_check_alone_flips_success(
    session_factory,
    response_factory,
    thresholds,
    recorder,
    clock,
    status_code,
    duration_seconds,
    ttfb_ms,
    body_size,
    failed_check,
):
    """Test that failing any single check makes the outcome unsuccessful."""
    # Arrange
    clock.step_seconds = duration_seconds
    response = response_factory(status_code=status_code, content=b"x" * body_size, ttfb_ms=ttfb_ms)
    executor = RequestExecutor(session_factory(response), thresholds, recorder)

    # Act
    outcome = executor.execute("http://site.test/contact", TAGS)

    # Assert
    assert outcome.success is False
    assert [name for name, passed in outcome.checks.items() if not passed] == [failed_check]
    assert outcome.failure_reason == f"Failed checks: {failed_check}"


@pytest.mark.parametrize(
    "exc",
    [
        requests.Timeout("read timed out"),
        requests.ConnectionError("connection refused"),
        requests.exceptions.ContentDecodingError("bad gzip"),
    ],
)
def test_transport_failure_is_recorded_not_raised(
    session_factory, thresholds, recorder, clock, exc
):
    """Test that network errors yield a status-0 outcome instead of an exception."""
    # Arrange
    clock.step_seconds = 1.0
    executor = RequestExecutor(session_factory(exc), thresholds, recorder)

    # Act
    outcome = executor.execute("http://site.test/services", TAGS)

    # Assert
    assert outcome.success is False
    assert outcome.status_code == TRANSPORT_FAILURE_STATUS
    assert outcome.ttfb_ms is None
    assert outcome.duration_ms == pytest.approx(1000)
    assert str(exc) in outcome.failure_reason

    snapshot = recorder.snapshot()
    assert snapshot.total_requests == 1
    assert snapshot.failed_requests == 1
    assert snapshot.ttfb.count == 0


def test_status_zero_response_is_a_transport_failure(
    session_factory, response_factory, thresholds, recorder
):
    """Test Locust-style error responses, which carry ``error`` instead of raising."""
    # Arrange
    response = response_factory(status_code=0, content=None)
    response.error = requests.ConnectionError("Name or service not known")
    executor = RequestExecutor(session_factory(response), thresholds, recorder)

    # Act
    outcome = executor.execute("http://site.test/", TAGS)

    # Assert
    assert outcome.status_code == TRANSPORT_FAILURE_STATUS
    assert outcome.error == "Name or service not known"
    assert outcome.success is False


def test_outcomes_are_recorded_with_tags(session_factory, response_factory, thresholds, recorder):
    # Arrange
    session = session_factory(response_factory(), response_factory(status_code=404))
    executor = RequestExecutor(session, thresholds, recorder)

    # Act
    executor.execute("http://site.test/", {"page": "viral", "test_type": "spike"})
    executor.execute("http://site.test/missing", {"page": "viral-browse", "test_type": "spike"})

    # Assert
    snapshot = recorder.snapshot()
    assert snapshot.total_requests == 2
    assert snapshot.failed_requests == 1
    assert snapshot.error_rate_percent == pytest.approx(50.0)
    assert set(snapshot.duration_by_page) == {"viral", "viral-browse"}
    assert snapshot.duration_by_test_type["spike"].count == 2


def test_evaluate_checks_uses_thresholds_in_names(thresholds):
    checks = evaluate_checks(
        status_code=200,
        duration_ms=2199.9,
        ttfb_ms=1199.9,
        body_size_bytes=1025,
        thresholds=thresholds,
    )

    assert checks == {
        "status is 200": True,
        "page load < 2200ms": True,
        "TTFB < 1200ms": True,
        "body size > 1KB": True,
    }
