"""
Shared pytest fixtures for the page load-test suite.

Nothing here talks to the network: sessions and responses are small
stand-ins that satisfy the parts of the ``requests`` interface the
executor uses, and a controllable clock replaces ``time.perf_counter``
so duration checks are deterministic.

Key Concepts Demonstrated:
- Fake sessions in place of real HTTP traffic
- Factory fixtures for responses with configurable status, body and timing
- Deterministic clocks for latency assertions
"""

from __future__ import annotations

import random
from datetime import timedelta
from typing import Any

import pytest
from faker import Faker

from pageload.config import RunSettings
from pageload.metrics import MetricsRecorder
from pageload.thresholds import compute_thresholds

fake = Faker()


# -----------------------------------------------------------------------------
# Fakes
# -----------------------------------------------------------------------------


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, status_code: int = 200, content: bytes = b"", ttfb_ms: float = 100.0):
        self.status_code = status_code
        self.content = content
        self.elapsed = timedelta(milliseconds=ttfb_ms)


class FakeSession:
    """
    Records ``get`` calls and replays a queued response or exception.

    Anything queued that is an exception instance is raised instead of
    returned.
    """

    def __init__(self, *results: Any):
        self.results = list(results)
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def get(self, url: str, **kwargs: Any) -> Any:
        self.calls.append((url, kwargs))
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


class FakeClock:
    """Replacement for ``time.perf_counter`` that advances on demand."""

    def __init__(self) -> None:
        self.now = 1000.0
        self.step_seconds = 0.0

    def __call__(self) -> float:
        value = self.now
        self.now += self.step_seconds
        return value


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def thresholds():
    """Thresholds for a 200ms baseline: pass 2200, marginal 3200, TTFB 1200."""
    return compute_thresholds(200)


@pytest.fixture
def recorder() -> MetricsRecorder:
    return MetricsRecorder()


@pytest.fixture
def settings(thresholds) -> RunSettings:
    return RunSettings(target_base_url="http://site.test", thresholds=thresholds, seed=1234)


@pytest.fixture
def page_body() -> bytes:
    """A realistic page body comfortably above the 1 KB minimum."""
    return fake.pystr(min_chars=2048, max_chars=4096).encode("utf-8")


@pytest.fixture
def response_factory(page_body):
    """
    Factory for :class:`FakeResponse` instances.

    Defaults describe a healthy page: status 200, a body over 1 KB, and a
    100ms time-to-first-byte.
    """

    def _create(status_code: int = 200, content: bytes | None = None, ttfb_ms: float = 100.0):
        return FakeResponse(
            status_code=status_code,
            content=page_body if content is None else content,
            ttfb_ms=ttfb_ms,
        )

    return _create


@pytest.fixture
def session_factory():
    return FakeSession


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    """
    Patch the executor's clock.

    Set ``clock.step_seconds`` to the request duration you want measured;
    each ``perf_counter`` call advances by that much.
    """
    fake_clock = FakeClock()
    monkeypatch.setattr("pageload.executor.time.perf_counter", fake_clock)
    return fake_clock


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)
