"""
Run configuration for the page load test.

All settings come from environment variables and are read exactly once,
when the run starts, into an immutable :class:`RunSettings`.  Every
component receives the settings (or the parts it needs) explicitly;
nothing reads the environment later in the run.

Environment variables:

- ``TARGET_BASE_URL``: site under test (required; Locust's ``--host``
  is used as a fallback)
- ``BASELINE_LATENCY_MS``: network offset added to every latency target
- ``REQUEST_TIMEOUT_SECONDS``: per-request timeout
- ``THINK_TIME_SECONDS``: base pause between page visits
- ``PAGELOAD_PAGES``: comma-separated page paths
- ``PAGELOAD_SEED``: seed for a reproducible random source
- ``PAGELOAD_THRESHOLDS_FILE``: YAML file with acceptance bands

Key Concepts Demonstrated:
- 12-factor style configuration with validated, typed values
- Fail-fast on a missing target before any load is generated
- One frozen settings object instead of module-level globals
"""

from __future__ import annotations

import logging
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from pageload.executor import DEFAULT_TIMEOUT_SECONDS
from pageload.scenarios import DEFAULT_PAGES, DEFAULT_THINK_TIME_SECONDS
from pageload.thresholds import (
    DEFAULT_BASELINE_LATENCY_MS,
    AcceptanceCriteria,
    ThresholdSet,
    compute_thresholds,
    load_acceptance_criteria,
)

logger = logging.getLogger(__name__)

TARGET_BASE_URL_ENV = "TARGET_BASE_URL"
BASELINE_LATENCY_ENV = "BASELINE_LATENCY_MS"
REQUEST_TIMEOUT_ENV = "REQUEST_TIMEOUT_SECONDS"
THINK_TIME_ENV = "THINK_TIME_SECONDS"
PAGES_ENV = "PAGELOAD_PAGES"
SEED_ENV = "PAGELOAD_SEED"
THRESHOLDS_FILE_ENV = "PAGELOAD_THRESHOLDS_FILE"


class ConfigurationError(Exception):
    """Raised when the run cannot start because of invalid settings."""


@dataclass(frozen=True)
class RunSettings:
    """
    Immutable settings for one load-test run.

    Attributes:
        target_base_url: Site under test, without a trailing slash.
        thresholds: Latency limits derived from the baseline latency.
        criteria: Error-rate bands for the verdict.
        request_timeout_seconds: Per-request timeout.
        think_time_seconds: Base think time for the scenarios.
        pages: Page paths visitors choose from.
        seed: Seed for the random source, or ``None`` for a random one.
    """

    target_base_url: str
    thresholds: ThresholdSet = field(
        default_factory=lambda: compute_thresholds(DEFAULT_BASELINE_LATENCY_MS)
    )
    criteria: AcceptanceCriteria = field(default_factory=AcceptanceCriteria)
    request_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    think_time_seconds: float = DEFAULT_THINK_TIME_SECONDS
    pages: tuple[str, ...] = DEFAULT_PAGES
    seed: int | None = None

    def url_for(self, path: str) -> str:
        """Join the base URL and a page path."""
        return self.target_base_url + "/" + path.lstrip("/")


def _read_float(
    environ: Mapping[str, str], name: str, default: float, *, positive: bool = False
) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be numeric, got {raw!r}") from exc
    if not math.isfinite(value):
        raise ConfigurationError(f"{name} must be finite, got {raw!r}")
    if positive and value <= 0:
        raise ConfigurationError(f"{name} must be > 0, got {raw!r}")
    if value < 0:
        raise ConfigurationError(f"{name} must be >= 0, got {raw!r}")
    return value


def _read_pages(environ: Mapping[str, str]) -> tuple[str, ...]:
    raw = environ.get(PAGES_ENV)
    if not raw:
        return DEFAULT_PAGES
    pages = tuple("/" + page.strip().lstrip("/") for page in raw.split(",") if page.strip())
    if not pages:
        raise ConfigurationError(f"{PAGES_ENV} must list at least one page")
    return pages


def _read_seed(environ: Mapping[str, str]) -> int | None:
    raw = environ.get(SEED_ENV)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{SEED_ENV} must be an integer, got {raw!r}") from exc


def load_settings(
    environ: Mapping[str, str] | None = None,
    *,
    host: str | None = None,
) -> RunSettings:
    """
    Build :class:`RunSettings` from the environment.

    Args:
        environ: Mapping to read from; defaults to ``os.environ``.
        host: Fallback target URL (Locust's ``--host``) used when
            ``TARGET_BASE_URL`` is unset.

    Returns:
        The validated settings.

    Raises:
        ConfigurationError: If the target URL is missing or any value is
            malformed.
    """
    if environ is None:
        environ = os.environ

    target = (environ.get(TARGET_BASE_URL_ENV) or host or "").strip()
    if not target:
        raise ConfigurationError(
            f"{TARGET_BASE_URL_ENV} is required (or pass --host to Locust)"
        )
    if not target.startswith(("http://", "https://")):
        raise ConfigurationError(f"{TARGET_BASE_URL_ENV} must be an http(s) URL, got {target!r}")

    baseline_ms = _read_float(environ, BASELINE_LATENCY_ENV, DEFAULT_BASELINE_LATENCY_MS)
    criteria = AcceptanceCriteria()

    thresholds_file = environ.get(THRESHOLDS_FILE_ENV)
    if thresholds_file:
        try:
            criteria, file_baseline_ms = load_acceptance_criteria(Path(thresholds_file))
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"Cannot load {thresholds_file}: {exc}") from exc
        # An explicit environment value wins over the file.
        if file_baseline_ms is not None and not environ.get(BASELINE_LATENCY_ENV):
            if file_baseline_ms < 0:
                raise ConfigurationError(
                    f"baseline_latency_ms in {thresholds_file} must be >= 0"
                )
            baseline_ms = file_baseline_ms

    settings = RunSettings(
        target_base_url=target.rstrip("/"),
        thresholds=compute_thresholds(baseline_ms),
        criteria=criteria,
        request_timeout_seconds=_read_float(
            environ, REQUEST_TIMEOUT_ENV, DEFAULT_TIMEOUT_SECONDS, positive=True
        ),
        think_time_seconds=_read_float(environ, THINK_TIME_ENV, DEFAULT_THINK_TIME_SECONDS),
        pages=_read_pages(environ),
        seed=_read_seed(environ),
    )
    logger.info(
        "Load test target %s (baseline latency %.0fms, pass < %.0fms, marginal < %.0fms)",
        settings.target_base_url,
        settings.thresholds.baseline_latency_ms,
        settings.thresholds.pass_ms,
        settings.thresholds.marginal_ms,
    )
    return settings
