"""
Locust user classes for the page load test.

Each concrete user runs one scenario from the catalog per Locust task
iteration.  Think time lives inside the scenario itself, so the users
declare ``wait_time = constant(0)``.

The per-run state every user needs (settings, scenario catalog, metrics
recorder, random source) is bundled into a :class:`RunContext` that the
locustfile attaches to the Locust ``Environment`` at init time; users
read it in ``on_start`` rather than from module globals.

Key Concepts Demonstrated:
- Abstract Locust base class shared by thin scenario subclasses
- ``catch_response=True`` so Locust's own statistics follow our checks
- Per-user seeded random sources for reproducible runs
"""

from __future__ import annotations

import itertools
import random
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from locust import HttpUser, constant, tag, task
from locust.env import Environment

from pageload.config import ConfigurationError, RunSettings
from pageload.executor import RequestExecutor, RequestOutcome
from pageload.metrics import MetricsRecorder
from pageload.scenarios import Scenario, build_catalog, get_scenario
from pageload.schedule import RunSchedule, default_schedule

_CONTEXT_ATTRIBUTE = "pageload_context"


@dataclass
class RunContext:
    """
    Shared state for one run.

    Attributes:
        settings: Validated run settings.
        recorder: Collects every request outcome.
        catalog: Scenarios keyed by name.
        schedule: Load phases driving the run.
    """

    settings: RunSettings
    recorder: MetricsRecorder = field(default_factory=MetricsRecorder)
    catalog: dict[str, Scenario] = field(default_factory=dict)
    schedule: RunSchedule = field(default_factory=default_schedule)
    _user_index: itertools.count = field(default_factory=itertools.count, repr=False)

    @classmethod
    def from_settings(cls, settings: RunSettings) -> RunContext:
        return cls(
            settings=settings,
            catalog=build_catalog(settings.pages, settings.think_time_seconds),
        )

    def rng_for_user(self) -> random.Random:
        """A fresh random source, derived from the run seed when one is set."""
        index = next(self._user_index)
        if self.settings.seed is None:
            return random.Random()
        return random.Random(self.settings.seed + index)


def attach_run_context(environment: Environment, context: RunContext) -> None:
    setattr(environment, _CONTEXT_ATTRIBUTE, context)


def run_context(environment: Environment) -> RunContext:
    """Return the context attached to *environment*."""
    context = getattr(environment, _CONTEXT_ATTRIBUTE, None)
    if context is None:
        raise ConfigurationError("Load test was not initialised; run it through the locustfile")
    return context


class LocustRequestExecutor(RequestExecutor):
    """
    Executor that reports outcomes back to Locust.

    Requests are grouped by page path in Locust's statistics and marked
    successful or failed according to our own checks rather than
    Locust's default "status < 400" rule.
    """

    def _send(self, url: str, tags: dict[str, str]) -> Any:
        return self.session.get(
            url,
            timeout=self.timeout_seconds,
            name=urlparse(url).path or "/",
            context=dict(tags),
            catch_response=True,
        )

    def _settle(self, response: Any, outcome: RequestOutcome) -> None:
        with response:
            if outcome.success:
                response.success()
            else:
                response.failure(outcome.failure_reason)


class PageVisitUser(HttpUser):
    """
    Base user that runs one catalog scenario per iteration.

    ``abstract = True`` keeps Locust from spawning this class directly.

    Attributes:
        scenario_name: Catalog key of the scenario to run.
    """

    abstract = True
    wait_time = constant(0)
    scenario_name: str

    settings: RunSettings
    scenario: Scenario
    executor: RequestExecutor
    rng: random.Random

    def on_start(self) -> None:
        """Pick up the run context and build this user's executor."""
        context = run_context(self.environment)
        self.settings = context.settings
        self.scenario = get_scenario(context.catalog, self.scenario_name)
        self.rng = context.rng_for_user()
        self.executor = LocustRequestExecutor(
            self.client,
            self.settings.thresholds,
            context.recorder,
            timeout_seconds=self.settings.request_timeout_seconds,
        )

    @task
    def run_iteration(self) -> None:
        self.scenario.run_iteration(self.visit, time.sleep, self.rng)

    def visit(self, path: str, tags: dict[str, str]) -> RequestOutcome:
        return self.executor.execute(self.settings.url_for(path), tags)


@tag("average")
class AverageTrafficUser(PageVisitUser):
    """Typical visitor: one page, sometimes two, with full think time."""

    scenario_name = "average"


@tag("peak")
class PeakTrafficUser(PageVisitUser):
    """Peak-hour visitor: quicker browsing, more likely to continue."""

    scenario_name = "peak"


@tag("spike")
class SpikeTrafficUser(PageVisitUser):
    """Viral-traffic visitor: everyone lands on the home page first."""

    scenario_name = "spike"


SCENARIO_USER_CLASSES: dict[str, type[PageVisitUser]] = {
    "average": AverageTrafficUser,
    "peak": PeakTrafficUser,
    "spike": SpikeTrafficUser,
}
