"""
Scenario catalog: how simulated visitors browse the site.

Each :class:`Scenario` is a short, fixed sequence of page visits with
think-time pauses in between.  Some visits are optional and happen only
with a given probability, and most visits draw their page uniformly at
random (with replacement) from the configured page set, so two visits in
one iteration may hit the same page.

Scenarios hold no state between iterations.  Everything that varies per
run (the random source, the function that performs a visit and the
function that sleeps) is passed in to :meth:`Scenario.run_iteration`,
which keeps the catalog deterministic under a seeded ``random.Random``.

The three behaviours:

- **average**: one page, a second one half the time, full think time
- **peak**: same shape, more likely to continue, half the think time
- **spike**: everyone lands on the home page, half browse on
"""

from __future__ import annotations

import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass

DEFAULT_PAGES: tuple[str, ...] = ("/", "/about", "/services", "/contact")
DEFAULT_THINK_TIME_SECONDS = 3.0
POPULAR_PAGE = "/"

VisitFn = Callable[[str, dict[str, str]], object]
SleepFn = Callable[[float], object]


@dataclass(frozen=True)
class PageStep:
    """
    One page visit followed by a think-time pause.

    Attributes:
        path: Fixed page path, or ``None`` to draw one from the page set.
        tag: Value recorded under the ``page`` tag for this visit.
        think_time_seconds: Pause after the visit.
        probability: Chance that the step runs at all.
    """

    path: str | None
    tag: str
    think_time_seconds: float
    probability: float = 1.0


@dataclass(frozen=True)
class Scenario:
    """A named visitor behaviour built from :class:`PageStep` entries."""

    name: str
    test_type: str
    description: str
    pages: tuple[str, ...]
    steps: tuple[PageStep, ...]
    trailing_pause_seconds: float = 0.0

    def pick_page(self, rng: random.Random) -> str:
        """Draw one page uniformly from the page set."""
        return rng.choice(self.pages)

    def run_iteration(self, visit: VisitFn, sleep: SleepFn, rng: random.Random) -> int:
        """
        Run the scenario once.

        Args:
            visit: Called as ``visit(path, tags)`` for every page visited.
                It must not raise for request-level failures.
            sleep: Called with the think time after each visit.
            rng: Random source for optional steps and page draws.

        Returns:
            The number of pages visited.
        """
        visited = 0
        for step in self.steps:
            if step.probability < 1.0 and rng.random() >= step.probability:
                continue

            path = step.path if step.path is not None else self.pick_page(rng)
            visit(path, {"page": step.tag, "test_type": self.test_type})
            visited += 1
            sleep(step.think_time_seconds)

        if self.trailing_pause_seconds:
            sleep(self.trailing_pause_seconds)
        return visited


def average_traffic(pages: Sequence[str], think_time_seconds: float) -> Scenario:
    return Scenario(
        name="average",
        test_type="average",
        description="Browse one random page, continue to a second one half the time",
        pages=tuple(pages),
        steps=(
            PageStep(None, "browse", think_time_seconds),
            PageStep(None, "internal", think_time_seconds, probability=0.5),
        ),
        trailing_pause_seconds=1.0,
    )


def peak_traffic(pages: Sequence[str], think_time_seconds: float) -> Scenario:
    # Peak-hour visitors browse faster: half the usual think time.
    quick = think_time_seconds / 2
    return Scenario(
        name="peak",
        test_type="peak",
        description="Browse one or two random pages quickly",
        pages=tuple(pages),
        steps=(
            PageStep(None, "browse", quick),
            PageStep(None, "browse", quick, probability=0.7),
        ),
    )


def spike_traffic(pages: Sequence[str], think_time_seconds: float) -> Scenario:
    return Scenario(
        name="spike",
        test_type="spike",
        description="Land on the home page, browse one more page half the time",
        pages=tuple(pages),
        steps=(
            PageStep(POPULAR_PAGE, "viral", 1.0),
            PageStep(None, "viral-browse", 2.0, probability=0.5),
        ),
    )


def build_catalog(
    pages: Sequence[str] = DEFAULT_PAGES,
    think_time_seconds: float = DEFAULT_THINK_TIME_SECONDS,
) -> dict[str, Scenario]:
    """
    Build the three scenarios for a page set.

    Raises:
        ValueError: If *pages* is empty.
    """
    if not pages:
        raise ValueError("At least one page is required")

    scenarios = (
        average_traffic(pages, think_time_seconds),
        peak_traffic(pages, think_time_seconds),
        spike_traffic(pages, think_time_seconds),
    )
    return {scenario.name: scenario for scenario in scenarios}


def get_scenario(catalog: dict[str, Scenario], name: str) -> Scenario:
    """Look up a scenario by name, listing the known names on a miss."""
    try:
        return catalog[name]
    except KeyError:
        known = ", ".join(sorted(catalog))
        raise KeyError(f"Unknown scenario {name!r}; expected one of: {known}") from None
