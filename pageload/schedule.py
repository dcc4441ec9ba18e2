"""
Run schedule: three time-boxed load phases, one after another.

A :class:`Phase` runs one scenario from ``start_at_seconds``, starting
at ``start_users`` and moving linearly towards each :class:`Stage`
target over that stage's duration.  A constant-concurrency phase is a
single stage whose target equals its starting count.

:meth:`RunSchedule.tick` answers the question a Locust
``LoadTestShape`` asks once per second: which scenario should be
running right now, with how many users, and how fast should users be
spawned or stopped to get there.  Between phases (the graceful-stop
window) the answer is zero users; after the last phase it is ``None``,
which ends the run.

Default schedule (about ten minutes):

- **baseline**: ``average`` traffic, 5 users for 3m
- **target**: ``peak`` traffic from 3m30s, 10 → 20 over 1m, hold 3m,
  → 10 over 30s
- **peak**: ``spike`` traffic from 8m, 10 → 30 over 1m, hold 2m,
  → 0 over 30s
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(h|ms|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(text: str | float | int) -> float:
    """
    Parse ``"3m30s"``-style durations into seconds.

    Plain numbers are taken as seconds.

    Raises:
        ValueError: If the text is empty or not made of
            ``<number><h|m|s|ms>`` parts.
    """
    if isinstance(text, (int, float)):
        return float(text)

    cleaned = text.strip()
    if not cleaned:
        raise ValueError("Empty duration")

    try:
        return float(cleaned)
    except ValueError:
        pass

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(cleaned):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()

    if position != len(cleaned):
        raise ValueError(f"Invalid duration: {text!r}")
    return total


def format_duration(seconds: float) -> str:
    """Render seconds back as ``"3m30s"`` / ``"2m"`` / ``"45s"``."""
    whole = int(round(seconds))
    minutes, secs = divmod(whole, 60)
    if minutes and secs:
        return f"{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m"
    return f"{secs}s"


@dataclass(frozen=True)
class Stage:
    duration_seconds: float
    target_users: int


@dataclass(frozen=True)
class ScheduleTick:
    """What should be running at one instant of the run."""

    phase: str
    scenario: str
    users: int
    spawn_rate: float


@dataclass(frozen=True)
class Phase:
    """
    One scenario run over a fixed window.

    Attributes:
        name: Phase label used in reports.
        scenario: Name of the scenario in the catalog.
        start_at_seconds: Offset from the start of the run.
        start_users: Concurrency at the beginning of the first stage.
        stages: Linear ramps executed in order.
        graceful_stop_seconds: Time in-flight iterations get to finish
            once the phase ends.
    """

    name: str
    scenario: str
    start_at_seconds: float
    start_users: int
    stages: tuple[Stage, ...]
    graceful_stop_seconds: float = 30.0

    @property
    def duration_seconds(self) -> float:
        return sum(stage.duration_seconds for stage in self.stages)

    @property
    def end_at_seconds(self) -> float:
        return self.start_at_seconds + self.duration_seconds

    @property
    def max_users(self) -> int:
        return max([self.start_users, *(stage.target_users for stage in self.stages)])

    def users_at(self, offset_seconds: float) -> tuple[int, float]:
        """
        Concurrency and spawn rate *offset_seconds* into the phase.

        The spawn rate is the slope of the current ramp in users per
        second, at least 1 so Locust can always converge.
        """
        current = float(self.start_users)
        elapsed = 0.0
        for stage in self.stages:
            if offset_seconds < elapsed + stage.duration_seconds:
                progress = (offset_seconds - elapsed) / stage.duration_seconds
                users = current + (stage.target_users - current) * progress
                slope = abs(stage.target_users - current) / stage.duration_seconds
                return int(round(users)), max(1.0, slope)
            current = float(stage.target_users)
            elapsed += stage.duration_seconds
        return int(current), max(1.0, current)

    def describe(self) -> str:
        if len(self.stages) == 1 and self.stages[0].target_users == self.start_users:
            return (
                f"{self.start_users} concurrent users for "
                f"{format_duration(self.duration_seconds)}"
            )
        hold = max(self.stages, key=lambda stage: (stage.target_users, stage.duration_seconds))
        return (
            f"Ramp to {self.max_users} concurrent users, hold for "
            f"{format_duration(hold.duration_seconds)}"
        )


def constant_phase(
    name: str, scenario: str, *, users: int, duration: str | float, start_at: str | float = 0
) -> Phase:
    """Build a fixed-concurrency phase."""
    return Phase(
        name=name,
        scenario=scenario,
        start_at_seconds=parse_duration(start_at),
        start_users=users,
        stages=(Stage(parse_duration(duration), users),),
    )


def ramping_phase(
    name: str,
    scenario: str,
    *,
    start_users: int,
    stages: list[tuple[str | float, int]],
    start_at: str | float = 0,
) -> Phase:
    """Build a phase from ``(duration, target)`` pairs."""
    return Phase(
        name=name,
        scenario=scenario,
        start_at_seconds=parse_duration(start_at),
        start_users=start_users,
        stages=tuple(Stage(parse_duration(duration), target) for duration, target in stages),
    )


class RunSchedule:
    """
    Ordered, non-overlapping load phases.

    Raises:
        ValueError: If there are no phases, a stage has no duration, or
            two phases overlap.
    """

    def __init__(self, phases: list[Phase]) -> None:
        if not phases:
            raise ValueError("A schedule needs at least one phase")

        ordered = sorted(phases, key=lambda phase: phase.start_at_seconds)
        for phase in ordered:
            if any(stage.duration_seconds <= 0 for stage in phase.stages):
                raise ValueError(f"Phase {phase.name!r} has a stage without duration")
        for previous, current in zip(ordered, ordered[1:]):
            if current.start_at_seconds < previous.end_at_seconds:
                raise ValueError(
                    f"Phase {current.name!r} starts before {previous.name!r} ends"
                )
        self.phases = ordered

    @property
    def total_seconds(self) -> float:
        return self.phases[-1].end_at_seconds

    @property
    def graceful_stop_seconds(self) -> float:
        """Longest stop window of any phase, used as Locust's stop timeout."""
        return max(phase.graceful_stop_seconds for phase in self.phases)

    def phase_at(self, run_time: float) -> Phase | None:
        for phase in self.phases:
            if phase.start_at_seconds <= run_time < phase.end_at_seconds:
                return phase
        return None

    def tick(self, run_time: float) -> ScheduleTick | None:
        """
        Target state *run_time* seconds into the run.

        Returns ``None`` once every phase has finished.
        """
        if run_time >= self.total_seconds:
            return None

        phase = self.phase_at(run_time)
        if phase is None:
            # Gap between phases: stop the previous phase's users.
            previous = max(
                (p for p in self.phases if p.end_at_seconds <= run_time),
                key=lambda p: p.end_at_seconds,
                default=self.phases[0],
            )
            return ScheduleTick(previous.name, previous.scenario, 0, max(1.0, previous.max_users))

        users, spawn_rate = phase.users_at(run_time - phase.start_at_seconds)
        return ScheduleTick(phase.name, phase.scenario, users, math.ceil(spawn_rate))


def default_schedule() -> RunSchedule:
    """The three-phase schedule: baseline, target and peak load."""
    return RunSchedule(
        [
            constant_phase("baseline_load", "average", users=5, duration="3m"),
            ramping_phase(
                "target_load",
                "peak",
                start_users=10,
                stages=[("1m", 20), ("3m", 20), ("30s", 10)],
                start_at="3m30s",
            ),
            ramping_phase(
                "peak_load",
                "spike",
                start_users=10,
                stages=[("1m", 30), ("2m", 30), ("30s", 0)],
                start_at="8m",
            ),
        ]
    )
