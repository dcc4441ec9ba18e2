# ruff: noqa: E402
"""
Locust entrypoint for the page load test.

This is the file the ``locust`` CLI loads.  It wires the package into
Locust's event hooks:

- ``init``: read :class:`~pageload.config.RunSettings` once, abort on a
  configuration error before any user spawns, and attach the run context
- ``test_start`` / ``test_stop``: bracket the run duration
- ``report_to_master`` / ``worker_report``: ship metric increments from
  workers to the master in distributed runs
- ``quitting``: evaluate the verdict and write the reports

:class:`PhasedLoadShape` drives the three load phases from
:func:`~pageload.schedule.default_schedule`.  Passing ``--tags`` switches
to ad-hoc mode: only the tagged scenarios run, at ``--users`` /
``--spawn-rate`` for ``--run-time``.

Usage examples::

    # Full ten-minute schedule, reports in ./reports:
    TARGET_BASE_URL=https://example.com locust -f pageload/locustfile.py --headless

    # Only the spike scenario, 50 users for 5 minutes:
    locust -f pageload/locustfile.py --host https://example.com --headless \\
        --tags spike -u 50 -r 10 -t 5m

    # Exit non-zero on a MARGINAL or FAIL verdict:
    locust -f pageload/locustfile.py --headless --verdict-exit
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from locust import LoadTestShape, events
from locust.runners import WorkerRunner

# Locust may be started from any directory; make ``pageload`` importable
# even when the package is not installed.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pageload.config import ConfigurationError, load_settings
from pageload.report import build_run_report, write_reports
from pageload.users import (
    SCENARIO_USER_CLASSES,
    AverageTrafficUser,
    PeakTrafficUser,
    RunContext,
    SpikeTrafficUser,
    attach_run_context,
    run_context,
)
from pageload.verdict import Verdict

logger = logging.getLogger(__name__)

__all__ = ["AverageTrafficUser", "PeakTrafficUser", "SpikeTrafficUser", "PhasedLoadShape"]

EXIT_CONFIGURATION_ERROR = 2
EXIT_VERDICT_BREACH = 1

# Key under which workers attach recorder increments to their reports.
REPORT_KEY = "pageload"


@events.init_command_line_parser.add_listener
def _add_arguments(parser, **_kwargs):
    parser.add_argument(
        "--report-dir",
        type=str,
        env_var="PAGELOAD_REPORT_DIR",
        default="reports",
        help="Directory for summary.json and summary.html",
    )
    parser.add_argument(
        "--verdict-exit",
        action="store_true",
        env_var="PAGELOAD_VERDICT_EXIT",
        default=False,
        help="Exit with code 1 when the verdict is MARGINAL or FAIL",
    )


def selected_tags(environment) -> set[str]:
    options = getattr(environment, "parsed_options", None)
    return set(getattr(options, "tags", None) or [])


@events.init.add_listener
def _configure_run(environment, **_kwargs):
    """
    Build the run context, failing fast on bad configuration.

    A missing target URL must stop the process before Locust spawns a
    single user, so the error is surfaced as ``SystemExit`` rather than
    left to Locust's listener error handling.
    """
    try:
        settings = load_settings(host=environment.host)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(EXIT_CONFIGURATION_ERROR) from exc

    context = RunContext.from_settings(settings)
    attach_run_context(environment, context)
    _setup_distributed_listeners(environment, context)

    # Without a stop timeout Locust kills users mid-request when a phase
    # scales down; an explicit --stop-timeout wins.
    if not getattr(environment, "stop_timeout", None):
        environment.stop_timeout = context.schedule.graceful_stop_seconds
        logger.info("Using %.0fs graceful stop timeout", environment.stop_timeout)

    for user_class in SCENARIO_USER_CLASSES.values():
        user_class.host = settings.target_base_url


def _setup_distributed_listeners(environment, context: RunContext) -> None:
    """Ship recorder increments from workers and merge them on the master."""

    def on_report_to_master(client_id, data, **_kwargs):
        data[REPORT_KEY] = context.recorder.serialize_increment()

    def on_worker_report(client_id, data, **_kwargs):
        if REPORT_KEY in data:
            context.recorder.apply_increment(data[REPORT_KEY])

    environment.events.report_to_master.add_listener(on_report_to_master)
    environment.events.worker_report.add_listener(on_worker_report)


@events.test_start.add_listener
def _on_test_start(environment, **_kwargs):
    run_context(environment).recorder.mark_started()


@events.test_stop.add_listener
def _on_test_stop(environment, **_kwargs):
    run_context(environment).recorder.mark_stopped()


@events.quitting.add_listener
def _write_reports(environment, **_kwargs):
    """Render the verdict and reports once, on the master or a local runner."""
    if isinstance(environment.runner, WorkerRunner):
        return

    context = run_context(environment)
    report = build_run_report(
        context.recorder.snapshot(),
        context.settings.thresholds,
        context.settings.criteria,
        schedule=None if selected_tags(environment) else context.schedule,
    )

    options = environment.parsed_options
    report_dir = Path(getattr(options, "report_dir", None) or "reports")
    print(write_reports(report_dir, report))

    if getattr(options, "verdict_exit", False) and report.result.verdict is not Verdict.PASS:
        logger.info("Verdict %s, exiting with code %s", report.result.verdict.value, EXIT_VERDICT_BREACH)
        environment.process_exit_code = EXIT_VERDICT_BREACH


class PhasedLoadShape(LoadTestShape):
    """
    Run the scheduled phases one after another.

    Each tick maps the schedule's active scenario to its user class.  In
    ad-hoc mode (``--tags``) the tagged user classes run at the
    command-line user count instead.
    """

    # Ad-hoc mode reads --users / --spawn-rate, so Locust must not warn
    # that they are ignored.
    use_common_options = True

    def tick(self):
        environment = self.runner.environment
        tags = selected_tags(environment)
        if tags:
            options = environment.parsed_options
            classes = [
                user_class
                for name, user_class in SCENARIO_USER_CLASSES.items()
                if name in tags
            ]
            if not classes:
                return None
            return (options.num_users or 1, options.spawn_rate or 1, classes)

        schedule_tick = run_context(environment).schedule.tick(self.get_run_time())
        if schedule_tick is None:
            return None
        user_class = SCENARIO_USER_CLASSES[schedule_tick.scenario]
        return (schedule_tick.users, schedule_tick.spawn_rate, [user_class])
