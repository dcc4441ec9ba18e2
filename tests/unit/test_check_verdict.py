"""
Unit tests for the CI verdict gate.

Key Concepts Demonstrated:
- Driving a CLI through ``main(argv)`` instead of a subprocess
- Exit codes 0 / 1 / 2 for pass, breach and script failure
"""

from __future__ import annotations

import json

import pytest

from pageload.check_verdict import (
    EXIT_PASS,
    EXIT_SCRIPT_ERROR,
    EXIT_THRESHOLD_BREACH,
    load_metrics_from_stats_csv,
    load_metrics_from_summary,
    main,
)

pytestmark = pytest.mark.unit

STATS_HEADER = (
    "Type,Name,Request Count,Failure Count,Median Response Time,"
    "Average Response Time,Min Response Time,Max Response Time,95%,99%"
)


def _write_summary(path, *, total: int, failed: int, p95: float):
    path.write_text(
        json.dumps(
            {
                "metrics": {
                    "total_requests": total,
                    "failed_requests": failed,
                    "duration": {"count": total, "avg": 500, "min": 100, "max": 5000, "p95": p95},
                    "ttfb": {"count": total, "avg": 200, "min": 50, "max": 900, "p95": 400},
                }
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def summary_path(tmp_path):
    return tmp_path / "summary.json"


def test_passing_summary_exits_zero(summary_path, capsys):
    # Arrange
    _write_summary(summary_path, total=1000, failed=5, p95=2100)

    # Act
    exit_code = main(["--summary", str(summary_path)])

    # Assert
    assert exit_code == EXIT_PASS
    assert "Overall: PASS" in capsys.readouterr().out


def test_failing_summary_exits_one(summary_path, capsys):
    _write_summary(summary_path, total=1000, failed=40, p95=2500)

    exit_code = main(["--summary", str(summary_path)])

    assert exit_code == EXIT_THRESHOLD_BREACH
    assert "Overall: FAIL" in capsys.readouterr().out


@pytest.mark.parametrize(("fail_on", "expected"), [("fail", EXIT_PASS), ("marginal", EXIT_THRESHOLD_BREACH)])
def test_marginal_verdict_respects_fail_on(summary_path, fail_on, expected):
    """Test that --fail-on decides whether MARGINAL breaks the build."""
    _write_summary(summary_path, total=1000, failed=15, p95=2500)

    assert main(["--summary", str(summary_path), "--fail-on", fail_on]) == expected


def test_baseline_flag_shifts_thresholds(summary_path):
    # p95 2100ms passes with the default 200ms baseline but not with 0.
    _write_summary(summary_path, total=1000, failed=0, p95=2100)

    exit_code = main(
        ["--summary", str(summary_path), "--baseline-latency-ms", "0", "--fail-on", "marginal"]
    )

    assert exit_code == EXIT_THRESHOLD_BREACH


def test_thresholds_file_sets_error_bands(summary_path, tmp_path):
    # Arrange
    thresholds = tmp_path / "thresholds.yml"
    thresholds.write_text(
        "max_error_rate_percent: 5\nfail_error_rate_percent: 10\n", encoding="utf-8"
    )
    _write_summary(summary_path, total=1000, failed=40, p95=1000)

    # Act
    exit_code = main(
        ["--summary", str(summary_path), "--thresholds", str(thresholds), "--fail-on", "marginal"]
    )

    # Assert
    assert exit_code == EXIT_PASS


def test_stats_csv_uses_aggregated_row(tmp_path, capsys):
    """Test the Locust CSV fallback path."""
    # Arrange
    stats = tmp_path / "run_stats.csv"
    stats.write_text(
        "\n".join(
            [
                STATS_HEADER,
                "average,browse,900,20,400,450.5,100,9000,3500,5000",
                ",Aggregated,1000,20,400,460.0,90,9000,3500,5000",
            ]
        )
        + "\n",
        encoding="utf-8",
    )

    # Act
    exit_code = main(["--stats", str(stats)])

    # Assert
    assert exit_code == EXIT_THRESHOLD_BREACH
    assert "Overall: FAIL" in capsys.readouterr().out


def test_load_metrics_from_stats_csv_reads_columns(tmp_path):
    stats = tmp_path / "run_stats.csv"
    stats.write_text(
        STATS_HEADER + "\n,Aggregated,200,1,400,460.0,90,9000,1800,5000\n", encoding="utf-8"
    )

    metrics = load_metrics_from_stats_csv(stats)

    assert metrics.total_requests == 200
    assert metrics.failed_requests == 1
    assert metrics.error_rate_percent == pytest.approx(0.5)
    assert metrics.duration.p95 == 1800
    assert metrics.ttfb.p95 == 0


def test_load_metrics_from_stats_csv_accepts_legacy_columns(tmp_path):
    stats = tmp_path / "run_stats.csv"
    stats.write_text(
        "Method,Name,# requests,# failures,Average response time,95%ile\n"
        "None,Aggregated,400,4,310.5,2900%\n",
        encoding="utf-8",
    )

    metrics = load_metrics_from_stats_csv(stats)

    assert metrics.total_requests == 400
    assert metrics.error_rate_percent == pytest.approx(1.0)
    assert metrics.duration.avg == pytest.approx(310.5)
    assert metrics.duration.p95 == 2900
    assert metrics.duration.max == 0


def test_summary_without_metrics_defaults_to_zero(summary_path):
    summary_path.write_text(json.dumps({"metrics": {}}), encoding="utf-8")

    metrics = load_metrics_from_summary(summary_path)

    assert metrics.total_requests == 0
    assert metrics.error_rate_percent == 0
    assert metrics.duration.p95 == 0


def test_empty_run_passes(summary_path):
    summary_path.write_text(json.dumps({"metrics": {}}), encoding="utf-8")

    assert main(["--summary", str(summary_path)]) == EXIT_PASS


@pytest.mark.parametrize(
    "content",
    [
        None,
        "Type,Name,Request Count\nGET,/,10\n",
        "not,a,stats,file\n",
        "Type,Name,Request Count,Failure Count\n,Aggregated,,\n",
        "Type,Name,Request Count,Failure Count\n,Aggregated,many,0\n",
    ],
)
def test_unusable_input_exits_two(tmp_path, capsys, content):
    """Test missing files, CSVs without an Aggregated row, and rows without counts."""
    # Arrange
    stats = tmp_path / "run_stats.csv"
    if content is not None:
        stats.write_text(content, encoding="utf-8")

    # Act
    exit_code = main(["--stats", str(stats)])

    # Assert
    assert exit_code == EXIT_SCRIPT_ERROR
    assert "Verdict check failed" in capsys.readouterr().err


def test_source_argument_is_required():
    with pytest.raises(SystemExit) as exc_info:
        main([])

    assert exc_info.value.code == 2
