"""
Test suite for the page load-test package.

This package contains:
- unit/: Thresholds, scenarios, metrics, executor, verdict, schedule,
  config, reports and the CI verdict gate
- integration/: Locust user classes, load shape and event listeners
  wired against real Locust objects
"""
