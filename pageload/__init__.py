"""
Page load-test suite (Locust-based).

Drives simulated visitors against a website's public pages and turns the
collected latency and error metrics into a single PASS / MARGINAL / FAIL
verdict with JSON, HTML and text reports.

Layout, leaf-first:

- :mod:`.thresholds`: latency thresholds and acceptance bands
- :mod:`.scenarios`: the average / peak / spike visitor behaviours
- :mod:`.metrics`: duration and TTFB distributions backed by Locust stats
- :mod:`.executor`: one request, four success checks, three metrics
- :mod:`.verdict`: the categorical verdict
- :mod:`.report`: JSON, HTML and text renderers
- :mod:`.schedule`: the three sequential load phases
- :mod:`.config`: run settings read once from the environment
- :mod:`.users` / :mod:`.locustfile`: the Locust wiring
- :mod:`.check_verdict`: CI gate for a finished run
"""

__version__ = "0.1.0"
