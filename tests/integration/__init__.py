"""
Integration tests for the Locust wiring.

Tests use real Locust ``Environment`` and ``Events`` objects with a fake
HTTP client and demonstrate:
- Running a user iteration end to end
- Schedule-driven and tag-driven load shapes
- Distributed metric merging and exit-code handling
"""
