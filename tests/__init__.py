"""
Test suite for the performance engine.

This package contains:
- unit/: Engine tests against synthetic operations (no network)
- integration/: Runners, facade and CLI driven against a live Flask server
- performance/: Bundled test profiles and the CI thresholds file
"""
