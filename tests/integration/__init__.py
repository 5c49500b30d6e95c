"""
Integration test package for the performance engine.

Tests here drive real HTTP traffic against a local Flask server and
demonstrate:
- Load, stress, spike and endurance runs over the network
- Session metrics collected through client listeners
- CLI exit codes for pass, threshold breach and script failure
"""
