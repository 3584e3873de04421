"""Pytest configuration for ISA Hub tests.

Environment variables are set here, before any test imports the app, so
settings load with the test environment.
"""

import os


def pytest_configure(config):
    """Configure the test environment before any tests run.

    - ENVIRONMENT=test (not development) so production checks stay honest
    - BOOTSTRAP_ADMIN_ENABLED=false to avoid admin creation during tests
    - NOTIFICATION_DELIVERY=log so queued notifications are marked sent
    """
    config.addinivalue_line("markers", "security: Security-related tests (required gate)")
    config.addinivalue_line("markers", "slow: Slow-running tests (excluded from fast)")

    os.environ.setdefault("ENVIRONMENT", "test")
    os.environ.setdefault("BOOTSTRAP_ADMIN_ENABLED", "false")
    os.environ.setdefault("NOTIFICATION_DELIVERY", "log")
