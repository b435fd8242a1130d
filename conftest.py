"""
Pytest configuration for the stackforge test suite.

This configuration enables the --full flag to run integration tests.
"""

import pytest


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--full",
        action="store_true",
        default=False,
        help="Run full test suite including integration tests (real configure/make builds)",
    )


def pytest_configure(config):
    """Configure pytest based on command-line options."""
    if config.getoption("--full"):
        # Drop the default marker expression that excludes integration tests
        markexpr = config.getoption("-m", "")
        if markexpr == "not integration":
            config.option.markexpr = ""


@pytest.fixture(autouse=True)
def _isolated_stackforge_home(monkeypatch):
    """Keep STACKFORGE_HOME from leaking in from the developer's shell."""
    monkeypatch.delenv("STACKFORGE_HOME", raising=False)
