"""
Pytest configuration for the Intcode test suite.

    python -m pytest                  # everything
    python -m pytest -m "not longrun" # skip exhaustive parameter searches
"""


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "longrun: exhaustive searches that run thousands of machines")
