"""
Root conftest for all tests.

This conftest only contains minimal shared configuration.
- Unit tests (tests/unit/) fake the language server and need no binaries
- Integration tests spawn a real purescript-language-server and are opt-in
"""

import pytest


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (no external dependencies)"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests that spawn a real language server process",
    )
