"""
Pytest configuration and shared fixtures for flakeplan tests.
"""

import pytest

# Import test fixtures to make them available to all tests
# These imports register the fixtures with pytest's fixture discovery system
# ruff: noqa: F401
from tests.fixtures.workspaces import (
    declaration_file,
    rust_workspace,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast tests without external dependencies")
    config.addinivalue_line(
        "markers", "integration: tests that exercise several stages together"
    )


# ============================================================================
# Shared Test Fixtures
# ============================================================================


@pytest.fixture
def no_network(monkeypatch):
    """Disable network access for tests."""
    import socket

    def guard(*args, **kwargs):
        raise RuntimeError("Network access not allowed in this test")

    monkeypatch.setattr(socket, "socket", guard)

