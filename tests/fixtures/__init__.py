"""Test fixtures for flakeplan tests.

This package provides reusable pytest fixtures for testing flakeplan
components:

- workspaces: Source trees and flakeplan.yaml declarations

Import fixtures in your tests using:
    from tests.fixtures.workspaces import rust_workspace
"""

__all__ = [
    "workspaces",
]
