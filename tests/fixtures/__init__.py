"""Test fixtures for StackKit tests.

This package provides reusable helpers and pytest fixtures for testing the
supply pipeline:

- artifacts: Local archives and manifest.yml files built on the fly
- runners: Command runner doubles (FakeRunner, FakeAutotools)
- directories: Buildpack and application directory layouts

Import helpers in your tests using:
    from tests.fixtures.artifacts import ManifestBuilder, tree_snapshot
    from tests.fixtures.runners import FakeRunner
"""

__all__ = [
    "artifacts",
    "runners",
    "directories",
]
