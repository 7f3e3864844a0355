"""
Pytest configuration and shared fixtures for StackKit tests.
"""

import logging
from pathlib import Path

import pytest

from stackkit.config.parser import ApplicationLimits, SupplyConfig
from stackkit.supply.cache import CacheStore
from stackkit.supply.context import SupplyContext
from stackkit.supply.dependency import DependencyLayout
from stackkit.supply.stager import Stager

# Import test fixtures to make them available to all tests
# These imports register the fixtures with pytest's fixture discovery system
# ruff: noqa: F401
from tests.fixtures.artifacts import manifest_builder
from tests.fixtures.runners import fake_runner
from tests.fixtures.directories import buildpack_dir, app_dir


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


# ============================================================================
# Shared Test Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def restore_log_levels():
    """Undo log level changes made by the CLI and debug-mode supply runs."""
    root = logging.getLogger()
    package = logging.getLogger("stackkit")
    levels = (root.level, package.level)
    yield
    root.setLevel(levels[0])
    package.setLevel(levels[1])


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
    return tmp_path / "cache" / "dependencies"


@pytest.fixture
def cache_store(cache_root: Path) -> CacheStore:
    return CacheStore(cache_root, "v1", lock_timeout=5)


@pytest.fixture
def make_layout(tmp_path: Path):
    """Factory: DependencyLayout for a session and a staging directory name."""

    def factory(session, deps_name: str = "deps") -> DependencyLayout:
        return DependencyLayout(
            cache_dir=session.format_dir,
            deps_dir=tmp_path / deps_name / "0",
            deps_idx="0",
            tmp_dir=tmp_path / "tmp" / "v1",
        )

    return factory


@pytest.fixture
def stager(tmp_path: Path) -> Stager:
    """Stager over fresh application, cache and dependency directories."""
    return Stager(
        build_dir=tmp_path / "app",
        cache_dir=tmp_path / "cache",
        deps_dir=tmp_path / "deps" / "0",
        deps_idx="0",
        buildpack_dir=tmp_path / "buildpack",
    )


@pytest.fixture
def make_context(stager: Stager, fake_runner):
    """Factory: SupplyContext over the stager fixture with a FakeRunner."""

    def factory(config: SupplyConfig = None, mem: int = 1024, **kwargs) -> SupplyContext:
        kwargs.setdefault("base_env", {"PATH": "/usr/bin:/bin"})
        return SupplyContext(
            stager=stager,
            config=config or SupplyConfig(),
            limits=ApplicationLimits(mem=mem),
            runner=fake_runner,
            **kwargs,
        )

    return factory
