"""
Unit tests for the supply run context.
"""

import pytest

from stackkit.config.parser import SupplyConfig
from stackkit.core.exceptions import InstallError
from stackkit.supply.context import STAGING_PORT
from tests.fixtures.directories import resolve_for


class TestHeap:
    """Test heap sizing."""

    def test_heap_from_memory_limit(self, make_context):
        """Test 90% of (1024 - 300) rounded down to whole percent steps."""
        context = make_context(SupplyConfig(), mem=1024)

        assert context.heap_megabytes() == 630
        assert context.java_opts == "-Xmx630m -Xms630m"

    def test_custom_reservation(self, make_context):
        """Test reserved memory and heap percentage from the configuration."""
        context = make_context(
            SupplyConfig(reserved_memory=512, heap_percentage=50), mem=2048
        )

        assert context.java_opts == "-Xmx750m -Xms750m"

    def test_user_java_opts_win(self, make_context):
        """Test explicit java-opts replace the computed heap flags."""
        context = make_context(SupplyConfig(java_opts="-Xmx2g -XX:+UseG1GC"))

        assert context.java_opts == "-Xmx2g -XX:+UseG1GC"


class TestChildEnv:
    """Test child_env()."""

    def test_before_jdk(self, make_context):
        """Test the environment before the JDK is installed."""
        context = make_context()

        env = context.child_env()

        assert "JAVA_HOME" not in env
        assert env["PATH"] == "/usr/bin:/bin"
        assert env["PORT"] == STAGING_PORT
        assert env["LS_JAVA_OPTS"] == "-Xmx630m -Xms630m"

    def test_after_jdk(self, make_context, stager):
        """Test JAVA_HOME is set and its bin directory appended to PATH."""
        context = make_context()
        context.installed["openjdk"] = resolve_for(stager, "openjdk", "1.8.0")

        env = context.child_env()

        java_home = stager.deps_dir / "openjdk-1.8.0"
        assert env["JAVA_HOME"] == str(java_home)
        assert env["PATH"] == f"/usr/bin:/bin:{java_home / 'bin'}"

    def test_extra_and_isolation(self, make_context):
        """Test extra variables are merged without touching the base environment."""
        context = make_context()

        env = context.child_env({"SERVICE_INSTANCE_NAME": "es"})

        assert env["SERVICE_INSTANCE_NAME"] == "es"
        assert "SERVICE_INSTANCE_NAME" not in context.base_env
        assert "PORT" not in context.base_env


class TestPluginsAndHomes:
    """Test plugin bookkeeping and dependency lookup."""

    def test_plugins_seeded_from_config(self, make_context):
        """Test configured plugins are deduplicated in request order."""
        context = make_context(SupplyConfig(plugins=["b", "a", "b"]))

        context.add_plugins(["c", "a"])

        assert context.plugins == ["b", "a", "c"]

    def test_groks_deduplicated(self, make_context):
        """Test grok names are collected once each."""
        context = make_context()

        context.add_groks(["x", "y"])
        context.add_groks(["y", ""])

        assert context.groks == ["x", "y"]

    def test_home_of_missing_dependency(self, make_context):
        """Test asking for an uninstalled dependency raises InstallError."""
        with pytest.raises(InstallError, match="logstash"):
            make_context().home("logstash")
