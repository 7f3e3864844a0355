"""
Unit tests for Logstash plugin resolution and installation.
"""

from pathlib import Path

import pytest

from stackkit.core.exceptions import PluginError, PluginInstallError, PluginNotResolvedError
from stackkit.core.process import CommandResult
from stackkit.supply.plugins import (
    PluginInstaller,
    PluginResolver,
    PluginSource,
    PluginTarget,
    resolve,
    to_install_target,
)
from tests.fixtures.runners import FakeRunner


@pytest.fixture
def sources(tmp_path):
    xpack = tmp_path / "x-pack-6.4.0"
    xpack.mkdir()
    (xpack / "x-pack-6.4.0.zip").write_text("zip")

    bundle = tmp_path / "logstash-plugins-6.4.0"
    bundle.mkdir()
    (bundle / "logstash-output-foo-1.0.0.zip").write_text("zip")
    (bundle / "logstash-codec-bar-2.1.0.gem").write_text("gem")
    (bundle / "logstash-input-dup-1.0.0.gem").write_text("gem")

    app = tmp_path / "app" / "plugins"
    app.mkdir(parents=True)
    (app / "logstash-input-dup-9.0.0.gem").write_text("gem")
    (app / "logstash-filter-custom-0.1.0.gem").write_text("gem")

    return [
        PluginSource("x-pack", xpack),
        PluginSource("logstash-plugins", bundle),
        PluginSource("app", app),
    ]


class TestPluginSource:
    """Test PluginSource listing."""

    def test_entries_sorted(self, sources):
        """Test entries are returned in name order."""
        assert sources[1].entries() == [
            "logstash-codec-bar-2.1.0.gem",
            "logstash-input-dup-1.0.0.gem",
            "logstash-output-foo-1.0.0.zip",
        ]

    def test_missing_directory(self, tmp_path):
        """Test a missing directory lists nothing."""
        assert PluginSource("app", tmp_path / "absent").entries() == []

    def test_no_directory(self):
        """Test an uninstalled source lists nothing."""
        assert PluginSource("x-pack", None).entries() == []


class TestPluginResolver:
    """Test resolution order and targets."""

    def test_zip_becomes_file_uri(self, sources, tmp_path):
        """Test zip packages are installed through file:// URIs."""
        target = PluginResolver(sources).resolve("logstash-output-foo")

        expected = tmp_path / "logstash-plugins-6.4.0" / "logstash-output-foo-1.0.0.zip"
        assert target.target == f"file://{expected}"
        assert target.source == "logstash-plugins"
        assert target.offline

    def test_gem_is_plain_path(self, sources, tmp_path):
        """Test non-zip packages are passed as paths."""
        target = PluginResolver(sources).resolve("logstash-filter-custom")

        expected = tmp_path / "app" / "plugins" / "logstash-filter-custom-0.1.0.gem"
        assert target.target == str(expected)
        assert target.source == "app"

    def test_xpack_first(self, sources):
        """Test the x-pack bundle is searched first."""
        assert PluginResolver(sources).resolve("x-pack").source == "x-pack"

    def test_bundle_before_app(self, sources):
        """Test the default bundle wins over the application's plugins."""
        target = PluginResolver(sources).resolve("logstash-input-dup")

        assert target.source == "logstash-plugins"
        assert target.target.endswith("logstash-input-dup-1.0.0.gem")

    def test_online_fallback(self, sources):
        """Test an unknown plugin is installed online by name."""
        target = PluginResolver(sources).resolve("logstash-output-s3")

        assert target == PluginTarget("logstash-output-s3", "logstash-output-s3")
        assert not target.offline

    def test_resolve_local_raises(self, sources):
        """Test resolve_local raises when no source has the plugin."""
        with pytest.raises(PluginNotResolvedError) as exc_info:
            PluginResolver(sources).resolve_local("logstash-output-s3")

        assert exc_info.value.plugin_name == "logstash-output-s3"

    def test_resolve_all_keeps_order(self, sources):
        """Test resolve_all returns targets in request order."""
        targets = PluginResolver(sources).resolve_all(["x-pack", "logstash-output-s3"])

        assert [t.plugin for t in targets] == ["x-pack", "logstash-output-s3"]

    def test_module_level_resolve(self, sources):
        """Test the resolve() shortcut."""
        assert resolve("logstash-codec-bar", sources).source == "logstash-plugins"

    def test_to_install_target(self, tmp_path):
        """Test only zip files get a file:// prefix."""
        assert to_install_target(tmp_path / "a.zip") == f"file://{tmp_path / 'a.zip'}"
        assert to_install_target(tmp_path / "a.gem") == str(tmp_path / "a.gem")

    def test_relative_source_gives_local_uri(self, sources, tmp_path, monkeypatch):
        """Test entries of a relative source directory become absolute file:/// URIs."""
        monkeypatch.chdir(tmp_path)
        source = PluginSource("logstash-plugins", Path("logstash-plugins-6.4.0"))
        resolver = PluginResolver([source])

        target = resolver.resolve("logstash-output-foo").target

        bundle = tmp_path / "logstash-plugins-6.4.0"
        assert target.startswith("file:///")
        assert target == f"file://{bundle / 'logstash-output-foo-1.0.0.zip'}"
        assert resolver.resolve("logstash-codec-bar").target == str(
            bundle / "logstash-codec-bar-2.1.0.gem"
        )


class TestPluginInstaller:
    """Test PluginInstaller."""

    def test_install_runs_logstash_plugin(self, tmp_path):
        """Test each target is installed with logstash-plugin install."""
        runner = FakeRunner()
        installer = PluginInstaller(tmp_path / "logstash", runner, env={"PORT": "8080"})

        installer.install(
            [PluginTarget("a", "file:///a.zip", "x-pack"), PluginTarget("b", "b")]
        )

        executable = str(tmp_path / "logstash" / "bin" / "logstash-plugin")
        assert runner.calls == [
            [executable, "install", "file:///a.zip"],
            [executable, "install", "b"],
        ]
        assert runner.envs == [{"PORT": "8080"}, {"PORT": "8080"}]

    def test_install_failure_carries_output(self, tmp_path):
        """Test a failing install raises PluginInstallError with the tool output."""
        runner = FakeRunner(
            lambda args, cwd, env: CommandResult(1, "Plugin not found: b")
            if args[-1] == "b"
            else None
        )
        installer = PluginInstaller(tmp_path, runner)

        with pytest.raises(PluginInstallError) as exc_info:
            installer.install([PluginTarget("b", "b"), PluginTarget("c", "c")])

        assert exc_info.value.plugin_name == "b"
        assert "Plugin not found: b" in exc_info.value.output
        assert len(runner.calls) == 1

    def test_list_installed(self, tmp_path):
        """Test listing returns the tool output."""
        runner = FakeRunner(lambda args, cwd, env: CommandResult(0, "logstash-codec-json"))

        output = PluginInstaller(tmp_path, runner).list_installed()

        assert output == "logstash-codec-json"
        assert runner.calls[0][1:] == ["list", "--verbose"]

    def test_list_failure(self, tmp_path):
        """Test a failing listing raises PluginError."""
        runner = FakeRunner(lambda args, cwd, env: CommandResult(1, "boom"))

        with pytest.raises(PluginError):
            PluginInstaller(tmp_path, runner).list_installed()
