"""
Tests for the command-line interface and the supply command.
"""

import logging
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest

from stackkit.cli.parser import CLI
from stackkit.core.exceptions import FetchError


def supply_args(tmp_path, *extra):
    return [
        *extra,
        "supply",
        str(tmp_path / "app"),
        str(tmp_path / "cache"),
        str(tmp_path / "deps"),
        "0",
        "--buildpack-dir",
        str(tmp_path / "buildpack"),
    ]


class TestCLIParser:
    """Test argument parsing."""

    def test_supply_arguments(self, tmp_path):
        """Test positional directories and options are parsed as paths."""
        args = CLI().parse_args(supply_args(tmp_path))

        assert args.command == "supply"
        assert args.build_dir == tmp_path / "app"
        assert args.deps_idx == "0"
        assert args.buildpack_dir == tmp_path / "buildpack"
        assert args.tmp_dir is None

    def test_version(self, capsys):
        """Test --version prints the version and exits."""
        with pytest.raises(SystemExit) as exc_info:
            CLI().run(["--version"])

        assert exc_info.value.code == 0
        assert "StackKit" in capsys.readouterr().out

    def test_no_command(self, capsys):
        """Test running without a command prints help and fails."""
        assert CLI().run([]) == 1
        assert "supply" in capsys.readouterr().out

    def test_missing_positional(self):
        """Test supply without its directories is a usage error."""
        with pytest.raises(SystemExit) as exc_info:
            CLI().run(["supply"])

        assert exc_info.value.code == 2


class TestLogging:
    """Test logging configuration."""

    @pytest.mark.parametrize(
        "flags,level",
        [([], logging.INFO), (["--verbose"], logging.DEBUG), (["--quiet"], logging.ERROR)],
    )
    def test_levels(self, flags, level):
        """Test --verbose and --quiet select the root log level."""
        CLI().run(flags)

        assert logging.getLogger().level == level


class TestSupplyCommand:
    """Test the supply command."""

    def test_success(self, tmp_path):
        """Test a successful run exits 0 and stages into <deps_dir>/<idx>."""
        logstash = SimpleNamespace(full_name="logstash-6.4.0")
        context = SimpleNamespace(installed={"logstash": logstash})

        with patch("stackkit.cli.commands.supply.Supplier") as supplier_cls:
            supplier_cls.return_value.run.return_value = context
            exit_code = CLI().run(supply_args(tmp_path, "--quiet"))

        assert exit_code == 0
        stager = supplier_cls.call_args.args[0]
        assert stager.deps_dir == tmp_path / "deps" / "0"
        assert stager.buildpack_dir == tmp_path / "buildpack"
        assert supplier_cls.call_args.kwargs["runner"] is None

    def test_relative_directories(self, tmp_path, monkeypatch):
        """Test relative directories are resolved against the working directory."""
        monkeypatch.chdir(tmp_path)

        with patch("stackkit.cli.commands.supply.Supplier") as supplier_cls:
            supplier_cls.return_value.run.return_value = SimpleNamespace(installed={})
            CLI().run(["--quiet", "supply", "./app", "./cache", "./deps", "0"])

        stager = supplier_cls.call_args.args[0]
        assert stager.build_dir == tmp_path / "app"
        assert stager.cache_dir == tmp_path / "cache"
        assert stager.deps_dir == tmp_path / "deps" / "0"

    def test_verbose_streams_output(self, tmp_path):
        """Test --verbose hands a streaming runner to the supplier."""
        with patch("stackkit.cli.commands.supply.Supplier") as supplier_cls:
            supplier_cls.return_value.run.return_value = SimpleNamespace(installed={})
            CLI().run(supply_args(tmp_path, "--verbose"))

        assert supplier_cls.call_args.kwargs["runner"].stream_output

    def test_failure_exits_one(self, tmp_path):
        """Test a StackKitError becomes exit code 1."""
        with patch("stackkit.cli.commands.supply.Supplier") as supplier_cls:
            supplier_cls.return_value.run = Mock(side_effect=FetchError("network down"))
            exit_code = CLI().run(supply_args(tmp_path, "--quiet"))

        assert exit_code == 1

    def test_missing_logstash_file(self, tmp_path):
        """Test a real run without a Logstash file fails with exit code 1."""
        (tmp_path / "app").mkdir()

        assert CLI().run(supply_args(tmp_path, "--quiet")) == 1
