"""Tests for the command line interface."""

import argparse
import os
from datetime import datetime

import pytest

from archive_backup_ng import __version__
from archive_backup_ng.cli.common import (
    add_selection_args,
    add_verbosity_args,
    get_log_level,
    load_cli_config,
    select_jobs,
)
from archive_backup_ng.cli.dispatcher import create_subcommand_parser, main
from archive_backup_ng.cli.pin import marker_path
from archive_backup_ng.config import ConfigError, load_config
from archive_backup_ng.transaction import read_transaction_log


@pytest.fixture
def sources(tmp_path):
    """Create the source directories referenced by the sample config."""
    for name in ("docs", "base"):
        (tmp_path / name).mkdir()
        (tmp_path / name / f"{name}.txt").write_text(name)
    return tmp_path


class TestAddVerbosityArgs:
    """Tests for add_verbosity_args function."""

    def test_short_flags(self):
        """Test that -v and -q work."""
        parser = argparse.ArgumentParser()
        add_verbosity_args(parser)

        assert parser.parse_args(["-v"]).verbose is True
        assert parser.parse_args(["-q"]).quiet is True

    def test_defaults_are_false(self):
        """Test that defaults are False."""
        parser = argparse.ArgumentParser()
        add_verbosity_args(parser)
        args = parser.parse_args([])

        assert args.verbose is False
        assert args.quiet is False
        assert args.debug is False


class TestAddSelectionArgs:
    """Tests for add_selection_args function."""

    def test_repeatable(self):
        """Test --job and --set can be given several times."""
        parser = argparse.ArgumentParser()
        add_selection_args(parser)

        args = parser.parse_args(["--job", "a", "--job", "b", "--set", "nightly"])

        assert args.job == ["a", "b"]
        assert args.sets == ["nightly"]

    def test_without_sets(self):
        """Test --set can be left out."""
        parser = argparse.ArgumentParser()
        add_selection_args(parser, sets=False)

        with pytest.raises(SystemExit):
            parser.parse_args(["--set", "nightly"])


class TestGetLogLevel:
    """Tests for get_log_level function."""

    def test_default_is_info(self):
        """Test default log level is INFO."""
        args = argparse.Namespace(verbose=False, quiet=False, debug=False)
        assert get_log_level(args) == "INFO"

    def test_quiet(self):
        """Test quiet gives WARNING."""
        args = argparse.Namespace(verbose=False, quiet=True, debug=False)
        assert get_log_level(args) == "WARNING"

    def test_debug_wins(self):
        """Test debug takes priority over quiet."""
        args = argparse.Namespace(verbose=False, quiet=True, debug=True)
        assert get_log_level(args) == "DEBUG"

    def test_missing_attributes(self):
        """Test a namespace without verbosity attributes."""
        assert get_log_level(argparse.Namespace()) == "INFO"


class TestLoadCliConfig:
    """Tests for load_cli_config and select_jobs."""

    def test_explicit_path(self, config_file):
        """Test loading an explicitly given config file."""
        config, path = load_cli_config(argparse.Namespace(config=str(config_file)))

        assert path == config_file
        assert [j.name for j in config.jobs] == ["Docs", "Base"]

    def test_nothing_found(self, monkeypatch, tmp_path):
        """Test a missing default config raises ConfigError."""
        monkeypatch.setattr(
            "archive_backup_ng.config.loader.CONFIG_PATHS", [tmp_path / "none.toml"]
        )

        with pytest.raises(ConfigError, match="No configuration file found"):
            load_cli_config(argparse.Namespace(config=None))

    def test_select_jobs(self, config_file):
        """Test job selection by name."""
        config, _ = load_config(config_file)

        assert [j.name for j in select_jobs(config, ["Base"])] == ["Base"]
        assert len(select_jobs(config, [])) == 2
        with pytest.raises(ConfigError, match="Unknown job"):
            select_jobs(config, ["nope"])


class TestDispatcher:
    """Tests for argument parsing and routing."""

    def test_all_subcommands_registered(self):
        """Test every known subcommand parses."""
        parser = create_subcommand_parser()
        for command in ("run", "plan", "list", "prune", "pin", "unpin", "status", "config"):
            extra = ["x"] if command in ("pin", "unpin") else []
            assert parser.parse_args([command, *extra]).command == command

    def test_run_options(self):
        """Test run command options."""
        args = create_subcommand_parser().parse_args(
            ["-c", "cfg.toml", "run", "--simulate", "--set", "nightly", "--parallel-targets", "4"]
        )

        assert args.config == "cfg.toml"
        assert args.simulate is True
        assert args.sets == ["nightly"]
        assert args.parallel_targets == 4

    def test_version(self, capsys):
        """Test --version prints the version."""
        assert main(["--version"]) == 0
        assert __version__ in capsys.readouterr().out

    def test_no_command(self, capsys):
        """Test running without a command."""
        assert main([]) == 1
        assert "No command specified" in capsys.readouterr().out


class TestRunCommand:
    """End to end tests of the run and plan commands."""

    def test_run_with_partial_target_failure(self, config_file, sources, tmp_path):
        """Test a run where one target of a tolerant job is unavailable."""
        exit_code = main(["-c", str(config_file), "run"])

        assert exit_code == 1
        nas = sorted(p.name for p in (tmp_path / "nas").iterdir())
        assert any(n.startswith("Base_") and n.endswith(".tar.gz") for n in nas)
        assert any(n.startswith("Docs_") and n.endswith(".tar.gz.sha256") for n in nas)
        assert not (tmp_path / "usb").exists()

    def test_simulated_set(self, config_file, sources, tmp_path):
        """Test a simulated run writes nothing and exits 0 when clean."""
        exit_code = main(["-c", str(config_file), "run", "--simulate", "--job", "Docs"])

        assert exit_code == 0
        assert not (tmp_path / "staging").exists()
        assert not (tmp_path / "nas").exists()

    def test_missing_sources_fail(self, config_file, tmp_path):
        """Test a job whose sources are missing fails the run."""
        assert main(["-c", str(config_file), "run", "--set", "nightly"]) == 2

    def test_unknown_job_is_config_error(self, config_file):
        """Test an unknown job exits with the configuration error code."""
        assert main(["-c", str(config_file), "run", "--job", "nope"]) == 3

    def test_missing_config_file(self, tmp_path):
        """Test an explicit config path that does not exist."""
        assert main(["-c", str(tmp_path / "missing.toml"), "run"]) == 3

    def test_transactions_logged(self, config_file, sources, tmp_path):
        """Test the run writes the configured transaction log."""
        log = tmp_path / "tx.jsonl"
        text = config_file.read_text().replace(
            "[global]\n", f'[global]\ntransaction_log = "{log}"\n', 1
        )
        config_file.write_text(text)

        main(["-c", str(config_file), "run", "--job", "Base"])

        jobs = read_transaction_log(log, action="job")
        assert [r["job"] for r in jobs] == ["Base"]
        assert jobs[0]["status"] == "warnings"

    def test_plan(self, config_file, capsys):
        """Test plan prints the resolved order with dependencies."""
        assert main(["-c", str(config_file), "plan", "--set", "nightly"]) == 0

        out = capsys.readouterr().out
        assert "set nightly (on_error=stop):" in out
        assert "1. Base" in out
        assert "2. Docs  (after Base)" in out


class TestConfigCommand:
    """Tests for config validate and init."""

    def test_validate(self, config_file, capsys):
        """Test a valid configuration."""
        assert main(["-c", str(config_file), "config", "validate"]) == 0

        out = capsys.readouterr().out
        assert "Configuration is valid." in out
        assert "Order: Base -> Docs" in out

    def test_validate_cycle(self, tmp_config_dir, capsys):
        """Test a dependency cycle is reported."""
        path = tmp_config_dir / "cycle.toml"
        path.write_text(
            '[[jobs]]\nname = "A"\nsources = ["/a"]\ndepends_on = ["B"]\n'
            '[[jobs]]\nname = "B"\nsources = ["/b"]\ndepends_on = ["A"]\n'
        )

        assert main(["-c", str(path), "config", "validate"]) == 3
        assert "A -> B -> A" in capsys.readouterr().out

    def test_init_writes_loadable_config(self, tmp_path):
        """Test the generated example config loads."""
        output = tmp_path / "example.toml"

        assert main(["config", "init", "-o", str(output)]) == 0

        config, _ = load_config(output)
        assert [j.name for j in config.jobs] == ["Base", "Docs"]

    def test_no_action(self, capsys):
        """Test config without an action prints usage."""
        assert main(["config"]) == 1


class TestPinCommand:
    """Tests for pin and unpin."""

    def test_marker_path(self, tmp_path):
        """Test marker naming."""
        archive = tmp_path / "Docs_20260101-000000.tar.gz"

        assert marker_path(archive).name == "Docs_20260101-000000.tar.gz.pinned"
        assert marker_path(marker_path(archive)) == marker_path(archive)

    def test_pin_and_unpin(self, tmp_path):
        """Test pinning creates the marker and unpinning removes it."""
        archive = tmp_path / "Docs_20260101-000000.tar.gz"
        archive.write_bytes(b"x")
        marker = tmp_path / "Docs_20260101-000000.tar.gz.pinned"

        assert main(["pin", str(archive)]) == 0
        assert marker.exists()
        assert main(["unpin", str(archive)]) == 0
        assert not marker.exists()

    def test_pin_missing_archive(self, tmp_path):
        """Test pinning a file that does not exist."""
        assert main(["pin", str(tmp_path / "nope.tar.gz")]) == 1


class TestMaintenanceCommands:
    """Tests for list, prune and status."""

    @pytest.fixture
    def staged(self, tmp_path):
        staging = tmp_path / "staging"
        staging.mkdir()
        for day in range(1, 6):
            path = staging / f"Docs_2026010{day}-000000.tar.gz"
            path.write_bytes(b"x")
            stamp = datetime(2020, 1, day).timestamp()
            os.utime(path, (stamp, stamp))
        return staging

    def test_prune_dry_run(self, config_file, staged, capsys):
        """Test a dry run keeps every file."""
        assert main(["-c", str(config_file), "prune", "--dry-run", "--job", "Docs"]) == 0

        assert len(list(staged.iterdir())) == 5
        assert "keep=3: keeping 3, pinned 0, deleting 2" in capsys.readouterr().out

    def test_prune(self, config_file, staged):
        """Test prune applies local_keep."""
        assert main(["-c", str(config_file), "prune", "--job", "Docs"]) == 0

        assert sorted(p.name for p in staged.iterdir()) == [
            "Docs_20260103-000000.tar.gz",
            "Docs_20260104-000000.tar.gz",
            "Docs_20260105-000000.tar.gz",
        ]

    def test_list_local_only(self, config_file, staged, capsys):
        """Test listing staged instances."""
        assert main(["-c", str(config_file), "list", "--local-only", "--job", "Docs"]) == 0

        assert "Docs_20260105-000000" in capsys.readouterr().out

    def test_status_without_log(self, config_file, capsys):
        """Test status when the transaction log is disabled."""
        assert main(["-c", str(config_file), "status"]) == 0

        assert "Transaction log is disabled" in capsys.readouterr().out
