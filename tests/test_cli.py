"""Tests for muxlayout CLI commands."""

from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from muxlayout import __version__
from muxlayout.__main__ import app

runner = CliRunner()

CONFIG = {
    "presets": {
        "dev": {
            "name": "Dev",
            "description": "Editor and shell",
            "layout": {
                "type": "horizontal",
                "ratio": [3, 2],
                "panes": [{"name": "editor", "focus": True, "command": "vim"}, {"name": "shell"}],
            },
        },
    },
}


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write a config with a single valid preset."""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(CONFIG))
    return path


class TestVersion:
    """Tests for the --version option."""

    def test_prints_version(self) -> None:
        """Should print the version and exit cleanly."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestApplyPreset:
    """Tests for the main command."""

    def test_dry_run_tmux(self, config_file: Path) -> None:
        """Should list the tmux commands without running them."""
        result = runner.invoke(app, ["--config", str(config_file), "--backend", "tmux", "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "split root.0 horizontal -> root.1" in result.output
        assert "tmux split-window -d -t root.0 -h -p 40" in result.output
        assert "tmux send-keys -t root.0 vim Enter" in result.output

    def test_dry_run_wezterm(self, config_file: Path) -> None:
        """Should render wezterm commands for the same preset."""
        result = runner.invoke(app, ["--config", str(config_file), "-b", "wezterm", "-n", "-p", "dev"])
        assert result.exit_code == 0, result.output
        assert "wezterm cli split-pane --right --percent 40 --pane-id root.0" in result.output
        assert "wezterm cli activate-pane --pane-id root.0" in result.output

    def test_verbose_shows_resolution(self, config_file: Path) -> None:
        """Should report how backend and window mode were chosen."""
        result = runner.invoke(app, ["--config", str(config_file), "-b", "tmux", "-n", "-v"])
        assert result.exit_code == 0, result.output
        assert "Backend: tmux" in result.output
        assert "Window mode: new-window (from default)" in result.output

    def test_window_mode_conflict(self, config_file: Path) -> None:
        """Should reject --current-window together with --new-window."""
        result = runner.invoke(app, ["--config", str(config_file), "--current-window", "--new-window", "-n"])
        assert result.exit_code == 1
        assert "Cannot use --current-window and --new-window" in result.output

    def test_unknown_preset(self, config_file: Path) -> None:
        """Should fail listing the available presets."""
        result = runner.invoke(app, ["--config", str(config_file), "-p", "nope", "-n"])
        assert result.exit_code == 1
        assert "Available presets: dev" in result.output

    def test_missing_config(self, tmp_path: Path) -> None:
        """Should fail when the config file does not exist."""
        result = runner.invoke(app, ["--config", str(tmp_path / "missing.yaml"), "-n"])
        assert result.exit_code == 1
        assert "Config file not found" in result.output


class TestListCommand:
    """Tests for the list command."""

    def test_lists_presets(self, config_file: Path) -> None:
        """Should show preset keys and names."""
        result = runner.invoke(app, ["list", "--config", str(config_file)])
        assert result.exit_code == 0, result.output
        assert "dev" in result.output
        assert "Dev" in result.output


class TestConfigCommands:
    """Tests for the config subcommands."""

    def test_validate_ok(self, config_file: Path) -> None:
        """Should compile every preset."""
        result = runner.invoke(app, ["config", "validate", "--config", str(config_file)])
        assert result.exit_code == 0, result.output
        assert "All config files are valid." in result.output

    def test_validate_broken_preset(self, tmp_path: Path) -> None:
        """Should fail on a preset that does not compile."""
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.dump({"presets": {"bad": {"layout": {"type": "horizontal", "ratio": [1], "panes": [{}, {}]}}}})
        )
        result = runner.invoke(app, ["config", "validate", "--config", str(path)])
        assert result.exit_code == 1
        assert "bad" in result.output

    def test_show(self, config_file: Path) -> None:
        """Should print the effective config as YAML."""
        result = runner.invoke(app, ["config", "show", "--config", str(config_file)])
        assert result.exit_code == 0, result.output
        assert "presets:" in result.output
        assert "dev:" in result.output

    def test_init(self, tmp_path: Path) -> None:
        """Should write a sample config and refuse to overwrite it."""
        path = tmp_path / "muxlayout" / "config.yaml"
        result = runner.invoke(app, ["config", "init", "--config", str(path)])
        assert result.exit_code == 0, result.output
        assert path.is_file()

        again = runner.invoke(app, ["config", "init", "--config", str(path)])
        assert again.exit_code == 1

        forced = runner.invoke(app, ["config", "init", "--config", str(path), "--force"])
        assert forced.exit_code == 0
