"""Tests for muxlayout.compiler module."""

import pytest

from muxlayout.compiler import (
    UNNAMED_PRESET,
    CompiledPreset,
    FixedCells,
    Orientation,
    SplitPane,
    TerminalPane,
    Weight,
    compile_preset,
    compile_preset_from_value,
)
from muxlayout.config import BackendKind, WindowMode
from muxlayout.errors import CoreError, ErrorCode


def _compile_error(value: object) -> CoreError:
    with pytest.raises(CoreError) as exc_info:
        compile_preset_from_value(value, "test")
    return exc_info.value


class TestCompilePresetFromValue:
    """Tests for compile_preset_from_value function."""

    def test_basic_split(self) -> None:
        """Should compile a horizontal split with two terminals."""
        preset = compile_preset_from_value(
            {
                "name": "Dev",
                "layout": {
                    "type": "horizontal",
                    "ratio": [3, 2],
                    "panes": [{"name": "main", "focus": True}, {"name": "aux", "command": "htop"}],
                },
            },
            "test",
        )
        assert isinstance(preset, CompiledPreset)
        assert preset.name == "Dev"
        assert preset.source == "test"
        assert isinstance(preset.layout, SplitPane)
        assert preset.layout.orientation == Orientation.HORIZONTAL
        assert preset.layout.ratio == (Weight(3), Weight(2))
        main, aux = preset.layout.panes
        assert main == TerminalPane(name="main", focus=True)
        assert isinstance(aux, TerminalPane)
        assert aux.command == "htop"

    def test_fixed_cells_ratio(self) -> None:
        """Should parse "Nc" entries as fixed cells."""
        preset = compile_preset_from_value(
            {"layout": {"type": "vertical", "ratio": ["30c", 1], "panes": [{"name": "a"}, {"name": "b"}]}},
            "test",
        )
        assert isinstance(preset.layout, SplitPane)
        assert preset.layout.ratio == (FixedCells(30), Weight(1))

    def test_defaults_name(self) -> None:
        """Should fall back to the unnamed preset name."""
        preset = compile_preset_from_value({"command": "htop"}, "test")
        assert preset.name == UNNAMED_PRESET
        assert preset.layout is None
        assert preset.command == "htop"

    def test_terminal_fields(self) -> None:
        """Should carry cwd, env, delay, title and ephemeral flags."""
        preset = compile_preset_from_value(
            {
                "layout": {
                    "name": "server",
                    "command": "make serve",
                    "cwd": "/srv/app",
                    "env": {"PORT": 8080, "DEBUG": True, "EMPTY": None},
                    "delay": 250,
                    "title": "Server",
                    "ephemeral": True,
                    "closeOnError": True,
                }
            },
            "test",
        )
        terminal = preset.layout
        assert isinstance(terminal, TerminalPane)
        assert terminal.cwd == "/srv/app"
        assert terminal.env == (("PORT", "8080"), ("DEBUG", "true"), ("EMPTY", ""))
        assert terminal.delay == 250
        assert terminal.title == "Server"
        assert terminal.ephemeral is True
        assert terminal.close_on_error is True

    def test_backend_and_window_mode(self) -> None:
        """Should parse backend and windowMode."""
        preset = compile_preset_from_value(
            {"backend": "wezterm", "windowMode": "current-window", "command": "ls"}, "test"
        )
        assert preset.backend == BackendKind.WEZTERM
        assert preset.window_mode == WindowMode.CURRENT_WINDOW

    def test_not_a_mapping(self) -> None:
        """Should reject non-mapping documents."""
        error = _compile_error(["not", "a", "preset"])
        assert error.kind == "compile"
        assert error.code == ErrorCode.PRESET_INVALID_DOCUMENT

    def test_layout_and_command_conflict(self) -> None:
        """Should reject presets with both layout and command."""
        error = _compile_error({"command": "ls", "layout": {"name": "a"}})
        assert error.code == ErrorCode.PRESET_LAYOUT_COMMAND_CONFLICT

    def test_invalid_orientation(self) -> None:
        """Should reject unknown split types with the node path."""
        error = _compile_error({"layout": {"type": "diagonal", "ratio": [1], "panes": [{"name": "a"}]}})
        assert error.code == ErrorCode.LAYOUT_INVALID_ORIENTATION
        assert error.path == "preset.layout.type"

    def test_missing_panes(self) -> None:
        """Should reject splits without panes."""
        error = _compile_error({"layout": {"type": "horizontal", "ratio": [1]}})
        assert error.code == ErrorCode.LAYOUT_PANES_MISSING

    def test_missing_ratio(self) -> None:
        """Should reject splits without a ratio."""
        error = _compile_error({"layout": {"type": "horizontal", "panes": [{"name": "a"}]}})
        assert error.code == ErrorCode.LAYOUT_RATIO_MISSING

    def test_ratio_length_mismatch(self) -> None:
        """Should reject ratio and panes of different lengths."""
        layout = {"type": "horizontal", "ratio": [1], "panes": [{"name": "a"}, {"name": "b"}]}
        error = _compile_error({"layout": layout})
        assert error.code == ErrorCode.LAYOUT_RATIO_MISMATCH
        assert error.details["ratio_length"] == 1
        assert error.details["panes_length"] == 2

    def test_invalid_ratio_entry_path(self) -> None:
        """Should point at the offending ratio entry in a nested split."""
        error = _compile_error(
            {
                "layout": {
                    "type": "horizontal",
                    "ratio": [1, 1],
                    "panes": [
                        {"name": "a"},
                        {"type": "vertical", "ratio": [-1, 1], "panes": [{"name": "b"}, {"name": "c"}]},
                    ],
                }
            }
        )
        assert error.code == ErrorCode.RATIO_INVALID_VALUE
        assert error.path == "preset.layout.panes[1].ratio[0]"

    def test_zero_cells_rejected(self) -> None:
        """Should reject a zero fixed-cell entry."""
        layout = {"type": "horizontal", "ratio": ["0c", 1], "panes": [{"name": "a"}, {"name": "b"}]}
        error = _compile_error({"layout": layout})
        assert error.code == ErrorCode.RATIO_INVALID_VALUE

    def test_zero_weight_rejected(self) -> None:
        """Should reject a zero proportional weight."""
        layout = {"type": "horizontal", "ratio": [0, 1], "panes": [{"name": "a"}, {"name": "b"}]}
        error = _compile_error({"layout": layout})
        assert error.code == ErrorCode.RATIO_INVALID_VALUE
        assert error.path == "preset.layout.ratio[0]"

    def test_invalid_node(self) -> None:
        """Should reject nodes that are neither splits nor named terminals."""
        error = _compile_error({"layout": {"command": "ls"}})
        assert error.code == ErrorCode.LAYOUT_INVALID_NODE
        assert error.path == "preset.layout"

    def test_invalid_terminal_field(self) -> None:
        """Should reject a non-boolean focus flag."""
        error = _compile_error({"layout": {"name": "a", "focus": "yes"}})
        assert error.code == ErrorCode.TERMINAL_INVALID_FIELD
        assert error.path == "preset.layout.focus"

    def test_negative_delay(self) -> None:
        """Should reject negative delays."""
        error = _compile_error({"layout": {"name": "a", "delay": -5}})
        assert error.code == ErrorCode.TERMINAL_INVALID_FIELD

    def test_invalid_window_mode(self) -> None:
        """Should reject unknown window modes."""
        error = _compile_error({"windowMode": "elsewhere", "command": "ls"})
        assert error.code == ErrorCode.PRESET_INVALID_FIELD
        assert error.path == "preset.windowMode"


class TestCompilePreset:
    """Tests for compile_preset function."""

    def test_yaml_document(self) -> None:
        """Should parse and compile a YAML document."""
        document = """
name: Logs
layout:
  type: vertical
  ratio: [1, "10c"]
  panes:
    - name: tail
      command: tail -f app.log
    - name: shell
"""
        preset = compile_preset(document, "logs.yaml")
        assert preset.name == "Logs"
        assert isinstance(preset.layout, SplitPane)
        assert preset.layout.ratio == (Weight(1), FixedCells(10))

    def test_invalid_yaml(self) -> None:
        """Should raise PRESET_PARSE_ERROR for broken YAML."""
        with pytest.raises(CoreError) as exc_info:
            compile_preset("layout: [unclosed", "broken.yaml")
        assert exc_info.value.code == ErrorCode.PRESET_PARSE_ERROR
        assert exc_info.value.source == "broken.yaml"
