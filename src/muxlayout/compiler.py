"""Preset compiler: validates raw preset documents into immutable layouts."""

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import cast

import yaml

from muxlayout.config import BackendKind, WindowMode
from muxlayout.errors import CoreError, ErrorCode
from muxlayout.ratio import is_valid_ratio

UNNAMED_PRESET = "Unnamed preset"

# "40c" means 40 cells, fixed
_FIXED_CELLS_PATTERN = re.compile(r"^\s*(\d+)\s*c\s*$", re.IGNORECASE)


class Orientation(StrEnum):
    """Split orientation."""

    HORIZONTAL = "horizontal"  # side-by-side (left/right)
    VERTICAL = "vertical"  # stacked (top/bottom)


@dataclass(frozen=True)
class Weight:
    """A proportional share of a split."""

    weight: float


@dataclass(frozen=True)
class FixedCells:
    """An absolute size in terminal cells."""

    cells: int


WeightSpec = Weight | FixedCells


@dataclass(frozen=True)
class TerminalPane:
    """A leaf pane running an optional command."""

    name: str
    command: str | None = None
    cwd: str | None = None
    env: tuple[tuple[str, str], ...] = ()
    focus: bool = False
    delay: int | None = None  # milliseconds
    title: str | None = None
    ephemeral: bool = False
    close_on_error: bool = False


@dataclass(frozen=True)
class SplitPane:
    """An N-way split of a pane."""

    orientation: Orientation
    ratio: tuple[WeightSpec, ...]
    panes: tuple["LayoutNode", ...]


LayoutNode = TerminalPane | SplitPane


@dataclass(frozen=True)
class CompiledPreset:
    """A validated preset with defaults applied."""

    name: str
    source: str
    description: str | None = None
    backend: BackendKind | None = None
    window_mode: WindowMode | None = None
    layout: LayoutNode | None = None
    command: str | None = None


def _fail(code: ErrorCode, message: str, path: str, source: str, **details: object) -> CoreError:
    return CoreError("compile", code, message, path=path, source=source, details=details)


def _optional_str(raw: dict[str, object], key: str, path: str, source: str, code: ErrorCode) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise _fail(code, f"{key} must be a string", f"{path}.{key}", source, value=value)
    return value


def _optional_bool(raw: dict[str, object], keys: tuple[str, ...], path: str, source: str) -> bool:
    for key in keys:
        if key in raw and raw[key] is not None:
            value = raw[key]
            if not isinstance(value, bool):
                message = f"{key} must be true or false"
                raise _fail(ErrorCode.TERMINAL_INVALID_FIELD, message, f"{path}.{key}", source, value=value)
            return value
    return False


def _parse_weight_spec(value: object, path: str, source: str) -> WeightSpec:
    """Parse one ratio entry: a positive number, or "<N>c" for fixed cells."""
    if isinstance(value, int | float) and not isinstance(value, bool):
        if is_valid_ratio([value]):
            return Weight(weight=value)
    elif isinstance(value, str):
        match = _FIXED_CELLS_PATTERN.match(value)
        if match and int(match.group(1)) > 0:
            return FixedCells(cells=int(match.group(1)))
    raise _fail(
        ErrorCode.RATIO_INVALID_VALUE,
        "ratio entries must be positive numbers or fixed cell counts like '30c'",
        path,
        source,
        value=value,
    )


def _compile_terminal(raw: dict[str, object], path: str, source: str) -> TerminalPane:
    name = cast(str, raw["name"])
    command = _optional_str(raw, "command", path, source, ErrorCode.TERMINAL_INVALID_FIELD)
    cwd = _optional_str(raw, "cwd", path, source, ErrorCode.TERMINAL_INVALID_FIELD)
    title = _optional_str(raw, "title", path, source, ErrorCode.TERMINAL_INVALID_FIELD)

    env_raw = raw.get("env")
    env: list[tuple[str, str]] = []
    if env_raw is not None:
        if not isinstance(env_raw, dict):
            raise _fail(ErrorCode.TERMINAL_INVALID_FIELD, "env must be a mapping", f"{path}.env", source, value=env_raw)
        for key, value in env_raw.items():
            if isinstance(value, dict | list):
                raise _fail(
                    ErrorCode.TERMINAL_INVALID_FIELD,
                    f"env value for {key} must be a scalar",
                    f"{path}.env.{key}",
                    source,
                    value=value,
                )
            if value is None:
                value = ""
            elif isinstance(value, bool):
                value = "true" if value else "false"
            env.append((str(key), str(value)))

    delay_raw = raw.get("delay")
    delay: int | None = None
    if delay_raw is not None:
        if isinstance(delay_raw, bool) or not isinstance(delay_raw, int) or delay_raw < 0:
            raise _fail(
                ErrorCode.TERMINAL_INVALID_FIELD,
                "delay must be a non-negative number of milliseconds",
                f"{path}.delay",
                source,
                value=delay_raw,
            )
        delay = delay_raw

    return TerminalPane(
        name=name,
        command=command,
        cwd=cwd,
        env=tuple(env),
        focus=_optional_bool(raw, ("focus",), path, source),
        delay=delay,
        title=title,
        ephemeral=_optional_bool(raw, ("ephemeral",), path, source),
        close_on_error=_optional_bool(raw, ("closeOnError", "close_on_error"), path, source),
    )


def _compile_split(raw: dict[str, object], path: str, source: str) -> SplitPane:
    orientation_raw = raw.get("type")
    try:
        orientation = Orientation(orientation_raw)
    except ValueError:
        raise _fail(
            ErrorCode.LAYOUT_INVALID_ORIENTATION,
            "layout type must be 'horizontal' or 'vertical'",
            f"{path}.type",
            source,
            type=orientation_raw,
        ) from None

    panes_raw = raw.get("panes")
    if not isinstance(panes_raw, list) or not panes_raw:
        raise _fail(ErrorCode.LAYOUT_PANES_MISSING, "split is missing its panes list", f"{path}.panes", source)

    ratio_raw = raw.get("ratio")
    if not isinstance(ratio_raw, list) or not ratio_raw:
        raise _fail(ErrorCode.LAYOUT_RATIO_MISSING, "split is missing its ratio list", f"{path}.ratio", source)

    if len(ratio_raw) != len(panes_raw):
        raise _fail(
            ErrorCode.LAYOUT_RATIO_MISMATCH,
            "ratio and panes must have the same length",
            path,
            source,
            ratio_length=len(ratio_raw),
            panes_length=len(panes_raw),
        )

    ratio = tuple(_parse_weight_spec(value, f"{path}.ratio[{i}]", source) for i, value in enumerate(ratio_raw))
    panes = tuple(_compile_node(child, f"{path}.panes[{i}]", source) for i, child in enumerate(panes_raw))
    return SplitPane(orientation=orientation, ratio=ratio, panes=panes)


def _compile_node(raw: object, path: str, source: str) -> LayoutNode:
    if isinstance(raw, dict):
        if "panes" in raw or "type" in raw:
            return _compile_split(raw, path, source)
        if isinstance(raw.get("name"), str):
            return _compile_terminal(raw, path, source)
    message = "layout node must be a split or a named terminal"
    raise _fail(ErrorCode.LAYOUT_INVALID_NODE, message, path, source, node=raw)


def _parse_enum_field(
    raw: dict[str, object], keys: tuple[str, ...], enum_type: type[StrEnum], source: str
) -> StrEnum | None:
    for key in keys:
        value = raw.get(key)
        if value is None:
            continue
        try:
            return enum_type(value)
        except ValueError:
            allowed = ", ".join(member.value for member in enum_type)
            raise _fail(
                ErrorCode.PRESET_INVALID_FIELD,
                f"{key} must be one of: {allowed}",
                f"preset.{key}",
                source,
                value=value,
            ) from None
    return None


def compile_preset_from_value(value: object, source: str) -> CompiledPreset:
    """Validate an already-parsed preset mapping.

    Args:
        value: The raw preset (usually one entry of ``presets`` in a config file).
        source: Label used for error attribution.

    Returns:
        The compiled, immutable preset.

    Raises:
        CoreError: With kind "compile" and the path of the offending node.
    """
    if not isinstance(value, dict):
        raise _fail(ErrorCode.PRESET_INVALID_DOCUMENT, "preset must be a mapping", "preset", source)
    raw = cast(dict[str, object], value)

    if raw.get("layout") is not None and raw.get("command") is not None:
        raise _fail(
            ErrorCode.PRESET_LAYOUT_COMMAND_CONFLICT,
            "preset cannot define both layout and command",
            "preset",
            source,
        )

    name = _optional_str(raw, "name", "preset", source, ErrorCode.PRESET_INVALID_FIELD)
    if name is None or not name.strip():
        name = UNNAMED_PRESET

    layout = None
    if raw.get("layout") is not None:
        layout = _compile_node(raw["layout"], "preset.layout", source)

    return CompiledPreset(
        name=name,
        source=source,
        description=_optional_str(raw, "description", "preset", source, ErrorCode.PRESET_INVALID_FIELD),
        backend=cast(BackendKind | None, _parse_enum_field(raw, ("backend",), BackendKind, source)),
        window_mode=cast(
            WindowMode | None, _parse_enum_field(raw, ("windowMode", "window_mode"), WindowMode, source)
        ),
        layout=layout,
        command=_optional_str(raw, "command", "preset", source, ErrorCode.PRESET_INVALID_FIELD),
    )


def compile_preset(document: str, source: str) -> CompiledPreset:
    """Parse a YAML preset document and compile it.

    Args:
        document: YAML text of a single preset.
        source: Label used for error attribution.

    Returns:
        The compiled preset.

    Raises:
        CoreError: PRESET_PARSE_ERROR for invalid YAML, or any compile error.
    """
    try:
        parsed = yaml.safe_load(document)
    except yaml.YAMLError as e:
        raise CoreError(
            "compile",
            ErrorCode.PRESET_PARSE_ERROR,
            f"Failed to parse preset YAML: {e}",
            source=source,
            details={"reason": str(e)},
        ) from e
    return compile_preset_from_value(parsed, source)
