"""Parser for ``wezterm cli list --format json`` output."""

import json
import logging
from dataclasses import dataclass, field

from muxlayout.split_size import PaneSize

logger = logging.getLogger(__name__)


@dataclass
class WeztermPane:
    """A pane as reported by wezterm."""

    pane_id: str
    is_active: bool = False
    size: PaneSize | None = None


@dataclass
class WeztermTab:
    """A tab and its panes."""

    tab_id: str
    is_active: bool = False
    panes: list[WeztermPane] = field(default_factory=list)


@dataclass
class WeztermWindow:
    """A window and its tabs."""

    window_id: str
    is_active: bool = False
    workspace: str | None = None
    tabs: list[WeztermTab] = field(default_factory=list)

    def pane_ids(self) -> list[str]:
        return [pane.pane_id for tab in self.tabs for pane in tab.panes]


@dataclass
class WeztermListResult:
    """Windows reported by one ``wezterm cli list`` call."""

    windows: list[WeztermWindow] = field(default_factory=list)

    def find_pane(self, pane_id: str) -> tuple[WeztermWindow, WeztermTab, WeztermPane] | None:
        for window in self.windows:
            for tab in window.tabs:
                for pane in tab.panes:
                    if pane.pane_id == pane_id:
                        return window, tab, pane
        return None

    def find_window(self, window_id: str) -> WeztermWindow | None:
        return next((window for window in self.windows if window.window_id == window_id), None)

    def in_workspace(self, workspace: str | None) -> "WeztermListResult":
        """Restrict to one workspace; no-op when workspace is None."""
        if workspace is None:
            return self
        return WeztermListResult([window for window in self.windows if window.workspace == workspace])


def _as_id(value: object) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value:
        return value
    return None


def _parse_size(value: object) -> PaneSize | None:
    if not isinstance(value, dict):
        return None
    cols, rows = value.get("cols"), value.get("rows")
    if isinstance(cols, int) and isinstance(rows, int) and cols > 0 and rows > 0:
        return PaneSize(cols=cols, rows=rows)
    return None


def _parse_flat(entries: list[object]) -> WeztermListResult:
    """Group the flat one-entry-per-pane format into windows and tabs."""
    windows: dict[str, WeztermWindow] = {}
    tabs: dict[tuple[str, str], WeztermTab] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        window_id = _as_id(entry.get("window_id"))
        tab_id = _as_id(entry.get("tab_id"))
        pane_id = _as_id(entry.get("pane_id"))
        if window_id is None or tab_id is None or pane_id is None:
            logger.debug("Skipping malformed wezterm list entry: %r", entry)
            continue

        is_active = entry.get("is_active") is True
        workspace = entry.get("workspace")
        window = windows.get(window_id)
        if window is None:
            window = WeztermWindow(window_id=window_id, workspace=workspace if isinstance(workspace, str) else None)
            windows[window_id] = window
        tab = tabs.get((window_id, tab_id))
        if tab is None:
            tab = WeztermTab(tab_id=tab_id)
            tabs[(window_id, tab_id)] = tab
            window.tabs.append(tab)

        tab.panes.append(WeztermPane(pane_id=pane_id, is_active=is_active, size=_parse_size(entry.get("size"))))
        if is_active:
            tab.is_active = True
            window.is_active = True
    return WeztermListResult(list(windows.values()))


def _parse_nested(data: dict[str, object]) -> WeztermListResult:
    """Parse the ``{"windows": [{"tabs": [{"panes": [...]}]}]}`` format."""
    result = WeztermListResult()
    windows = data.get("windows")
    if not isinstance(windows, list):
        return result
    for raw_window in windows:
        if not isinstance(raw_window, dict):
            continue
        window_id = _as_id(raw_window.get("window_id", raw_window.get("id")))
        if window_id is None:
            continue
        workspace = raw_window.get("workspace")
        window = WeztermWindow(
            window_id=window_id,
            is_active=raw_window.get("is_active") is True,
            workspace=workspace if isinstance(workspace, str) else None,
        )
        for raw_tab in raw_window.get("tabs") or []:
            if not isinstance(raw_tab, dict):
                continue
            tab_id = _as_id(raw_tab.get("tab_id", raw_tab.get("id")))
            if tab_id is None:
                continue
            tab = WeztermTab(tab_id=tab_id, is_active=raw_tab.get("is_active") is True)
            for raw_pane in raw_tab.get("panes") or []:
                if not isinstance(raw_pane, dict):
                    continue
                pane_id = _as_id(raw_pane.get("pane_id", raw_pane.get("id")))
                if pane_id is None:
                    continue
                tab.panes.append(
                    WeztermPane(
                        pane_id=pane_id,
                        is_active=raw_pane.get("is_active") is True,
                        size=_parse_size(raw_pane.get("size")),
                    )
                )
            window.tabs.append(tab)
        result.windows.append(window)
    return result


def parse_wezterm_list(output: str) -> WeztermListResult | None:
    """Parse wezterm list JSON in either the flat or the nested format.

    Args:
        output: stdout of ``wezterm cli list --format json``.

    Returns:
        Parsed windows, or None if the output is not valid JSON of a known shape.
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError:
        return None
    if isinstance(data, list):
        return _parse_flat(data)
    if isinstance(data, dict):
        return _parse_nested(data)
    return None
