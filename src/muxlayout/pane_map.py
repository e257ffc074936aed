"""Virtual-to-real pane ID mapping owned by one plan execution."""

import logging

from muxlayout.errors import CoreError, ErrorCode

logger = logging.getLogger(__name__)


def _ancestors(virtual_id: str) -> list[str]:
    """Ancestor IDs, nearest first: root.0.1 -> [root.0, root]."""
    parts = virtual_id.split(".")
    return [".".join(parts[:end]) for end in range(len(parts) - 1, 0, -1)]


class PaneMap:
    """Mapping of virtual pane IDs to real multiplexer pane IDs.

    Lookups fall back to the nearest registered ancestor, then to any
    registered descendant. Fallback hits are cached.
    """

    def __init__(self) -> None:
        self._panes: dict[str, str] = {}

    def as_dict(self) -> dict[str, str]:
        """Copy of the current mapping."""
        return dict(self._panes)

    def register(self, virtual_id: str, real_id: str) -> None:
        """Map a virtual pane ID to a real one."""
        self._panes[virtual_id] = real_id
        logger.debug("pane %s -> %s", virtual_id, real_id)

    def register_with_ancestors(self, virtual_id: str, real_id: str) -> None:
        """Map a virtual ID and any of its still-unmapped ancestors."""
        self.register(virtual_id, real_id)
        for ancestor in _ancestors(virtual_id):
            if ancestor not in self._panes:
                self._panes[ancestor] = real_id

    def resolve(self, virtual_id: str) -> str | None:
        """Find the real pane for a virtual ID.

        Args:
            virtual_id: Virtual pane ID such as ``root.0.1``.

        Returns:
            The real pane ID, or None if nothing related is registered.
        """
        direct = self._panes.get(virtual_id)
        if direct is not None:
            return direct

        for ancestor in _ancestors(virtual_id):
            hit = self._panes.get(ancestor)
            if hit is not None:
                self._panes[virtual_id] = hit
                return hit

        prefix = f"{virtual_id}."
        for key, value in self._panes.items():
            if key.startswith(prefix):
                self._panes[virtual_id] = value
                return value

        return None

    def require(self, virtual_id: str, step_id: str | None = None) -> str:
        """Resolve a virtual ID or fail.

        Raises:
            CoreError: INVALID_PANE naming the step that needed the pane.
        """
        real_id = self.resolve(virtual_id)
        if real_id is None:
            path = step_id or virtual_id
            raise CoreError(
                "execution",
                ErrorCode.INVALID_PANE,
                f"Unknown pane {virtual_id} referenced by {path}",
                path=path,
                details={"virtual_pane_id": virtual_id, "known_panes": sorted(self._panes)},
            )
        return real_id
