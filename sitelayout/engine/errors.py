"""Exception taxonomy for the placement engine.

Only setup problems (unknown ids, malformed terrain) are raised to callers.
``OutOfBoundsPlacement`` is used inside the placement pipeline and never
escapes it; a rejected gesture simply resolves to "no commit".
"""

from __future__ import annotations


class SiteLayoutError(Exception):
    """Base class for all sitelayout errors."""


class NotFoundError(SiteLayoutError, KeyError):
    """Unknown template or element id."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class InvalidTerrainError(SiteLayoutError, ValueError):
    """Terrain dimensions, resolution or point layout are malformed."""


class OutOfBoundsError(InvalidTerrainError):
    """Elevation sampled on a terrain with non-positive dimensions."""


class OutOfBoundsPlacement(SiteLayoutError):
    """A footprint with zero overlap with the terrain extent."""


class PersistenceUnavailable(SiteLayoutError):
    """The document store is missing or failing; edits stay in memory."""


class InvalidTransitionError(SiteLayoutError):
    """A scene state transition that is not allowed from the current state."""
