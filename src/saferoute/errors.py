"""Error taxonomy for the routing core.

Every error derives from ``ValueError`` so the API layer can report them as
input validation failures without knowing the concrete type.
"""

from __future__ import annotations


class SafeRouteError(ValueError):
    """Base class for routing core errors."""


class GeometryError(SafeRouteError):
    """Malformed coordinate, ring or line input."""


class OutOfBoundsError(SafeRouteError):
    """A coordinate or grid index falls outside the computed grid."""


class NoPathFoundError(SafeRouteError):
    """The search frontier emptied (or hit its ceiling) before the goal was reached."""

    def __init__(self, message: str, *, expanded: int = 0) -> None:
        super().__init__(message)
        self.expanded = expanded


class UpstreamTimeoutError(SafeRouteError):
    """An external dependency did not answer in time."""
