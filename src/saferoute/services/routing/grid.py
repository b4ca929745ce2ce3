"""Uniform cell grid spanning an origin/destination bounding box."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import NamedTuple

from ...config import settings
from ...errors import OutOfBoundsError
from ...models.domain import Coordinate

logger = logging.getLogger(__name__)

# Tolerance used when deciding whether a segment touches a cell boundary.
_EDGE_EPSILON = 1e-9

_NEIGHBOR_OFFSETS = (
    (-1, 0), (1, 0), (0, -1), (0, 1),
    (-1, -1), (-1, 1), (1, -1), (1, 1),
)


class GridCell(NamedTuple):
    """Integer (x, y) index; x runs along longitude, y along latitude."""

    x: int
    y: int


@dataclass(frozen=True, slots=True)
class SpatialGrid:
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float
    scale: float  # cells per degree
    width: int
    height: int

    @classmethod
    def from_endpoints(
        cls,
        origin: Coordinate,
        destination: Coordinate,
        padding_degrees: float | None = None,
        *,
        resolution: int | None = None,
    ) -> "SpatialGrid":
        """Build a grid around both endpoints.

        Without an explicit ``padding_degrees`` the padding grows with the
        straight-line span so long routes keep room to detour, with a fixed
        floor for short routes. The floor is dropped when it would squeeze the
        endpoints closer than the configured minimum separation.
        """

        resolution = resolution or settings.grid_resolution_cells
        span = max(
            abs(origin.latitude - destination.latitude),
            abs(origin.longitude - destination.longitude),
        )
        if span == 0:
            raise OutOfBoundsError("Origin and destination are identical; no grid can separate them.")

        if padding_degrees is not None:
            if padding_degrees < 0:
                raise ValueError("padding_degrees must be >= 0")
            grid = cls._build(origin, destination, padding_degrees, resolution)
            if grid.to_cell(origin) == grid.to_cell(destination):
                raise OutOfBoundsError("Origin and destination map to the same grid cell.")
            return grid

        proportional = settings.grid_padding_ratio * span
        grid = cls._build(origin, destination, max(proportional, settings.grid_min_padding_degrees), resolution)
        if span * grid.scale < settings.grid_min_endpoint_separation_cells:
            grid = cls._build(origin, destination, proportional, resolution)
        logger.debug(
            f"Grid {grid.width}x{grid.height} at {grid.scale:.1f} cells/deg "
            f"for span {span:.5f} deg"
        )
        return grid

    @classmethod
    def _build(
        cls,
        origin: Coordinate,
        destination: Coordinate,
        padding: float,
        resolution: int,
    ) -> "SpatialGrid":
        min_lon = max(-180.0, min(origin.longitude, destination.longitude) - padding)
        max_lon = min(180.0, max(origin.longitude, destination.longitude) + padding)
        min_lat = max(-90.0, min(origin.latitude, destination.latitude) - padding)
        max_lat = min(90.0, max(origin.latitude, destination.latitude) + padding)
        extent = max(max_lon - min_lon, max_lat - min_lat)
        scale = resolution / extent
        return cls(
            min_lon=min_lon,
            min_lat=min_lat,
            max_lon=max_lon,
            max_lat=max_lat,
            scale=scale,
            width=_round_half_up((max_lon - min_lon) * scale) + 1,
            height=_round_half_up((max_lat - min_lat) * scale) + 1,
        )

    @property
    def cell_count(self) -> int:
        return self.width * self.height

    def contains(self, cell: GridCell) -> bool:
        return 0 <= cell.x < self.width and 0 <= cell.y < self.height

    def to_grid_space(self, coord: Coordinate) -> tuple[float, float]:
        """Continuous grid position of ``coord``; cell centres sit on integers."""

        return (
            (coord.longitude - self.min_lon) * self.scale,
            (coord.latitude - self.min_lat) * self.scale,
        )

    def to_cell(self, coord: Coordinate) -> GridCell:
        fx, fy = self.to_grid_space(coord)
        cell = GridCell(_round_half_up(fx), _round_half_up(fy))
        if not self.contains(cell):
            raise OutOfBoundsError(
                f"Coordinate ({coord.latitude}, {coord.longitude}) falls outside the grid."
            )
        return cell

    def to_coord(self, cell: GridCell) -> Coordinate:
        if not self.contains(cell):
            raise OutOfBoundsError(f"Cell {tuple(cell)} outside {self.width}x{self.height} grid.")
        longitude = min(self.max_lon, self.min_lon + cell.x / self.scale)
        latitude = min(self.max_lat, self.min_lat + cell.y / self.scale)
        return Coordinate(latitude, longitude)

    def neighbors(self, cell: GridCell) -> set[GridCell]:
        """The up-to-eight adjacent cells that lie inside the grid."""

        candidates = (GridCell(cell.x + dx, cell.y + dy) for dx, dy in _NEIGHBOR_OFFSETS)
        return {candidate for candidate in candidates if self.contains(candidate)}

    def index_range(self, min_lon: float, min_lat: float, max_lon: float, max_lat: float) -> tuple[range, range]:
        """Columns and rows whose cells may overlap the given bounds, clipped to the grid."""

        x_lo = max(0, math.floor((min_lon - self.min_lon) * self.scale - 0.5))
        x_hi = min(self.width - 1, math.ceil((max_lon - self.min_lon) * self.scale + 0.5))
        y_lo = max(0, math.floor((min_lat - self.min_lat) * self.scale - 0.5))
        y_hi = min(self.height - 1, math.ceil((max_lat - self.min_lat) * self.scale + 0.5))
        return range(x_lo, x_hi + 1), range(y_lo, y_hi + 1)

    def cells_crossed(self, start: tuple[float, float], end: tuple[float, float]) -> set[GridCell]:
        """Every cell whose closed square the segment ``start``-``end`` touches.

        Positions are continuous grid coordinates (see ``to_grid_space``).
        Touching a shared edge or corner includes all cells meeting there.
        """

        (x0, y0), (x1, y1) = start, end
        cells: set[GridCell] = set()
        col_lo = math.ceil(min(x0, x1) - 0.5 - _EDGE_EPSILON)
        col_hi = math.floor(max(x0, x1) + 0.5 + _EDGE_EPSILON)
        for column in range(col_lo, col_hi + 1):
            strip_lo = max(min(x0, x1), column - 0.5)
            strip_hi = min(max(x0, x1), column + 0.5)
            if x0 == x1:
                y_lo, y_hi = min(y0, y1), max(y0, y1)
            else:
                slope = (y1 - y0) / (x1 - x0)
                ya = y0 + (strip_lo - x0) * slope
                yb = y0 + (strip_hi - x0) * slope
                y_lo, y_hi = min(ya, yb), max(ya, yb)
            row_lo = math.ceil(y_lo - 0.5 - _EDGE_EPSILON)
            row_hi = math.floor(y_hi + 0.5 + _EDGE_EPSILON)
            for row in range(row_lo, row_hi + 1):
                cell = GridCell(column, row)
                if self.contains(cell):
                    cells.add(cell)
        return cells


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)
