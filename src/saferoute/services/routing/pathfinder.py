"""A* search over a SpatialGrid with hard obstacles and time-weighted edge costs."""

from __future__ import annotations

import heapq
import logging
import math
from dataclasses import dataclass
from typing import AbstractSet, Sequence

from ...config import settings
from ...errors import NoPathFoundError, OutOfBoundsError
from .grid import GridCell, SpatialGrid
from .risk import DAY_WEIGHTS, CostSurface, TimeOfDayWeights

logger = logging.getLogger(__name__)

SQRT2 = math.sqrt(2.0)


@dataclass(frozen=True, slots=True)
class SearchResult:
    cells: tuple[GridCell, ...]
    cost: float
    expanded: int


def heuristic(cell: GridCell, goal: GridCell) -> float:
    """Euclidean grid distance; never exceeds the cost of any remaining path."""

    return math.hypot(goal.x - cell.x, goal.y - cell.y)


def step_cost(a: GridCell, b: GridCell) -> float:
    return SQRT2 if a.x != b.x and a.y != b.y else 1.0


def edge_cost(
    a: GridCell,
    b: GridCell,
    *,
    surface: CostSurface | None = None,
    weights: TimeOfDayWeights = DAY_WEIGHTS,
    risk_weight: float = 0.0,
) -> float:
    """Cost of stepping from ``a`` into ``b``. All factors are >= 1."""

    cost = step_cost(a, b) * weights.uniform
    if surface is not None:
        if b in surface.high_traffic:
            cost *= weights.high_traffic
        penalty = surface.penalties.get(b)
        if penalty:
            cost *= 1.0 + risk_weight * penalty
    return cost


def find_path(
    grid: SpatialGrid,
    start: GridCell,
    goal: GridCell,
    obstacles: AbstractSet[GridCell] = frozenset(),
    *,
    surface: CostSurface | None = None,
    weights: TimeOfDayWeights = DAY_WEIGHTS,
    risk_weight: float = 0.0,
    max_expansions: int | None = None,
) -> SearchResult:
    """Lowest-cost cell path from ``start`` to ``goal``.

    The frontier is ordered by ``f = g + h``, ties going to the lower ``h`` and
    then to the lower (x, y) index, so identical inputs give identical paths.
    Edges into obstacle cells are never taken. Raises ``NoPathFoundError`` when
    the frontier empties or ``max_expansions`` nodes have been expanded.
    """

    if not grid.contains(start) or not grid.contains(goal):
        raise OutOfBoundsError(f"Search endpoints {tuple(start)} -> {tuple(goal)} outside the grid.")
    if start == goal:
        return SearchResult(cells=(start,), cost=0.0, expanded=0)
    if goal in obstacles:
        raise NoPathFoundError(f"Goal cell {tuple(goal)} is an obstacle.")

    limit = max_expansions or settings.max_node_expansions or grid.cell_count
    h_start = heuristic(start, goal)
    frontier: list[tuple[float, float, int, int]] = [(h_start, h_start, start.x, start.y)]
    g_scores: dict[GridCell, float] = {start: 0.0}
    came_from: dict[GridCell, GridCell] = {}
    closed: set[GridCell] = set()
    expanded = 0

    while frontier:
        _, _, x, y = heapq.heappop(frontier)
        current = GridCell(x, y)
        if current in closed:
            continue
        closed.add(current)
        expanded += 1

        if current == goal:
            cells = _reconstruct(came_from, current)
            logger.debug(f"A* reached goal after {expanded} expansions, {len(cells)} cells")
            return SearchResult(cells=cells, cost=g_scores[current], expanded=expanded)

        if expanded >= limit:
            raise NoPathFoundError(f"Search stopped after {expanded} expansions.", expanded=expanded)

        current_g = g_scores[current]
        for neighbor in sorted(grid.neighbors(current)):
            if neighbor in closed or neighbor in obstacles:
                continue
            tentative = current_g + edge_cost(
                current, neighbor, surface=surface, weights=weights, risk_weight=risk_weight
            )
            if tentative < g_scores.get(neighbor, math.inf):
                g_scores[neighbor] = tentative
                came_from[neighbor] = current
                h = heuristic(neighbor, goal)
                heapq.heappush(frontier, (tentative + h, h, neighbor.x, neighbor.y))

    raise NoPathFoundError(f"Frontier exhausted after {expanded} expansions.", expanded=expanded)


def _reconstruct(came_from: dict[GridCell, GridCell], current: GridCell) -> tuple[GridCell, ...]:
    cells = [current]
    while current in came_from:
        current = came_from[current]
        cells.append(current)
    cells.reverse()
    return tuple(cells)


def smooth_path(
    grid: SpatialGrid,
    cells: Sequence[GridCell],
    obstacles: AbstractSet[GridCell] = frozenset(),
    surface: CostSurface | None = None,
    *,
    start_point: tuple[float, float] | None = None,
    end_point: tuple[float, float] | None = None,
) -> list[int]:
    """Indices of ``cells`` to keep after string-pulling.

    A shortcut between two kept points is taken only if every cell it touches
    is on the grid path or is free (not an obstacle, no soft penalty, not
    high-traffic). ``start_point``/``end_point`` replace the first/last cell
    centres in continuous grid space.
    """

    count = len(cells)
    if count <= 2:
        return list(range(count))

    positions: list[tuple[float, float]] = [(float(cell.x), float(cell.y)) for cell in cells]
    if start_point is not None:
        positions[0] = start_point
    if end_point is not None:
        positions[-1] = end_point
    on_path = set(cells)

    def clear(i: int, j: int) -> bool:
        for cell in grid.cells_crossed(positions[i], positions[j]):
            if cell in on_path:
                continue
            if cell in obstacles:
                return False
            if surface is not None and not surface.is_free(cell):
                return False
        return True

    kept = [0]
    anchor = 0
    index = 1
    while index < count - 1:
        if clear(anchor, index + 1):
            index += 1
        else:
            kept.append(index)
            anchor = index
            index = anchor + 1
    kept.append(count - 1)
    return kept
