"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ...models.domain import Coordinate


class RouteType(str, Enum):
    FASTEST = "fastest"
    SAFEST = "safest"
    BALANCED = "balanced"


@dataclass(frozen=True, slots=True)
class RouteOptions:
    avoid_highways: bool = False
    max_detour_percent: Optional[float] = None
    safety_priority: int = 50

    def __post_init__(self) -> None:
        if not 0 <= self.safety_priority <= 100:
            raise ValueError(f"safety_priority must be within 0..100, got {self.safety_priority}")
        if self.max_detour_percent is not None and self.max_detour_percent < 0:
            raise ValueError("max_detour_percent must be >= 0")


@dataclass(frozen=True, slots=True)
class RouteResult:
    route_type: RouteType
    path: tuple[Coordinate, ...]
    distance_m: float
    duration_s: float
    safety_score: int
    avoided_count: int
    fallback: bool = False
    alternatives: tuple["RouteResult", ...] = ()


@dataclass(frozen=True, slots=True)
class RouteComparison:
    fastest: RouteResult
    safest: RouteResult
    balanced: RouteResult
    time_saved_s: float
    distance_difference_m: float
    safety_improvement: int
    recommendation: RouteType
