"""Domain models for coordinates, risk zones and hazards."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, time
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from ..config import settings
from ..errors import GeometryError


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_LEVEL_ORDER.index(self)


_RISK_LEVEL_ORDER = (RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL)


class Severity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = (Severity.MINOR, Severity.MODERATE, Severity.MAJOR, Severity.CRITICAL)


class ZoneCategory(str, Enum):
    TRAFFIC = "traffic"
    CONSTRUCTION = "construction"
    ACCIDENT_PRONE = "accident_prone"
    CRIME_HOTSPOT = "crime_hotspot"
    WEATHER_AFFECTED = "weather_affected"
    ROAD_CONDITION = "road_condition"
    ENVIRONMENTAL = "environmental"
    TEMPORARY = "temporary"
    OTHER = "other"


class HazardType(str, Enum):
    ACCIDENT = "accident"
    CONSTRUCTION = "construction"
    TRAFFIC_JAM = "traffic_jam"
    ROAD_CLOSURE = "road_closure"
    WEATHER_INCIDENT = "weather_incident"
    POLICE_ACTIVITY = "police_activity"
    EVENT_CONGESTION = "event_congestion"
    VEHICLE_BREAKDOWN = "vehicle_breakdown"
    DEBRIS = "debris"
    FLOODING = "flooding"
    OTHER = "other"


RISK_MULTIPLIER_MIN = 1.0
RISK_MULTIPLIER_MAX = 5.0


def ensure_aware(moment: datetime) -> datetime:
    """Attach the configured local timezone to naive timestamps."""

    if moment.tzinfo is None:
        return moment.replace(tzinfo=ZoneInfo(settings.local_timezone))
    return moment


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A WGS84 (latitude, longitude) pair in decimal degrees."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.latitude) and math.isfinite(self.longitude)):
            raise GeometryError(f"Coordinate must be finite, got ({self.latitude}, {self.longitude}).")
        if not -90.0 <= self.latitude <= 90.0:
            raise GeometryError(f"Latitude {self.latitude} outside [-90, 90].")
        if not -180.0 <= self.longitude <= 180.0:
            raise GeometryError(f"Longitude {self.longitude} outside [-180, 180].")

    def as_pair(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class TimeSlot:
    """Weekly recurring window; ``day_of_week`` follows ``datetime.weekday()`` (0 = Monday)."""

    day_of_week: int
    start: time
    end: time

    def __post_init__(self) -> None:
        if not 0 <= self.day_of_week <= 6:
            raise ValueError(f"day_of_week must be within 0..6, got {self.day_of_week}.")

    def contains(self, moment: datetime) -> bool:
        clock = moment.time().replace(tzinfo=None)
        if self.start <= self.end:
            return moment.weekday() == self.day_of_week and self.start <= clock <= self.end
        # Slot wraps past midnight into the following day.
        if moment.weekday() == self.day_of_week and clock >= self.start:
            return True
        return moment.weekday() == (self.day_of_week + 1) % 7 and clock <= self.end


@dataclass(frozen=True, slots=True)
class RiskZone:
    """A named polygonal area with elevated danger.

    ``ring`` is a closed ring of coordinates (first == last, at least four points).
    """

    name: str
    ring: tuple[Coordinate, ...]
    risk_level: RiskLevel
    risk_multiplier: float = 1.5
    category: ZoneCategory = ZoneCategory.OTHER
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    active: bool = True
    time_slots: tuple[TimeSlot, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if len(self.ring) < 4:
            raise GeometryError(f"Risk zone '{self.name}' ring needs at least 4 points, got {len(self.ring)}.")
        if self.ring[0] != self.ring[-1]:
            raise GeometryError(f"Risk zone '{self.name}' ring is not closed.")
        if not RISK_MULTIPLIER_MIN <= self.risk_multiplier <= RISK_MULTIPLIER_MAX:
            raise GeometryError(
                f"Risk zone '{self.name}' multiplier {self.risk_multiplier} outside "
                f"[{RISK_MULTIPLIER_MIN}, {RISK_MULTIPLIER_MAX}]."
            )
        if self.valid_from and self.valid_to and ensure_aware(self.valid_from) > ensure_aware(self.valid_to):
            raise ValueError(f"Risk zone '{self.name}' validity window ends before it starts.")

    def in_force(self, at_time: datetime) -> bool:
        if not self.active:
            return False
        at_time = ensure_aware(at_time)
        if self.valid_from is not None and at_time < ensure_aware(self.valid_from):
            return False
        if self.valid_to is not None and at_time > ensure_aware(self.valid_to):
            return False
        if self.time_slots:
            return any(slot.contains(at_time) for slot in self.time_slots)
        return True


@dataclass(frozen=True, slots=True)
class Hazard:
    """A point-located danger that influences everything within ``affected_radius_m``."""

    location: Coordinate
    severity: Severity
    hazard_type: HazardType = HazardType.OTHER
    affected_radius_m: float = 100.0
    expires_at: Optional[datetime] = None
    active: bool = True

    def __post_init__(self) -> None:
        if not math.isfinite(self.affected_radius_m) or self.affected_radius_m <= 0:
            raise GeometryError(f"Hazard radius must be positive, got {self.affected_radius_m}.")

    def in_force(self, at_time: datetime) -> bool:
        if not self.active:
            return False
        return self.expires_at is None or ensure_aware(self.expires_at) > ensure_aware(at_time)
