"""Routing request/response schemas."""

from __future__ import annotations

from datetime import datetime, time
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ..models.domain import HazardType, RiskLevel, Severity, ZoneCategory
from ..services.routing.models import RouteType


class CoordinateModel(BaseModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


class TimeSlotModel(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Monday ... 6 = Sunday")
    start: time
    end: time


class RiskZoneModel(BaseModel):
    name: str
    coordinates: List[tuple[float, float]] = Field(
        ...,
        description="Polygon ring as [lat, lon] pairs. An open ring is closed automatically.",
    )
    risk_level: RiskLevel = RiskLevel.MEDIUM
    risk_multiplier: float = Field(default=1.5, ge=1.0, le=5.0)
    category: ZoneCategory = ZoneCategory.OTHER
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    active: bool = True
    time_slots: List[TimeSlotModel] = Field(default_factory=list)

    @field_validator("coordinates")
    @classmethod
    def validate_ring(cls, value: List[tuple[float, float]]) -> List[tuple[float, float]]:
        if len(value) < 3:
            raise ValueError("zone polygon needs at least 3 coordinates")
        if value[0] != value[-1]:
            value = [*value, value[0]]
        return value


class HazardModel(BaseModel):
    location: CoordinateModel
    severity: Severity = Severity.MODERATE
    type: HazardType = HazardType.OTHER
    affected_radius_m: float = Field(default=100.0, gt=0.0)
    expires_at: Optional[datetime] = None
    active: bool = True


class RouteOptionsModel(BaseModel):
    avoid_highways: bool = False
    max_detour_percent: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Reject safest routes longer than fastest by more than this percentage.",
    )
    safety_priority: int = Field(default=50, ge=0, le=100)


class RouteRequest(BaseModel):
    origin: CoordinateModel
    destination: CoordinateModel
    route_type: RouteType = RouteType.BALANCED
    zones: List[RiskZoneModel] = Field(default_factory=list)
    hazards: List[HazardModel] = Field(default_factory=list)
    at_time: Optional[datetime] = Field(default=None, description="Departure time; defaults to now.")
    options: RouteOptionsModel = Field(default_factory=RouteOptionsModel)


class RouteResultModel(BaseModel):
    route_type: RouteType
    coordinates: List[tuple[float, float]]
    distance_m: float = Field(..., ge=0.0)
    duration_s: float = Field(..., ge=0.0)
    safety_score: int = Field(..., ge=0, le=100)
    avoided_zones_count: int = Field(..., ge=0)
    fallback: bool = False
    alternatives: List["RouteResultModel"] = Field(default_factory=list)


class RouteAnalysisModel(BaseModel):
    time_saved_s: float
    distance_difference_m: float
    safety_improvement: int
    recommendation: RouteType


class RouteComparisonResponse(BaseModel):
    fastest: RouteResultModel
    safest: RouteResultModel
    balanced: RouteResultModel
    analysis: RouteAnalysisModel
