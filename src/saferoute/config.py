"""Application configuration and settings management."""

from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="SAFEROUTE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "SafeRoute Routing API"
    api_prefix: str = "/api"
    local_timezone: str = Field(
        default="UTC",
        description="IANA timezone used for the default request time and for naive timestamps.",
    )
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Grid construction
    grid_resolution_cells: int = Field(
        default=200,
        ge=16,
        le=2048,
        description="Number of cells across the longer side of the padded bounding box.",
    )
    grid_padding_ratio: float = Field(
        default=0.35,
        gt=0.0,
        le=2.0,
        description="Bounding box padding as a fraction of the origin/destination degree span.",
    )
    grid_min_padding_degrees: float = Field(default=0.005, ge=0.0)
    grid_min_endpoint_separation_cells: int = Field(default=8, ge=2)

    # Search
    max_node_expansions: Optional[int] = Field(
        default=None,
        ge=1,
        description="Hard ceiling on A* node expansions. Defaults to the grid cell count.",
    )

    # Result cache
    route_cache_ttl_seconds: int = Field(default=300, ge=1)
    route_cache_max_entries: int = Field(default=256, ge=1)

    # Balanced route selection
    balanced_min_safety_score: int = Field(default=70, ge=0, le=100)
    balanced_max_detour_percent: float = Field(default=30.0, ge=0.0)

    # Safety scoring
    safety_score_scale: float = Field(
        default=20.0,
        gt=0.0,
        description="Score points deducted per unit of raw risk penalty.",
    )

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    @field_validator("local_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{value}'.") from exc
        return value


settings = Settings()
