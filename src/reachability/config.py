"""Application configuration and settings management."""

from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="REACH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Reachability API"
    api_prefix: str = "/api"
    routing_base_url: Optional[str] = Field(
        default=None,
        description="GraphHopper route endpoint (e.g., https://ghroute.example.org/route). Empty uses beeline estimates.",
    )
    routing_profile: Literal["foot", "bike", "car", "pt"] = Field(
        default="foot",
        description="Default routing profile / mode.",
    )
    routing_timeout_seconds: float = Field(default=30.0, gt=0.0)
    routing_max_retries: int = Field(default=3, ge=0)
    routing_backoff_seconds: float = Field(default=0.5, ge=0.0)
    route_batch_size: int = Field(default=50, ge=1, description="Pairs per routing batch.")
    route_max_concurrency: int = Field(default=8, ge=1, description="Concurrent provider requests.")
    overpass_servers: tuple[str, ...] = Field(
        default=(
            "https://overpass-api.de/api/",
            "https://overpass.kumi.systems/api/",
            "https://maps.mail.ru/osm/tools/overpass/api/",
            "https://overpass.openstreetmap.ru/api/",
        ),
        description="Overpass API servers, tried in order.",
    )
    overpass_timeout_seconds: float = Field(default=30.0, gt=0.0)
    walking_speed_kmh: float = Field(default=4.8, gt=0.0)
    cycling_speed_kmh: float = Field(default=15.0, gt=0.0)
    transit_speed_kmh: float = Field(default=20.0, gt=0.0)
    driving_speed_kmh: float = Field(default=40.0, gt=0.0)
    default_max_cutoff: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Cost above which reachable points land in the overflow bucket.",
    )
    aggregation_chunk_size: int = Field(default=2000, ge=1)
    segment_aggregation_method: Literal["simple", "lazy_overlap"] = Field(
        default="simple",
        description="How route polylines are merged into shared segments for export.",
    )
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("frontend_allowed_origins", "overpass_servers", mode="before")
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

    def speed_kmh_for(self, mode: str) -> float:
        """Average travel speed used by the beeline estimator."""
        match mode:
            case "bike":
                return self.cycling_speed_kmh
            case "pt":
                return self.transit_speed_kmh
            case "car":
                return self.driving_speed_kmh
            case _:
                return self.walking_speed_kmh


settings = Settings()
