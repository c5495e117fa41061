"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="FIELDROUTE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Field Route Optimizer API"
    api_prefix: str = "/api"
    data_root: Path = Field(default=Path("data"), description="Root directory for run artifacts.")
    average_speed_kmh: float = Field(
        default=40.0,
        gt=0.0,
        description="Constant average speed used to estimate travel time between stops.",
    )
    two_opt_max_iterations: int = Field(default=100, ge=1)
    kmeans_max_iterations: int = Field(default=100, ge=1)
    kmeans_tolerance_degrees: float = Field(default=0.0001, gt=0.0)
    default_cluster_count: int = Field(default=5, ge=1)
    clustering_history_limit: int = Field(
        default=1000,
        ge=1,
        description="Most recent geotagged visits considered by a clustering run.",
    )
    clustering_random_seed: Optional[int] = Field(
        default=None,
        description="Seed for k-means initialisation. Unset means a fresh random seed per run.",
    )
    max_route_stops: int = Field(
        default=200,
        ge=1,
        description="Upper bound on visits accepted by a single optimization call.",
    )
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
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


settings = Settings()
