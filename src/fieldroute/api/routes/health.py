"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings
from ...db.supabase import get_supabase_client

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/config", status_code=status.HTTP_200_OK)
def health_config() -> dict:
    """Report the effective optimizer settings and whether the database is configured."""
    return {
        "database_configured": get_supabase_client() is not None,
        "average_speed_kmh": settings.average_speed_kmh,
        "two_opt_max_iterations": settings.two_opt_max_iterations,
        "kmeans_max_iterations": settings.kmeans_max_iterations,
        "max_route_stops": settings.max_route_stops,
    }
