"""Routing request/response schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class RoutePreferencesOverride(BaseModel):
    """Per-request overrides applied on top of the stored preferences."""

    max_visits_per_day: Optional[int] = Field(None, ge=1)
    max_distance_per_day_km: Optional[float] = Field(None, ge=0)
    max_hours_per_day: Optional[float] = Field(None, gt=0)
    work_start_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    work_end_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    lunch_break_start: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    lunch_break_duration_minutes: Optional[int] = Field(None, ge=0)
    average_visit_duration_minutes: Optional[int] = Field(None, ge=0)
    travel_buffer_percentage: Optional[float] = Field(None, ge=1)
    return_to_start: Optional[bool] = None
    fuel_cost_per_km: Optional[float] = Field(None, ge=0)


class RouteOptimizationRequest(BaseModel):
    tenant_id: str
    salesman_id: str
    visit_ids: List[str] = Field(..., description="Visits to sequence for the day.")
    start_latitude: Optional[float] = Field(default=None, description="Falls back to the stored default start.")
    start_longitude: Optional[float] = None
    route_date: Optional[date] = Field(default=None, description="Defaults to today.")
    route_name: Optional[str] = None
    max_iterations: Optional[int] = Field(default=None, ge=1, description="Cap on 2-opt passes.")
    preferences: Optional[RoutePreferencesOverride] = None
    persist: bool = True
    persist_files: bool = Field(default=False, description="Also write summary.json/stops.csv artifacts.")


class RouteStopModel(BaseModel):
    sequence_number: int
    visit_id: str
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    latitude: float
    longitude: float
    distance_from_previous_km: float
    cumulative_distance_km: float
    estimated_arrival_time: str
    time_window_start: Optional[str] = None
    time_window_end: Optional[str] = None
    time_window_strict: Optional[bool] = None
    within_window: Optional[bool] = None


class RouteOptimizationResponse(BaseModel):
    route_id: Optional[str]
    tenant_id: str
    salesman_id: str
    route_date: date
    visit_sequence: List[str]
    total_visits: int
    total_distance_km: float
    estimated_travel_time_minutes: float
    estimated_fuel_cost: float
    route_start_time: str
    route_end_time: str
    optimization_time_ms: float
    excluded_count: int
    converged: bool
    constraint_violations: Dict[str, float]
    metadata: dict
    route_details: List[RouteStopModel]


class ActualMetrics(BaseModel):
    distance_km: Optional[float] = Field(default=None, gt=0)
    time_minutes: Optional[float] = Field(default=None, ge=0)


class RouteTransitionRequest(BaseModel):
    tenant_id: str


class RouteCompletionRequest(BaseModel):
    tenant_id: str
    actual: Optional[ActualMetrics] = None


class RouteVisitModel(BaseModel):
    visit_id: str
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    potential: Optional[str] = None


class RouteRecordModel(BaseModel):
    route_id: str
    tenant_id: str
    salesman_id: str
    route_name: str
    route_date: date
    algorithm_used: str
    status: str
    visit_sequence: List[str]
    total_visits: int
    total_distance_km: float
    estimated_travel_time_minutes: float
    estimated_fuel_cost: float
    route_start_time: str
    route_end_time: str
    constraints_applied: dict
    actual_distance_km: Optional[float] = None
    actual_time_minutes: Optional[float] = None
    efficiency_score: Optional[float] = None
    updated_at: Optional[datetime] = None


class RouteDetailsResponse(RouteRecordModel):
    visits: List[RouteVisitModel]


class RouteHistoryEntryModel(BaseModel):
    route_id: str
    event_type: str
    planned_distance_km: float
    actual_distance_km: float
    planned_time_minutes: float
    actual_time_minutes: Optional[float] = None
    efficiency_score: float
    time_saved_minutes: Optional[float] = None
    recorded_at: Optional[datetime] = None
