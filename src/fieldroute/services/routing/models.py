"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from ...models.domain import Location


@dataclass(slots=True)
class ImprovementResult:
    route: List[Location]
    initial_distance_km: float
    final_distance_km: float
    iterations: int
    converged: bool


@dataclass(slots=True)
class StopMetrics:
    location_id: str
    sequence: int
    distance_from_prev_km: float
    cumulative_distance_km: float
    arrival_minutes: float
    arrival_time: str
    within_window: Optional[bool] = None


@dataclass(slots=True)
class RouteMetrics:
    total_distance_km: float
    estimated_travel_time_minutes: float
    estimated_fuel_cost: float
    start_time: str
    end_time: str
    end_minutes: float
    stops: List[StopMetrics]
    constraint_violations: dict[str, float] = field(default_factory=dict)


@dataclass(slots=True)
class RouteStopDetail:
    sequence_number: int
    visit_id: str
    customer_id: Optional[str]
    customer_name: Optional[str]
    latitude: float
    longitude: float
    distance_from_previous_km: float
    cumulative_distance_km: float
    estimated_arrival_time: str
    time_window_start: Optional[str] = None
    time_window_end: Optional[str] = None
    time_window_strict: Optional[bool] = None
    within_window: Optional[bool] = None


@dataclass(slots=True)
class RouteResult:
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
    initial_distance_km: float
    two_opt_iterations: int
    converged: bool
    excluded_count: int
    excluded_visit_ids: List[str]
    route_details: List[RouteStopDetail]
    constraint_violations: dict[str, float]
    metadata: dict = field(default_factory=dict)
