"""Distance, timing and cost metrics for a final route sequence."""

from __future__ import annotations

from typing import Sequence

from ...config import settings
from ...models.domain import Location, RoutePreferences, format_time, parse_time
from ..geospatial import DistanceMatrix
from .models import RouteMetrics, StopMetrics


def travel_minutes(distance_km: float, preferences: RoutePreferences, speed_kmh: float | None = None) -> float:
    speed = speed_kmh or settings.average_speed_kmh
    return (distance_km / speed) * 60 * preferences.travel_buffer_percentage


def calculate_route_metrics(
    route: Sequence[Location],
    matrix: DistanceMatrix,
    preferences: RoutePreferences,
    *,
    speed_kmh: float | None = None,
) -> RouteMetrics:
    """Walk the route from the start of the workday and accumulate metrics.

    Travel time assumes a constant average speed scaled by the travel buffer.
    Every visit adds the average visit duration after arrival. Whenever the
    clock lands inside the lunch break it jumps to the end of the break.
    """

    work_start = parse_time(preferences.work_start_time)
    lunch_start = parse_time(preferences.lunch_break_start)
    lunch_end = lunch_start + preferences.lunch_break_duration_minutes

    clock = float(work_start)
    cumulative = 0.0
    travel_total = 0.0
    stops: list[StopMetrics] = []
    window_misses = 0

    for index, location in enumerate(route):
        leg = 0.0
        if index > 0:
            leg = matrix.between(route[index - 1].location_id, location.location_id)
            minutes = travel_minutes(leg, preferences, speed_kmh)
            cumulative += leg
            travel_total += minutes
            clock += minutes

        within_window = None
        if location.time_window is not None:
            window = location.time_window
            within_window = window.start_minutes <= clock <= window.end_minutes
            if not within_window:
                window_misses += 1

        stops.append(
            StopMetrics(
                location_id=location.location_id,
                sequence=index + 1,
                distance_from_prev_km=leg,
                cumulative_distance_km=cumulative,
                arrival_minutes=clock,
                arrival_time=format_time(clock),
                within_window=within_window,
            )
        )

        if location.is_stop:
            clock += preferences.average_visit_duration_minutes

        if lunch_start <= clock < lunch_end:
            clock = float(lunch_end)

    visit_count = sum(1 for location in route if location.is_stop)
    violations = _constraint_violations(
        preferences,
        visit_count=visit_count,
        total_distance=cumulative,
        work_start=work_start,
        end_minutes=clock,
        window_misses=window_misses,
    )

    return RouteMetrics(
        total_distance_km=cumulative,
        estimated_travel_time_minutes=travel_total,
        estimated_fuel_cost=cumulative * preferences.fuel_cost_per_km,
        start_time=format_time(work_start),
        end_time=format_time(clock),
        end_minutes=clock,
        stops=stops,
        constraint_violations=violations,
    )


def _constraint_violations(
    preferences: RoutePreferences,
    *,
    visit_count: int,
    total_distance: float,
    work_start: int,
    end_minutes: float,
    window_misses: int,
) -> dict[str, float]:
    # Limits are reported, not enforced.
    violations: dict[str, float] = {}
    if visit_count > preferences.max_visits_per_day:
        violations["max_visits_per_day"] = float(visit_count - preferences.max_visits_per_day)
    if total_distance > preferences.max_distance_per_day_km:
        violations["max_distance_per_day_km"] = total_distance - preferences.max_distance_per_day_km
    overtime = end_minutes - parse_time(preferences.work_end_time)
    if overtime > 0:
        violations["work_end_time"] = overtime
    worked_hours = (end_minutes - work_start) / 60
    if worked_hours > preferences.max_hours_per_day:
        violations["max_hours_per_day"] = worked_hours - preferences.max_hours_per_day
    if window_misses:
        violations["time_windows"] = float(window_misses)
    return violations
