"""Routing orchestration service."""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import Sequence

from ...config import settings
from ...errors import InvalidInputError
from ...models.domain import (
    END_ID,
    START_ID,
    Location,
    RoutePreferences,
    RouteRecord,
    Visit,
)
from ...persistence.filesystem import FileStorage
from ...persistence.store import RouteStore, get_store
from ...schemas.routing import RouteOptimizationRequest
from ..geospatial import build_distance_matrix, is_valid_coordinate
from ..outputs.routing_formatter import route_result_to_csv, route_result_to_json
from .constructor import end_location_for, nearest_neighbor_route
from .metrics import calculate_route_metrics
from .models import RouteMetrics, RouteResult, RouteStopDetail
from .scheduler import apply_time_windows, attach_time_windows, select_time_windows
from .two_opt import two_opt_improve

ALGORITHM_LABEL = "nearest_neighbor_2opt"


def _resolve_preferences(payload: RouteOptimizationRequest, store: RouteStore) -> RoutePreferences:
    stored = dict(store.get_preferences(payload.tenant_id, payload.salesman_id) or {})
    if payload.preferences:
        stored.update(payload.preferences.model_dump(exclude_none=True))
    return RoutePreferences.from_mapping(stored)


def _resolve_start(payload: RouteOptimizationRequest, preferences: RoutePreferences) -> Location:
    lat = payload.start_latitude if payload.start_latitude is not None else preferences.default_start_latitude
    lon = payload.start_longitude if payload.start_longitude is not None else preferences.default_start_longitude
    if lat is None or lon is None:
        raise InvalidInputError("Start location is required (no start coordinates supplied or stored).")
    if not is_valid_coordinate(lat, lon):
        raise InvalidInputError(f"Start location ({lat}, {lon}) is not a valid coordinate.")
    return Location(location_id=START_ID, latitude=float(lat), longitude=float(lon))


def _split_visits(visits: Sequence[Visit]) -> tuple[list[Location], list[str]]:
    valid: list[Location] = []
    excluded: list[str] = []
    for visit in visits:
        if not is_valid_coordinate(visit.latitude, visit.longitude):
            excluded.append(visit.visit_id)
            continue
        valid.append(
            Location(
                location_id=visit.visit_id,
                latitude=float(visit.latitude),
                longitude=float(visit.longitude),
                customer_id=visit.customer_id,
                customer_name=visit.customer_name,
                potential=visit.potential,
            )
        )
    return valid, excluded


def _build_details(route: Sequence[Location], metrics: RouteMetrics) -> list[RouteStopDetail]:
    details = []
    for location, stop in zip(route, metrics.stops):
        window = location.time_window
        details.append(
            RouteStopDetail(
                sequence_number=stop.sequence,
                visit_id=location.location_id,
                customer_id=location.customer_id,
                customer_name=location.customer_name,
                latitude=location.latitude,
                longitude=location.longitude,
                distance_from_previous_km=stop.distance_from_prev_km,
                cumulative_distance_km=stop.cumulative_distance_km,
                estimated_arrival_time=stop.arrival_time,
                time_window_start=window.start_time if window else None,
                time_window_end=window.end_time if window else None,
                time_window_strict=window.is_strict if window else None,
                within_window=stop.within_window,
            )
        )
    return details


def optimize_route(payload: RouteOptimizationRequest, *, store: RouteStore | None = None) -> RouteResult:
    """Compute, persist and return the visiting order for one salesperson's day."""

    started = time.perf_counter()
    store = store or get_store()

    visit_ids = list(dict.fromkeys(visit_id.strip() for visit_id in payload.visit_ids if visit_id.strip()))
    if not visit_ids:
        raise InvalidInputError("At least one visit id is required.")
    if len(visit_ids) > settings.max_route_stops:
        raise InvalidInputError(
            f"Requested {len(visit_ids)} visits, at most {settings.max_route_stops} are allowed per route."
        )
    reserved = {START_ID, END_ID} & set(visit_ids)
    if reserved:
        raise InvalidInputError(f"Visit ids {sorted(reserved)} are reserved for route endpoints.")

    preferences = _resolve_preferences(payload, store)
    start = _resolve_start(payload, preferences)
    route_date = payload.route_date or date.today()

    visits = store.get_visits(payload.tenant_id, visit_ids)
    found_ids = {visit.visit_id for visit in visits}
    missing_ids = [visit_id for visit_id in visit_ids if visit_id not in found_ids]
    if missing_ids:
        logging.warning(f"{len(missing_ids)} visit(s) not found for tenant '{payload.tenant_id}': {missing_ids}")

    stops, excluded_ids = _split_visits(visits)
    if excluded_ids:
        logging.warning(
            f"Excluded {len(excluded_ids)} visit(s) without valid coordinates from route optimization: {excluded_ids}"
        )
    if not stops:
        raise InvalidInputError(
            f"No valid visits found: requested {len(visit_ids)}, found {len(visits)}, "
            f"{len(excluded_ids)} without valid coordinates."
        )

    customer_ids = sorted({stop.customer_id for stop in stops if stop.customer_id})
    windows = select_time_windows(store.get_time_windows(payload.tenant_id, customer_ids), route_date)
    stops = attach_time_windows(stops, windows)

    locations = [start, *stops]
    matrix_locations = locations + ([end_location_for(start)] if preferences.return_to_start else [])
    matrix = build_distance_matrix(matrix_locations)

    initial = nearest_neighbor_route(locations, matrix, preferences)
    improvement = two_opt_improve(initial, matrix, payload.max_iterations)
    scheduled = apply_time_windows(improvement.route)
    metrics = calculate_route_metrics(scheduled, matrix, preferences)

    optimization_time_ms = (time.perf_counter() - started) * 1000.0
    logging.info(
        f"Optimized route for salesman '{payload.salesman_id}': {len(stops)} stops, "
        f"{improvement.initial_distance_km:.2f} km -> {metrics.total_distance_km:.2f} km "
        f"in {improvement.iterations} 2-opt passes"
    )

    sequence = [location.location_id for location in scheduled]
    record = RouteRecord(
        tenant_id=payload.tenant_id,
        salesman_id=payload.salesman_id,
        route_date=route_date,
        route_name=payload.route_name or f"Route {route_date.isoformat()}",
        algorithm_used=ALGORITHM_LABEL,
        optimization_time_ms=optimization_time_ms,
        visit_sequence=sequence,
        total_visits=len(stops),
        total_distance_km=metrics.total_distance_km,
        estimated_travel_time_minutes=metrics.estimated_travel_time_minutes,
        estimated_fuel_cost=metrics.estimated_fuel_cost,
        start_latitude=start.latitude,
        start_longitude=start.longitude,
        route_start_time=metrics.start_time,
        route_end_time=metrics.end_time,
        constraints_applied={
            "max_visits": preferences.max_visits_per_day,
            "max_distance": preferences.max_distance_per_day_km,
            "strict_time_windows": sum(1 for stop in stops if stop.has_strict_window),
        },
        preferences=preferences.to_dict(),
    )
    route_id = store.save_route(record) if payload.persist else None

    result = RouteResult(
        route_id=route_id,
        tenant_id=payload.tenant_id,
        salesman_id=payload.salesman_id,
        route_date=route_date,
        visit_sequence=record.visit_ids,
        total_visits=len(stops),
        total_distance_km=metrics.total_distance_km,
        estimated_travel_time_minutes=metrics.estimated_travel_time_minutes,
        estimated_fuel_cost=metrics.estimated_fuel_cost,
        route_start_time=metrics.start_time,
        route_end_time=metrics.end_time,
        optimization_time_ms=optimization_time_ms,
        initial_distance_km=improvement.initial_distance_km,
        two_opt_iterations=improvement.iterations,
        converged=improvement.converged,
        excluded_count=len(excluded_ids),
        excluded_visit_ids=excluded_ids,
        route_details=_build_details(scheduled, metrics),
        constraint_violations=metrics.constraint_violations,
        metadata={
            "algorithm": ALGORITHM_LABEL,
            "return_to_start": preferences.return_to_start,
            "two_opt_distance_km": improvement.final_distance_km,
            "missing_visit_ids": missing_ids,
        },
    )

    if payload.persist_files:
        try:
            storage = FileStorage()
            run_dir = storage.make_run_directory(prefix=f"route_{payload.tenant_id}")
            storage.write_json(run_dir / "summary.json", route_result_to_json(result))
            storage.write_csv(run_dir / "stops.csv", route_result_to_csv(result))
        except OSError as exc:
            # Artifacts are best-effort once the route is stored.
            logging.warning(f"Failed to write route artifacts for tenant '{payload.tenant_id}': {exc}")
            result.metadata["output_error"] = str(exc)
        else:
            result.metadata["output_path"] = str(run_dir)

    return result
