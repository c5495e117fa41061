"""Serializers for route and cluster outputs."""

from __future__ import annotations

import csv
import io
from dataclasses import asdict

from ..clustering.models import ClusterSet
from ..routing.models import RouteResult


def route_result_to_json(result: RouteResult) -> dict:
    return {
        "route_id": result.route_id,
        "tenant_id": result.tenant_id,
        "salesman_id": result.salesman_id,
        "route_date": result.route_date.isoformat(),
        "visit_sequence": result.visit_sequence,
        "total_visits": result.total_visits,
        "total_distance_km": result.total_distance_km,
        "estimated_travel_time_minutes": result.estimated_travel_time_minutes,
        "estimated_fuel_cost": result.estimated_fuel_cost,
        "route_start_time": result.route_start_time,
        "route_end_time": result.route_end_time,
        "optimization_time_ms": result.optimization_time_ms,
        "excluded_count": result.excluded_count,
        "converged": result.converged,
        "constraint_violations": result.constraint_violations,
        "metadata": result.metadata,
        "route_details": [asdict(stop) for stop in result.route_details],
    }


def route_result_to_csv(result: RouteResult) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "sequence_number",
        "visit_id",
        "customer_id",
        "customer_name",
        "latitude",
        "longitude",
        "distance_from_previous_km",
        "cumulative_distance_km",
        "estimated_arrival_time",
        "time_window_start",
        "time_window_end",
        "time_window_strict",
        "within_window",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for stop in result.route_details:
        writer.writerow(asdict(stop))
    return buffer.getvalue()


def cluster_set_to_csv(cluster_set: ClusterSet) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "cluster_name",
        "visit_id",
        "customer_id",
        "latitude",
        "longitude",
        "potential_score",
        "distance_from_center_km",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for cluster in cluster_set.clusters:
        for member in cluster.members:
            writer.writerow(
                {
                    "cluster_name": cluster.name,
                    "visit_id": member.visit_id,
                    "customer_id": member.customer_id,
                    "latitude": member.latitude,
                    "longitude": member.longitude,
                    "potential_score": member.potential_score,
                    "distance_from_center_km": member.distance_from_center_km,
                }
            )
    return buffer.getvalue()
