"""Supabase-backed persistence for visits, routes and clusters."""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional, Sequence

from ..db.supabase import get_supabase_client
from ..models.domain import RouteHistoryEntry, RouteRecord, RouteStatus, TimeWindow, Visit, potential_score
from ..services.clustering.models import Cluster, ClusterBounds, ClusterMember, ClusterSet
from ..services.geospatial import convex_hull, is_valid_coordinate


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None or value == "" else float(value)


def _visit_from_row(row: Mapping[str, Any]) -> Visit:
    return Visit(
        visit_id=str(row["id"]),
        customer_id=str(row["customer_id"]) if row.get("customer_id") is not None else None,
        customer_name=row.get("customer_name"),
        latitude=_optional_float(row.get("gps_latitude")),
        longitude=_optional_float(row.get("gps_longitude")),
        potential=row.get("potential"),
        visit_date=_parse_date(row.get("visit_date")),
    )


def _window_from_row(row: Mapping[str, Any]) -> TimeWindow:
    return TimeWindow(
        customer_id=str(row["customer_id"]),
        start_time=str(row["window_start_time"])[:5],
        end_time=str(row["window_end_time"])[:5],
        is_strict=bool(row.get("is_strict")),
        priority_level=int(row.get("priority_level") or 0),
        day_of_week=row.get("day_of_week"),
        is_active=bool(row.get("is_active", True)),
    )


def _route_to_row(record: RouteRecord) -> dict[str, Any]:
    return {
        "tenant_id": record.tenant_id,
        "salesman_id": record.salesman_id,
        "route_name": record.route_name,
        "route_date": record.route_date.isoformat(),
        "algorithm_used": record.algorithm_used,
        "optimization_time_ms": record.optimization_time_ms,
        "visit_sequence": record.visit_sequence,
        "total_visits": record.total_visits,
        "total_distance_km": record.total_distance_km,
        "estimated_travel_time_minutes": record.estimated_travel_time_minutes,
        "estimated_fuel_cost": record.estimated_fuel_cost,
        "start_latitude": record.start_latitude,
        "start_longitude": record.start_longitude,
        "route_start_time": record.route_start_time,
        "route_end_time": record.route_end_time,
        "route_status": record.status.value,
        "constraints_applied": record.constraints_applied,
        "preferences_snapshot": record.preferences,
        "actual_distance_km": record.actual_distance_km,
        "actual_time_minutes": record.actual_time_minutes,
        "efficiency_score": record.efficiency_score,
    }


def _route_from_row(row: Mapping[str, Any]) -> RouteRecord:
    return RouteRecord(
        route_id=str(row["id"]),
        tenant_id=str(row["tenant_id"]),
        salesman_id=str(row["salesman_id"]),
        route_name=row.get("route_name") or "",
        route_date=_parse_date(row["route_date"]),
        algorithm_used=row.get("algorithm_used") or "nearest_neighbor_2opt",
        optimization_time_ms=float(row.get("optimization_time_ms") or 0.0),
        visit_sequence=list(row.get("visit_sequence") or []),
        total_visits=int(row.get("total_visits") or 0),
        total_distance_km=float(row.get("total_distance_km") or 0.0),
        estimated_travel_time_minutes=float(row.get("estimated_travel_time_minutes") or 0.0),
        estimated_fuel_cost=float(row.get("estimated_fuel_cost") or 0.0),
        start_latitude=float(row["start_latitude"]),
        start_longitude=float(row["start_longitude"]),
        route_start_time=row.get("route_start_time") or "",
        route_end_time=row.get("route_end_time") or "",
        status=RouteStatus(row.get("route_status") or RouteStatus.PLANNED.value),
        constraints_applied=dict(row.get("constraints_applied") or {}),
        preferences=dict(row.get("preferences_snapshot") or {}),
        actual_distance_km=_optional_float(row.get("actual_distance_km")),
        actual_time_minutes=_optional_float(row.get("actual_time_minutes")),
        efficiency_score=_optional_float(row.get("efficiency_score")),
        created_at=_parse_datetime(row.get("created_at")),
        updated_at=_parse_datetime(row.get("updated_at")),
    )


def _history_from_row(row: Mapping[str, Any]) -> RouteHistoryEntry:
    return RouteHistoryEntry(
        tenant_id=str(row["tenant_id"]),
        salesman_id=str(row["salesman_id"]),
        route_id=str(row["route_id"]),
        event_type=row.get("event_type") or "route_completed",
        planned_distance_km=float(row["planned_distance_km"]),
        actual_distance_km=float(row["actual_distance_km"]),
        planned_time_minutes=float(row["planned_time_minutes"]),
        actual_time_minutes=_optional_float(row.get("actual_time_minutes")),
        efficiency_score=float(row["efficiency_score"]),
        time_saved_minutes=_optional_float(row.get("time_saved_minutes")),
        recorded_at=_parse_datetime(row.get("created_at")),
    )


class SupabaseRouteStore:
    """Store implementation over the Supabase tables used by the field app.

    Query errors are not caught here: callers receive the client's exception
    unchanged and nothing is retried.
    """

    def __init__(self, client: Any | None = None) -> None:
        self.client = client or get_supabase_client()
        if self.client is None:
            raise RuntimeError(
                "Supabase not configured. Set FIELDROUTE_SUPABASE_URL and FIELDROUTE_SUPABASE_KEY."
            )

    def get_visits(self, tenant_id: str, visit_ids: Sequence[str]) -> list[Visit]:
        if not visit_ids:
            return []
        response = (
            self.client.table("visits")
            .select("id, customer_id, customer_name, gps_latitude, gps_longitude, visit_date, potential")
            .eq("tenant_id", tenant_id)
            .in_("id", list(visit_ids))
            .execute()
        )
        by_id = {str(row["id"]): _visit_from_row(row) for row in (response.data or [])}
        # Preserve the caller's ordering.
        return [by_id[str(visit_id)] for visit_id in dict.fromkeys(visit_ids) if str(visit_id) in by_id]

    def get_visit_history(self, tenant_id: str, limit: int) -> list[Visit]:
        response = (
            self.client.table("visits")
            .select("id, customer_id, customer_name, gps_latitude, gps_longitude, visit_date, potential")
            .eq("tenant_id", tenant_id)
            .order("visit_date", desc=True)
            .limit(limit)
            .execute()
        )
        return [_visit_from_row(row) for row in (response.data or [])]

    def get_time_windows(self, tenant_id: str, customer_ids: Sequence[str]) -> list[TimeWindow]:
        if not customer_ids:
            return []
        response = (
            self.client.table("customer_time_windows")
            .select("customer_id, day_of_week, window_start_time, window_end_time, is_strict, priority_level, is_active")
            .eq("tenant_id", tenant_id)
            .in_("customer_id", list(customer_ids))
            .eq("is_active", True)
            .order("priority_level", desc=True)
            .execute()
        )
        return [_window_from_row(row) for row in (response.data or [])]

    def get_preferences(self, tenant_id: str, salesman_id: str) -> Optional[Mapping[str, Any]]:
        response = (
            self.client.table("route_preferences")
            .select("*")
            .eq("tenant_id", tenant_id)
            .eq("salesman_id", salesman_id)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    def save_route(self, record: RouteRecord) -> str:
        response = self.client.table("optimized_routes").insert(_route_to_row(record)).execute()
        route_id = str(response.data[0]["id"])
        logging.info(f"Saved optimized route {route_id} for salesman '{record.salesman_id}'")
        return route_id

    def get_route(self, tenant_id: str, route_id: str) -> Optional[RouteRecord]:
        response = (
            self.client.table("optimized_routes")
            .select("*")
            .eq("id", route_id)
            .eq("tenant_id", tenant_id)
            .limit(1)
            .execute()
        )
        return _route_from_row(response.data[0]) if response.data else None

    def update_route(self, record: RouteRecord) -> None:
        (
            self.client.table("optimized_routes")
            .update(
                {
                    "route_status": record.status.value,
                    "actual_distance_km": record.actual_distance_km,
                    "actual_time_minutes": record.actual_time_minutes,
                    "efficiency_score": record.efficiency_score,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }
            )
            .eq("id", record.route_id)
            .eq("tenant_id", record.tenant_id)
            .execute()
        )

    def append_history(self, entry: RouteHistoryEntry) -> None:
        self.client.table("route_optimization_history").insert(
            {
                "tenant_id": entry.tenant_id,
                "salesman_id": entry.salesman_id,
                "route_id": entry.route_id,
                "event_type": entry.event_type,
                "planned_distance_km": entry.planned_distance_km,
                "actual_distance_km": entry.actual_distance_km,
                "planned_time_minutes": entry.planned_time_minutes,
                "actual_time_minutes": entry.actual_time_minutes,
                "efficiency_score": entry.efficiency_score,
                "time_saved_minutes": entry.time_saved_minutes,
            }
        ).execute()

    def list_history(self, tenant_id: str, route_id: str) -> list[RouteHistoryEntry]:
        response = (
            self.client.table("route_optimization_history")
            .select("*")
            .eq("tenant_id", tenant_id)
            .eq("route_id", route_id)
            .order("created_at")
            .execute()
        )
        return [_history_from_row(row) for row in (response.data or [])]

    def replace_clusters(self, tenant_id: str, cluster_set: ClusterSet) -> list[str]:
        """Store a new cluster generation, then drop every earlier one.

        The new rows are written before anything is deleted. If a write fails the
        new generation is removed again and the previous clusters stay in place.
        Assignments are keyed by ``(visit_id, cluster_id)``.
        """

        generation_id = uuid.uuid4().hex
        cluster_ids: list[str] = []
        try:
            for cluster in cluster_set.clusters:
                response = (
                    self.client.table("visit_clusters")
                    .insert(
                        {
                            "tenant_id": tenant_id,
                            "generation_id": generation_id,
                            "cluster_name": cluster.name,
                            "center_latitude": cluster.center_latitude,
                            "center_longitude": cluster.center_longitude,
                            "min_latitude": cluster.bounds.min_latitude,
                            "max_latitude": cluster.bounds.max_latitude,
                            "min_longitude": cluster.bounds.min_longitude,
                            "max_longitude": cluster.bounds.max_longitude,
                            "radius_km": cluster.radius_km,
                            "visit_count": cluster.visit_count,
                            "total_potential": cluster.total_potential,
                            "clustering_method": "kmeans",
                            "random_seed": cluster_set.seed,
                            "iterations": cluster_set.iterations,
                            "converged": cluster_set.converged,
                        }
                    )
                    .execute()
                )
                cluster_id = str(response.data[0]["id"])
                cluster_ids.append(cluster_id)

                assignments = [
                    {
                        "visit_id": member.visit_id,
                        "cluster_id": cluster_id,
                        "tenant_id": tenant_id,
                        "distance_from_center_km": member.distance_from_center_km,
                        "assignment_confidence": member.assignment_confidence,
                    }
                    for member in cluster.members
                ]
                if assignments:
                    self.client.table("visit_cluster_assignments").insert(assignments).execute()
        except Exception:
            logging.error(f"Failed to store cluster generation {generation_id} for tenant '{tenant_id}', rolling it back")
            self._discard_generation(tenant_id, generation_id, cluster_ids)
            raise

        self._discard_previous_generations(tenant_id, cluster_ids)
        for cluster, cluster_id in zip(cluster_set.clusters, cluster_ids):
            cluster.cluster_id = cluster_id
        cluster_set.generation_id = generation_id
        logging.info(f"Replaced clusters for tenant '{tenant_id}' with {len(cluster_ids)} new clusters")
        return cluster_ids

    def _discard_generation(self, tenant_id: str, generation_id: str, cluster_ids: list[str]) -> None:
        if cluster_ids:
            (
                self.client.table("visit_cluster_assignments")
                .delete()
                .eq("tenant_id", tenant_id)
                .in_("cluster_id", cluster_ids)
                .execute()
            )
        (
            self.client.table("visit_clusters")
            .delete()
            .eq("tenant_id", tenant_id)
            .eq("generation_id", generation_id)
            .execute()
        )

    def _discard_previous_generations(self, tenant_id: str, keep_ids: list[str]) -> None:
        for table, column in (("visit_cluster_assignments", "cluster_id"), ("visit_clusters", "id")):
            query = self.client.table(table).delete().eq("tenant_id", tenant_id)
            if keep_ids:
                query = query.not_.in_(column, keep_ids)
            query.execute()

    def get_clusters(self, tenant_id: str) -> Optional[ClusterSet]:
        response = (
            self.client.table("visit_clusters")
            .select("*")
            .eq("tenant_id", tenant_id)
            .order("cluster_name")
            .execute()
        )
        rows = response.data or []
        if not rows:
            return None

        cluster_ids = [str(row["id"]) for row in rows]
        assignment_rows = (
            self.client.table("visit_cluster_assignments")
            .select("visit_id, cluster_id, distance_from_center_km, assignment_confidence")
            .eq("tenant_id", tenant_id)
            .in_("cluster_id", cluster_ids)
            .execute()
        ).data or []
        visits = {
            visit.visit_id: visit
            for visit in self.get_visits(tenant_id, [str(row["visit_id"]) for row in assignment_rows])
        }

        members_by_cluster: dict[str, list[ClusterMember]] = {cluster_id: [] for cluster_id in cluster_ids}
        for row in assignment_rows:
            visit = visits.get(str(row["visit_id"]))
            if visit is None or not is_valid_coordinate(visit.latitude, visit.longitude):
                logging.warning(f"Cluster assignment for visit {row['visit_id']} has no usable visit record")
                continue
            members_by_cluster.setdefault(str(row["cluster_id"]), []).append(
                ClusterMember(
                    visit_id=visit.visit_id,
                    customer_id=visit.customer_id,
                    latitude=float(visit.latitude),
                    longitude=float(visit.longitude),
                    potential_score=potential_score(visit.potential),
                    distance_from_center_km=float(row.get("distance_from_center_km") or 0.0),
                    assignment_confidence=float(row.get("assignment_confidence") or 1.0),
                )
            )

        clusters = []
        for row in rows:
            members = members_by_cluster[str(row["id"])]
            clusters.append(
                Cluster(
                    name=row["cluster_name"],
                    center_latitude=float(row["center_latitude"]),
                    center_longitude=float(row["center_longitude"]),
                    bounds=ClusterBounds(
                        min_latitude=float(row["min_latitude"]),
                        max_latitude=float(row["max_latitude"]),
                        min_longitude=float(row["min_longitude"]),
                        max_longitude=float(row["max_longitude"]),
                    ),
                    radius_km=float(row["radius_km"]),
                    total_potential=int(row.get("total_potential") or 0),
                    members=members,
                    hull=convex_hull(
                        [member.latitude for member in members],
                        [member.longitude for member in members],
                    ),
                    cluster_id=str(row["id"]),
                )
            )

        first = rows[0]
        return ClusterSet(
            tenant_id=tenant_id,
            clusters=clusters,
            iterations=int(first.get("iterations") or 0),
            converged=bool(first.get("converged", True)),
            seed=int(first.get("random_seed") or 0),
            total_visits_processed=sum(int(row.get("visit_count") or 0) for row in rows),
            excluded_count=0,
            generation_id=first.get("generation_id"),
        )
