from datetime import date
from pathlib import Path

import pytest

from fieldroute.models.domain import RouteHistoryEntry, RouteRecord, TimeWindow, Visit
from fieldroute.persistence.filesystem import FileStorage
from fieldroute.persistence.store import InMemoryRouteStore
from fieldroute.services.clustering.models import ClusterSet


def test_file_storage_creates_run_directory(tmp_path: Path) -> None:
    storage = FileStorage(root=tmp_path)
    run_dir = storage.make_run_directory(prefix="route_test")

    assert run_dir.exists()
    assert run_dir.is_dir()
    assert run_dir.parent == tmp_path / "outputs"


def test_file_storage_writes_json_and_csv(tmp_path: Path) -> None:
    storage = FileStorage(root=tmp_path)
    run_dir = storage.make_run_directory(prefix="route_test")

    summary_path = run_dir / "summary.json"
    stops_path = run_dir / "stops.csv"

    storage.write_json(summary_path, {"route_date": date(2024, 1, 1)})
    storage.write_csv(stops_path, "a,b\n1,2\n")

    assert summary_path.read_text(encoding="utf-8") == '{\n  "route_date": "2024-01-01"\n}'
    assert stops_path.read_text(encoding="utf-8") == "a,b\n1,2\n"


def _record(tenant_id: str = "t1") -> RouteRecord:
    return RouteRecord(
        tenant_id=tenant_id,
        salesman_id="s1",
        route_date=date(2024, 1, 1),
        visit_sequence=["START", "v1", "END"],
        total_visits=1,
        total_distance_km=4.0,
        estimated_travel_time_minutes=12.0,
        estimated_fuel_cost=0.6,
        start_latitude=12.91,
        start_longitude=77.52,
        route_start_time="09:00",
        route_end_time="10:00",
    )


def test_memory_store_scopes_visits_by_tenant() -> None:
    store = InMemoryRouteStore()
    store.add_visits("t1", [Visit("v1", "c1", "One", 12.9, 77.5), Visit("v2", "c2", "Two", 12.8, 77.4)])
    store.add_visits("t2", [Visit("v3", "c3", "Three", 12.7, 77.3)])

    assert [visit.visit_id for visit in store.get_visits("t1", ["v2", "v3", "v1", "v2"])] == ["v2", "v1"]
    assert store.get_visits("t2", ["v1"]) == []


def test_memory_store_history_is_newest_first() -> None:
    store = InMemoryRouteStore()
    store.add_visits(
        "t1",
        [
            Visit("old", "c1", None, 12.9, 77.5, visit_date=date(2024, 1, 1)),
            Visit("new", "c1", None, 12.9, 77.5, visit_date=date(2024, 3, 1)),
            Visit("mid", "c1", None, 12.9, 77.5, visit_date=date(2024, 2, 1)),
        ],
    )

    assert [visit.visit_id for visit in store.get_visit_history("t1", 2)] == ["new", "mid"]


def test_memory_store_returns_only_active_windows() -> None:
    store = InMemoryRouteStore()
    store.add_time_windows(
        "t1",
        [
            TimeWindow("c1", "09:00", "10:00"),
            TimeWindow("c1", "11:00", "12:00", is_active=False),
            TimeWindow("c2", "09:00", "10:00"),
        ],
    )

    windows = store.get_time_windows("t1", ["c1"])

    assert [(window.customer_id, window.start_time) for window in windows] == [("c1", "09:00")]


def test_memory_store_route_round_trip_is_isolated() -> None:
    store = InMemoryRouteStore()
    record = _record()

    route_id = store.save_route(record)
    loaded = store.get_route("t1", route_id)
    loaded.total_distance_km = 99.0

    assert record.route_id is None
    assert store.get_route("t1", route_id).total_distance_km == 4.0
    assert store.get_route("t2", route_id) is None
    assert loaded.created_at is not None


def test_memory_store_update_requires_route_id() -> None:
    with pytest.raises(ValueError):
        InMemoryRouteStore().update_route(_record())


def test_memory_store_history_is_append_only() -> None:
    store = InMemoryRouteStore()
    route_id = store.save_route(_record())
    for actual in (5.0, 6.0):
        store.append_history(
            RouteHistoryEntry(
                tenant_id="t1",
                salesman_id="s1",
                route_id=route_id,
                event_type="route_completed",
                planned_distance_km=4.0,
                actual_distance_km=actual,
                planned_time_minutes=12.0,
                actual_time_minutes=None,
                efficiency_score=4.0 / actual * 100,
                time_saved_minutes=None,
            )
        )

    history = store.list_history("t1", route_id)

    assert [entry.actual_distance_km for entry in history] == [5.0, 6.0]
    assert all(entry.recorded_at is not None for entry in history)
    assert store.list_history("t2", route_id) == []


def test_memory_store_replaces_cluster_generations() -> None:
    store = InMemoryRouteStore()
    first = ClusterSet(tenant_id="t1", clusters=[], iterations=1, converged=True, seed=1,
                       total_visits_processed=0, excluded_count=0)
    second = ClusterSet(tenant_id="t1", clusters=[], iterations=2, converged=True, seed=2,
                        total_visits_processed=0, excluded_count=0)

    store.replace_clusters("t1", first)
    store.replace_clusters("t1", second)

    stored = store.get_clusters("t1")
    assert stored.seed == 2
    assert stored.generation_id == second.generation_id != first.generation_id
    assert store.get_clusters("t2") is None


class _FakeQuery:
    """Chainable stand-in for the Supabase query builder."""

    def __init__(self, client: "_FakeClient", table: str) -> None:
        self.client = client
        self.table = table
        self.calls: list[tuple] = []

    def __getattr__(self, name: str):
        def record(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return record

    @property
    def not_(self) -> "_FakeQuery":
        self.calls.append(("not_", (), {}))
        return self

    @property
    def operation(self) -> str:
        return next(name for name, _, _ in self.calls if name in {"select", "insert", "update", "upsert", "delete"})

    def execute(self):
        if self.operation == "insert":
            return self.client.insert(self)
        self.client.executed.append(self)
        return type("Response", (), {"data": self.client.rows.get(self.table, [])})()


class _FakeClient:
    def __init__(self, rows: dict[str, list[dict]], fail_on_insert: tuple[str, int] | None = None) -> None:
        self.rows = rows
        self.fail_on_insert = fail_on_insert
        self.inserted: dict[str, int] = {}
        self.executed: list[_FakeQuery] = []

    def table(self, name: str) -> _FakeQuery:
        return _FakeQuery(self, name)

    def insert(self, query: _FakeQuery):
        count = self.inserted.get(query.table, 0) + 1
        self.inserted[query.table] = count
        if self.fail_on_insert == (query.table, count):
            raise RuntimeError(f"insert into {query.table} failed")
        self.executed.append(query)
        data = self.rows.get(query.table) or [{"id": f"{query.table}-{count}"}]
        return type("Response", (), {"data": data})()

    def deletes(self) -> list[_FakeQuery]:
        return [query for query in self.executed if query.operation == "delete"]


def test_supabase_store_keeps_requested_visit_order() -> None:
    from fieldroute.persistence.database import SupabaseRouteStore

    client = _FakeClient(
        {
            "visits": [
                {"id": 1, "customer_id": 10, "customer_name": "One", "gps_latitude": "12.9", "gps_longitude": "77.5"},
                {"id": 2, "customer_id": 20, "customer_name": "Two", "gps_latitude": None, "gps_longitude": None,
                 "visit_date": "2024-01-01T10:00:00Z"},
            ]
        }
    )
    store = SupabaseRouteStore(client)

    visits = store.get_visits("t1", ["2", "1"])

    assert [visit.visit_id for visit in visits] == ["2", "1"]
    assert visits[1].latitude == 12.9
    assert visits[0].latitude is None
    assert visits[0].visit_date == date(2024, 1, 1)
    assert ("eq", ("tenant_id", "t1"), {}) in client.executed[0].calls


def test_supabase_store_route_rows_round_trip() -> None:
    from fieldroute.persistence.database import SupabaseRouteStore, _route_to_row

    row = {"id": "r1", **_route_to_row(_record()), "created_at": "2024-01-01T08:00:00Z"}
    store = SupabaseRouteStore(_FakeClient({"optimized_routes": [row]}))

    assert store.save_route(_record()) == "r1"
    loaded = store.get_route("t1", "r1")
    assert loaded.route_id == "r1"
    assert loaded.visit_ids == ["v1"]
    assert loaded.route_date == date(2024, 1, 1)
    assert loaded.created_at.tzinfo is not None


def _cluster_visit_rows() -> list[dict]:
    return [
        {"id": "v1", "customer_id": "c1", "gps_latitude": 12.90, "gps_longitude": 77.50, "potential": "High"},
        {"id": "v2", "customer_id": "c2", "gps_latitude": 12.92, "gps_longitude": 77.50, "potential": "Low"},
        {"id": "v3", "customer_id": "c3", "gps_latitude": 12.91, "gps_longitude": 77.53, "potential": None},
    ]


def test_supabase_store_loads_cluster_members() -> None:
    from fieldroute.persistence.database import SupabaseRouteStore

    client = _FakeClient(
        {
            "visit_clusters": [
                {
                    "id": "k1",
                    "generation_id": "g1",
                    "cluster_name": "Cluster 1",
                    "center_latitude": 12.91,
                    "center_longitude": 77.51,
                    "min_latitude": 12.90,
                    "max_latitude": 12.92,
                    "min_longitude": 77.50,
                    "max_longitude": 77.53,
                    "radius_km": 2.4,
                    "visit_count": 3,
                    "total_potential": 250,
                    "random_seed": 7,
                    "iterations": 4,
                    "converged": True,
                }
            ],
            "visit_cluster_assignments": [
                {"visit_id": vid, "cluster_id": "k1", "distance_from_center_km": 1.0, "assignment_confidence": 1.0}
                for vid in ("v1", "v2", "v3")
            ],
            "visits": _cluster_visit_rows(),
        }
    )

    cluster_set = SupabaseRouteStore(client).get_clusters("t1")

    cluster = cluster_set.clusters[0]
    assert cluster.visit_count == 3
    assert [member.visit_id for member in cluster.members] == ["v1", "v2", "v3"]
    assert [member.potential_score for member in cluster.members] == [100, 25, 50]
    assert len(cluster.hull) == 4
    assert cluster.hull[0] == cluster.hull[-1]
    assert cluster_set.generation_id == "g1"
    assert (cluster_set.seed, cluster_set.iterations) == (7, 4)
    assert cluster_set.total_visits_processed == 3


def _cluster_set():
    from fieldroute.services.clustering.service import build_clusters

    visits = [
        Visit("v1", "c1", None, 12.90, 77.50, "High"),
        Visit("v2", "c2", None, 12.92, 77.50, "Low"),
        Visit("v3", "c3", None, 13.50, 78.20),
    ]
    return ClusterSet(
        tenant_id="t1",
        clusters=build_clusters(visits, [0, 0, 1]),
        iterations=2,
        converged=True,
        seed=5,
        total_visits_processed=3,
        excluded_count=0,
    )


def test_supabase_store_swaps_generations_after_writing() -> None:
    from fieldroute.persistence.database import SupabaseRouteStore

    client = _FakeClient({})
    cluster_set = _cluster_set()

    cluster_ids = SupabaseRouteStore(client).replace_clusters("t1", cluster_set)

    assert cluster_ids == ["visit_clusters-1", "visit_clusters-2"]
    assert [cluster.cluster_id for cluster in cluster_set.clusters] == cluster_ids
    inserted = [query for query in client.executed if query.table == "visit_clusters" and query.operation == "insert"]
    assert all(query.calls[0][1][0]["generation_id"] == cluster_set.generation_id for query in inserted)
    # Old generations are only removed once every new row is stored.
    first_delete = client.executed.index(client.deletes()[0])
    assert first_delete > client.executed.index(inserted[-1])
    for query in client.deletes():
        assert ("in_", (("cluster_id" if query.table == "visit_cluster_assignments" else "id"), cluster_ids), {}) in query.calls
        assert ("not_", (), {}) in query.calls


def test_supabase_store_keeps_previous_clusters_when_a_write_fails() -> None:
    from fieldroute.persistence.database import SupabaseRouteStore

    client = _FakeClient({}, fail_on_insert=("visit_clusters", 2))
    cluster_set = _cluster_set()

    with pytest.raises(RuntimeError, match="insert into visit_clusters failed"):
        SupabaseRouteStore(client).replace_clusters("t1", cluster_set)

    assert cluster_set.generation_id is None
    generation_id = client.executed[0].calls[0][1][0]["generation_id"]
    deletes = client.deletes()
    assert deletes
    for query in deletes:
        assert ("not_", (), {}) not in query.calls
        scoped = ("eq", ("generation_id", generation_id), {}) in query.calls or (
            "in_", ("cluster_id", ["visit_clusters-1"]), {}
        ) in query.calls
        assert scoped


def test_supabase_history_keeps_visits_without_coordinates() -> None:
    from fieldroute.persistence.database import SupabaseRouteStore
    from fieldroute.schemas.clustering import ClusteringRequest
    from fieldroute.services.clustering.service import cluster_visits

    rows = _cluster_visit_rows() + [{"id": "v4", "customer_id": "c4", "gps_latitude": None, "gps_longitude": None}]
    client = _FakeClient({"visits": rows})
    store = SupabaseRouteStore(client)

    assert [visit.visit_id for visit in store.get_visit_history("t1", 10)] == ["v1", "v2", "v3", "v4"]
    assert all(name != "is_" for name, _, _ in client.executed[0].calls)

    cluster_set = cluster_visits(ClusteringRequest(tenant_id="t1", num_clusters=1, seed=1, persist=False), store=store)

    assert cluster_set.excluded_count == 1
    assert cluster_set.total_visits_processed == 3
