"""High-level orchestration for territory clustering runs."""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from sklearn.metrics import silhouette_score

from ...config import settings
from ...models.domain import Visit, potential_score
from ...persistence.filesystem import FileStorage
from ...persistence.store import RouteStore, get_store
from ...schemas.clustering import ClusteringRequest, ClusteringResponse, ClusterSummaryModel
from ..geospatial import convex_hull, haversine_many, is_valid_coordinate
from ..outputs.routing_formatter import cluster_set_to_csv
from .kmeans import kmeans_haversine
from .models import Cluster, ClusterBounds, ClusterMember, ClusterSet


def build_clusters(visits: Sequence[Visit], labels: Sequence[int]) -> list[Cluster]:
    """Summarise each non-empty label group into a cluster."""

    label_array = np.asarray(labels)
    clusters: list[Cluster] = []
    for label in sorted(set(int(item) for item in labels)):
        indices = np.flatnonzero(label_array == label)
        members = [visits[index] for index in indices]
        lats = np.array([visit.latitude for visit in members], dtype=float)
        lons = np.array([visit.longitude for visit in members], dtype=float)
        center_lat, center_lon = float(lats.mean()), float(lons.mean())
        distances = haversine_many(center_lat, center_lon, lats, lons)

        clusters.append(
            Cluster(
                name=f"Cluster {len(clusters) + 1}",
                center_latitude=center_lat,
                center_longitude=center_lon,
                bounds=ClusterBounds(
                    min_latitude=float(lats.min()),
                    max_latitude=float(lats.max()),
                    min_longitude=float(lons.min()),
                    max_longitude=float(lons.max()),
                ),
                radius_km=float(distances.max()),
                total_potential=sum(potential_score(visit.potential) for visit in members),
                members=[
                    ClusterMember(
                        visit_id=visit.visit_id,
                        customer_id=visit.customer_id,
                        latitude=float(visit.latitude),
                        longitude=float(visit.longitude),
                        potential_score=potential_score(visit.potential),
                        distance_from_center_km=float(distance),
                    )
                    for visit, distance in zip(members, distances)
                ],
                hull=convex_hull(lats, lons),
            )
        )
    return clusters


def _silhouette(visits: Sequence[Visit], labels: Sequence[int]) -> float | None:
    label_count = len(set(labels))
    if label_count < 2 or label_count >= len(visits):
        return None
    radians = np.radians([[visit.latitude, visit.longitude] for visit in visits])
    return float(silhouette_score(radians, list(labels), metric="haversine"))


def cluster_visits(payload: ClusteringRequest, *, store: RouteStore | None = None) -> ClusterSet:
    """Partition the tenant's recent geotagged visits into territories."""

    store = store or get_store()
    k = payload.num_clusters or settings.default_cluster_count
    limit = payload.history_limit or settings.clustering_history_limit
    seed = payload.seed if payload.seed is not None else settings.clustering_random_seed

    history = store.get_visit_history(payload.tenant_id, limit)
    visits = [visit for visit in history if is_valid_coordinate(visit.latitude, visit.longitude)]
    excluded = len(history) - len(visits)
    if excluded:
        logging.warning(f"Excluded {excluded} visit(s) without valid coordinates from clustering")

    outcome = kmeans_haversine(
        [visit.latitude for visit in visits],
        [visit.longitude for visit in visits],
        k,
        seed=seed,
        max_iterations=payload.max_iterations,
    )
    clusters = build_clusters(visits, outcome.labels)
    if len(clusters) < k:
        logging.warning(f"k-means produced {len(clusters)} non-empty clusters out of {k} requested")

    cluster_set = ClusterSet(
        tenant_id=payload.tenant_id,
        clusters=clusters,
        iterations=outcome.iterations,
        converged=outcome.converged,
        seed=outcome.seed,
        total_visits_processed=len(visits),
        excluded_count=excluded,
        silhouette_score=_silhouette(visits, outcome.labels),
        metadata={"requested_clusters": k, "clustering_method": "kmeans"},
    )
    logging.info(
        f"Clustered {len(visits)} visits for tenant '{payload.tenant_id}' into {len(clusters)} clusters "
        f"({outcome.iterations} iterations, seed={outcome.seed})"
    )

    if payload.persist:
        cluster_ids = store.replace_clusters(payload.tenant_id, cluster_set)
        for cluster, cluster_id in zip(cluster_set.clusters, cluster_ids):
            cluster.cluster_id = cluster_id

    if payload.persist_files:
        try:
            storage = FileStorage()
            run_dir = storage.make_run_directory(prefix=f"clusters_{payload.tenant_id}")
            storage.write_json(run_dir / "summary.json", cluster_set_to_response(cluster_set).model_dump(mode="json"))
            storage.write_csv(run_dir / "assignments.csv", cluster_set_to_csv(cluster_set))
        except OSError as exc:
            # Artifacts are best-effort once the clusters are stored.
            logging.warning(f"Failed to write clustering artifacts for tenant '{payload.tenant_id}': {exc}")
            cluster_set.metadata["output_error"] = str(exc)
        else:
            cluster_set.metadata["output_path"] = str(run_dir)

    return cluster_set


def cluster_set_to_response(cluster_set: ClusterSet) -> ClusteringResponse:
    return ClusteringResponse(
        tenant_id=cluster_set.tenant_id,
        generation_id=cluster_set.generation_id,
        total_clusters=len(cluster_set.clusters),
        total_visits_processed=cluster_set.total_visits_processed,
        excluded_count=cluster_set.excluded_count,
        iterations=cluster_set.iterations,
        converged=cluster_set.converged,
        seed=cluster_set.seed,
        silhouette_score=cluster_set.silhouette_score,
        metadata=cluster_set.metadata,
        clusters=[
            ClusterSummaryModel(
                cluster_id=cluster.cluster_id,
                name=cluster.name,
                center_latitude=cluster.center_latitude,
                center_longitude=cluster.center_longitude,
                min_latitude=cluster.bounds.min_latitude,
                max_latitude=cluster.bounds.max_latitude,
                min_longitude=cluster.bounds.min_longitude,
                max_longitude=cluster.bounds.max_longitude,
                radius_km=cluster.radius_km,
                visit_count=cluster.visit_count,
                total_potential=cluster.total_potential,
                visit_ids=[member.visit_id for member in cluster.members],
                hull=[[lat, lon] for lat, lon in cluster.hull],
            )
            for cluster in cluster_set.clusters
        ],
    )
