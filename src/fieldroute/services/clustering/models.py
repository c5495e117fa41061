"""Territory clustering models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(slots=True)
class ClusterMember:
    visit_id: str
    customer_id: Optional[str]
    latitude: float
    longitude: float
    potential_score: int
    distance_from_center_km: float
    assignment_confidence: float = 1.0


@dataclass(slots=True)
class ClusterBounds:
    min_latitude: float
    max_latitude: float
    min_longitude: float
    max_longitude: float


@dataclass(slots=True)
class Cluster:
    name: str
    center_latitude: float
    center_longitude: float
    bounds: ClusterBounds
    radius_km: float
    total_potential: int
    members: List[ClusterMember]
    hull: List[tuple[float, float]] = field(default_factory=list)
    cluster_id: Optional[str] = None

    @property
    def visit_count(self) -> int:
        return len(self.members)


@dataclass(slots=True)
class KMeansOutcome:
    labels: List[int]
    centroids: List[tuple[float, float]]
    iterations: int
    converged: bool
    seed: int


@dataclass(slots=True)
class ClusterSet:
    tenant_id: str
    clusters: List[Cluster]
    iterations: int
    converged: bool
    seed: int
    total_visits_processed: int
    excluded_count: int
    silhouette_score: Optional[float] = None
    generation_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)
