"""Clustering request/response schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class ClusteringRequest(BaseModel):
    tenant_id: str
    num_clusters: Optional[int] = Field(default=None, ge=1, description="Defaults to the configured cluster count.")
    seed: Optional[int] = Field(default=None, description="Fix to reproduce a run; omitted means random.")
    max_iterations: Optional[int] = Field(default=None, ge=1)
    history_limit: Optional[int] = Field(default=None, ge=1)
    persist: bool = True
    persist_files: bool = False


class ClusterSummaryModel(BaseModel):
    cluster_id: Optional[str] = None
    name: str
    center_latitude: float
    center_longitude: float
    min_latitude: float
    max_latitude: float
    min_longitude: float
    max_longitude: float
    radius_km: float
    visit_count: int
    total_potential: int
    visit_ids: List[str]
    hull: List[List[float]]


class ClusteringResponse(BaseModel):
    tenant_id: str
    generation_id: Optional[str] = None
    total_clusters: int
    total_visits_processed: int
    excluded_count: int
    iterations: int
    converged: bool
    seed: int
    silhouette_score: Optional[float] = None
    clusters: List[ClusterSummaryModel]
    metadata: dict = Field(default_factory=dict)
