"""Territory clustering endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, status

from ...errors import InvalidInputError
from ...persistence.store import get_store
from ...schemas.clustering import ClusteringRequest, ClusteringResponse
from ...services.clustering.service import cluster_set_to_response, cluster_visits

router = APIRouter(prefix="/clusters", tags=["clusters"])


@router.post("/generate", response_model=ClusteringResponse, status_code=status.HTTP_200_OK)
def generate(payload: ClusteringRequest) -> ClusteringResponse:
    try:
        cluster_set = cluster_visits(payload)
    except InvalidInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error generating clusters: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to generate clusters: {str(exc)}",
        ) from exc
    return cluster_set_to_response(cluster_set)


@router.get("", response_model=ClusteringResponse, status_code=status.HTTP_200_OK)
def latest(tenant_id: str = Query(..., description="Tenant whose clusters to return")) -> ClusteringResponse:
    """Return the tenant's current cluster set."""
    try:
        cluster_set = get_store().get_clusters(tenant_id)
    except Exception as exc:
        logging.exception(f"Error loading clusters for tenant '{tenant_id}': {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to load clusters: {str(exc)}",
        ) from exc
    if cluster_set is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No clusters stored for tenant '{tenant_id}'",
        )
    return cluster_set_to_response(cluster_set)
