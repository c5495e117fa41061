"""Route optimization and lifecycle endpoints."""

from __future__ import annotations

import logging
from typing import NoReturn

from fastapi import APIRouter, HTTPException, Query, status

from ...errors import InvalidInputError, InvalidTransitionError, NotFoundError
from ...models.domain import RouteRecord
from ...schemas.routing import (
    RouteCompletionRequest,
    RouteDetailsResponse,
    RouteHistoryEntryModel,
    RouteOptimizationRequest,
    RouteOptimizationResponse,
    RouteRecordModel,
    RouteTransitionRequest,
    RouteVisitModel,
)
from ...services.lifecycle import service as lifecycle
from ...services.outputs.routing_formatter import route_result_to_json
from ...services.routing.service import optimize_route

router = APIRouter(prefix="/routes", tags=["routes"])


def _record_model(record: RouteRecord) -> dict:
    return {
        "route_id": record.route_id,
        "tenant_id": record.tenant_id,
        "salesman_id": record.salesman_id,
        "route_name": record.route_name,
        "route_date": record.route_date,
        "algorithm_used": record.algorithm_used,
        "status": record.status.value,
        "visit_sequence": record.visit_sequence,
        "total_visits": record.total_visits,
        "total_distance_km": record.total_distance_km,
        "estimated_travel_time_minutes": record.estimated_travel_time_minutes,
        "estimated_fuel_cost": record.estimated_fuel_cost,
        "route_start_time": record.route_start_time,
        "route_end_time": record.route_end_time,
        "constraints_applied": record.constraints_applied,
        "actual_distance_km": record.actual_distance_km,
        "actual_time_minutes": record.actual_time_minutes,
        "efficiency_score": record.efficiency_score,
        "updated_at": record.updated_at,
    }


def _raise_http(exc: Exception, action: str) -> NoReturn:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, InvalidTransitionError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, InvalidInputError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    logging.exception(f"Error while trying to {action}: {exc}")
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}: {str(exc)}",
    ) from exc


@router.post("/optimize", response_model=RouteOptimizationResponse, status_code=status.HTTP_200_OK)
def optimize(payload: RouteOptimizationRequest) -> RouteOptimizationResponse:
    try:
        result = optimize_route(payload)
    except Exception as exc:
        _raise_http(exc, "optimize route")
    return RouteOptimizationResponse.model_validate(route_result_to_json(result))


@router.get("/{route_id}", response_model=RouteDetailsResponse, status_code=status.HTTP_200_OK)
def get_route(
    route_id: str,
    tenant_id: str = Query(..., description="Tenant that owns the route"),
) -> RouteDetailsResponse:
    """Return the stored route with its visits in sequence order."""
    try:
        details = lifecycle.get_route_details(tenant_id, route_id)
    except Exception as exc:
        _raise_http(exc, "load route")
    visits = [
        RouteVisitModel(
            visit_id=visit.visit_id,
            customer_id=visit.customer_id,
            customer_name=visit.customer_name,
            latitude=visit.latitude,
            longitude=visit.longitude,
            potential=visit.potential,
        )
        for visit in details.visits
    ]
    return RouteDetailsResponse(**_record_model(details.route), visits=visits)


@router.post("/{route_id}/start", response_model=RouteRecordModel, status_code=status.HTTP_200_OK)
def start(route_id: str, payload: RouteTransitionRequest) -> RouteRecordModel:
    try:
        record = lifecycle.start_route(payload.tenant_id, route_id)
    except Exception as exc:
        _raise_http(exc, "start route")
    return RouteRecordModel(**_record_model(record))


@router.post("/{route_id}/complete", response_model=RouteRecordModel, status_code=status.HTTP_200_OK)
def complete(route_id: str, payload: RouteCompletionRequest) -> RouteRecordModel:
    actual = payload.actual
    try:
        record = lifecycle.complete_route(
            payload.tenant_id,
            route_id,
            actual_distance_km=actual.distance_km if actual else None,
            actual_time_minutes=actual.time_minutes if actual else None,
        )
    except Exception as exc:
        _raise_http(exc, "complete route")
    return RouteRecordModel(**_record_model(record))


@router.post("/{route_id}/cancel", response_model=RouteRecordModel, status_code=status.HTTP_200_OK)
def cancel(route_id: str, payload: RouteTransitionRequest) -> RouteRecordModel:
    try:
        record = lifecycle.cancel_route(payload.tenant_id, route_id)
    except Exception as exc:
        _raise_http(exc, "cancel route")
    return RouteRecordModel(**_record_model(record))


@router.get("/{route_id}/history", response_model=list[RouteHistoryEntryModel], status_code=status.HTTP_200_OK)
def history(
    route_id: str,
    tenant_id: str = Query(..., description="Tenant that owns the route"),
) -> list[RouteHistoryEntryModel]:
    try:
        entries = lifecycle.list_route_history(tenant_id, route_id)
    except Exception as exc:
        _raise_http(exc, "load route history")
    return [
        RouteHistoryEntryModel(
            route_id=entry.route_id,
            event_type=entry.event_type,
            planned_distance_km=entry.planned_distance_km,
            actual_distance_km=entry.actual_distance_km,
            planned_time_minutes=entry.planned_time_minutes,
            actual_time_minutes=entry.actual_time_minutes,
            efficiency_score=entry.efficiency_score,
            time_saved_minutes=entry.time_saved_minutes,
            recorded_at=entry.recorded_at,
        )
        for entry in entries
    ]
