"""Responder availability and location endpoints."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ...errors import DispatchError
from ...schemas.responders import (
    AvailabilityRequest,
    LocationRequest,
    LocationResponse,
    RegisterResponderRequest,
    ResponderModel,
)
from ...services.core import DispatchCore
from ..deps import get_core, http_error

router = APIRouter(prefix="/responders", tags=["responders"])
logger = logging.getLogger(__name__)


@router.get("/available", response_model=List[ResponderModel])
def list_available(core: DispatchCore = Depends(get_core)) -> List[ResponderModel]:
    return [ResponderModel.from_domain(responder) for responder in core.directory.list_available()]


@router.post("/{responder_id}", response_model=ResponderModel, status_code=status.HTTP_201_CREATED)
def register_responder(
    responder_id: str,
    payload: RegisterResponderRequest | None = None,
    core: DispatchCore = Depends(get_core),
) -> ResponderModel:
    """Register a responder; registering an existing id returns the stored record."""
    payload = payload or RegisterResponderRequest()
    responder = core.directory.register(responder_id, coordinate=payload.coordinate())
    if payload.is_available:
        responder = core.set_availability(responder_id, True)
    return ResponderModel.from_domain(responder)


@router.get("/{responder_id}", response_model=ResponderModel)
def get_responder(responder_id: str, core: DispatchCore = Depends(get_core)) -> ResponderModel:
    try:
        return ResponderModel.from_domain(core.directory.get(responder_id))
    except DispatchError as exc:
        raise http_error(exc) from exc


@router.put("/{responder_id}/availability", response_model=ResponderModel)
def set_availability(
    responder_id: str,
    payload: AvailabilityRequest,
    core: DispatchCore = Depends(get_core),
) -> ResponderModel:
    try:
        responder = core.set_availability(
            responder_id,
            payload.is_available,
            payload.coordinate(),
            payload.observed_at,
        )
    except DispatchError as exc:
        raise http_error(exc) from exc
    return ResponderModel.from_domain(responder)


@router.put("/{responder_id}/location", response_model=LocationResponse)
def report_location(
    responder_id: str,
    payload: LocationRequest,
    core: DispatchCore = Depends(get_core),
) -> LocationResponse:
    """Store a position fix and relay it to the responder's active incident, if any."""
    try:
        report = core.tracking.report_position(responder_id, payload.to_domain(), payload.observed_at)
        responder = core.directory.get(responder_id)
    except DispatchError as exc:
        raise http_error(exc) from exc
    except Exception as exc:
        logger.exception(f"Error reporting location for responder {responder_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to report location: {str(exc)}",
        ) from exc
    return LocationResponse(
        responder=ResponderModel.from_domain(responder),
        accepted=report.accepted,
        incident_id=report.incident_id,
    )
