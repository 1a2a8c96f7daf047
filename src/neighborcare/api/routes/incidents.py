"""Incident lifecycle endpoints."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...errors import DispatchError
from ...models.domain import Coordinate, IncidentStatus
from ...schemas.incidents import (
    AlertModel,
    AlertsResponse,
    CreateIncidentRequest,
    CreateIncidentResponse,
    DeclineResponse,
    IncidentModel,
    IncidentStatusResponse,
    ResponderActionRequest,
    RoutePathModel,
)
from ...schemas.responders import ResponderModel
from ...services.core import DispatchCore
from ..deps import get_core, http_error

router = APIRouter(prefix="/incidents", tags=["incidents"])
logger = logging.getLogger(__name__)


@router.post("", response_model=CreateIncidentResponse, status_code=status.HTTP_201_CREATED)
def create_incident(payload: CreateIncidentRequest, core: DispatchCore = Depends(get_core)) -> CreateIncidentResponse:
    """Raise an SOS: alert responders near the origin.

    Zero alerted responders is a valid outcome; the incident stays pending.
    """
    try:
        result = core.incidents.create_incident(
            Coordinate(payload.latitude, payload.longitude),
            payload.incident_type,
            requester_id=payload.requester_id,
        )
    except Exception as exc:
        logger.exception(f"Error creating incident: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create incident: {str(exc)}",
        ) from exc
    return CreateIncidentResponse(
        incident=IncidentModel.from_domain(result.incident),
        notify_count=result.notify_count,
        radius_used=result.radius_used,
    )


@router.get("", response_model=List[IncidentModel])
def list_incidents(
    requester_id: str | None = Query(default=None, description="Only incidents raised by this user"),
    status_filter: Optional[IncidentStatus] = Query(default=None, alias="status"),
    core: DispatchCore = Depends(get_core),
) -> List[IncidentModel]:
    incidents = core.incidents.list_incidents(requester_id=requester_id, status=status_filter)
    return [IncidentModel.from_domain(incident) for incident in incidents]


@router.get("/{incident_id}", response_model=IncidentStatusResponse)
def get_incident(incident_id: str, core: DispatchCore = Depends(get_core)) -> IncidentStatusResponse:
    try:
        incident = core.incidents.get_incident(incident_id)
        responder = None
        if incident.accepted_responder_id is not None:
            responder = ResponderModel.from_domain(core.directory.get(incident.accepted_responder_id))
    except DispatchError as exc:
        raise http_error(exc) from exc
    return IncidentStatusResponse(incident=IncidentModel.from_domain(incident), responder=responder)


@router.get("/{incident_id}/alerts", response_model=AlertsResponse)
def list_alerts(incident_id: str, core: DispatchCore = Depends(get_core)) -> AlertsResponse:
    try:
        alerts = core.incidents.list_alerts(incident_id)
    except DispatchError as exc:
        raise http_error(exc) from exc
    return AlertsResponse(alerts=[AlertModel.from_domain(alert) for alert in alerts])


@router.get("/{incident_id}/route", response_model=Optional[RoutePathModel])
def latest_route(incident_id: str, core: DispatchCore = Depends(get_core)) -> Optional[RoutePathModel]:
    """Latest computed path for the incident, or null before the first position report."""
    try:
        core.incidents.get_incident(incident_id)
    except DispatchError as exc:
        raise http_error(exc) from exc
    path = core.tracking.latest_route(incident_id)
    return RoutePathModel.from_domain(path) if path is not None else None


@router.post("/{incident_id}/accept", response_model=IncidentModel)
def accept_incident(
    incident_id: str,
    payload: ResponderActionRequest,
    core: DispatchCore = Depends(get_core),
) -> IncidentModel:
    try:
        return IncidentModel.from_domain(core.incidents.accept_incident(incident_id, payload.responder_id))
    except DispatchError as exc:
        raise http_error(exc) from exc


@router.post("/{incident_id}/decline", response_model=DeclineResponse)
def decline_incident(
    incident_id: str,
    payload: ResponderActionRequest,
    core: DispatchCore = Depends(get_core),
) -> DeclineResponse:
    try:
        declined = core.incidents.decline_incident(incident_id, payload.responder_id)
    except DispatchError as exc:
        raise http_error(exc) from exc
    return DeclineResponse(incident_id=incident_id, responder_id=payload.responder_id, declined=declined)


@router.post("/{incident_id}/resolve", response_model=IncidentModel)
def resolve_incident(incident_id: str, core: DispatchCore = Depends(get_core)) -> IncidentModel:
    try:
        return IncidentModel.from_domain(core.incidents.resolve_incident(incident_id))
    except DispatchError as exc:
        raise http_error(exc) from exc


@router.post("/{incident_id}/cancel", response_model=IncidentModel)
def cancel_incident(incident_id: str, core: DispatchCore = Depends(get_core)) -> IncidentModel:
    try:
        return IncidentModel.from_domain(core.incidents.cancel_incident(incident_id))
    except DispatchError as exc:
        raise http_error(exc) from exc
