"""Incident request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.domain import (
    Alert,
    AlertStatus,
    Incident,
    IncidentStatus,
    IncidentType,
    RoutePath,
)
from .responders import ResponderModel


class CreateIncidentRequest(BaseModel):
    requester_id: Optional[str] = Field(default=None, description="User raising the SOS.")
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    incident_type: IncidentType = IncidentType.OTHER


class ResponderActionRequest(BaseModel):
    responder_id: str


class IncidentModel(BaseModel):
    id: str
    type: IncidentType
    status: IncidentStatus
    latitude: float
    longitude: float
    created_at: datetime
    requester_id: Optional[str] = None
    accepted_responder_id: Optional[str] = None
    accepted_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    cancelled: bool = False

    @classmethod
    def from_domain(cls, incident: Incident) -> "IncidentModel":
        return cls(
            id=incident.id,
            type=incident.type,
            status=incident.status,
            latitude=incident.origin.latitude,
            longitude=incident.origin.longitude,
            created_at=incident.created_at,
            requester_id=incident.requester_id,
            accepted_responder_id=incident.accepted_responder_id,
            accepted_at=incident.accepted_at,
            resolved_at=incident.resolved_at,
            cancelled=incident.cancelled,
        )


class AlertModel(BaseModel):
    incident_id: str
    responder_id: str
    status: AlertStatus
    distance_meters: float
    sent_at: datetime

    @classmethod
    def from_domain(cls, alert: Alert) -> "AlertModel":
        return cls(
            incident_id=alert.incident_id,
            responder_id=alert.responder_id,
            status=alert.status,
            distance_meters=alert.distance_meters,
            sent_at=alert.sent_at,
        )


class CreateIncidentResponse(BaseModel):
    incident: IncidentModel
    notify_count: int
    radius_used: float


class IncidentStatusResponse(BaseModel):
    incident: IncidentModel
    responder: Optional[ResponderModel] = None


class AlertsResponse(BaseModel):
    alerts: List[AlertModel]


class DeclineResponse(BaseModel):
    incident_id: str
    responder_id: str
    declined: bool


class RoutePathModel(BaseModel):
    incident_id: Optional[str] = None
    responder_id: Optional[str] = None
    polyline: List[List[float]] = Field(..., description="Ordered [latitude, longitude] pairs.")
    distance_meters: float
    duration_seconds: Optional[float] = None
    computed_at: datetime
    degraded: bool = False

    @classmethod
    def from_domain(cls, path: RoutePath) -> "RoutePathModel":
        return cls(
            incident_id=path.incident_id,
            responder_id=path.responder_id,
            polyline=[[point.latitude, point.longitude] for point in path.polyline],
            distance_meters=path.distance_meters,
            duration_seconds=path.duration_seconds,
            computed_at=path.computed_at,
            degraded=path.degraded,
        )
