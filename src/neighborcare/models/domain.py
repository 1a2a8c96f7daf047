"""Domain models for responders, incidents, alerts and routes."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from ..errors import InvalidStateError


class IncidentType(str, Enum):
    MEDICAL = "Medical"
    ACCIDENT = "Accident"
    CARDIAC = "Cardiac"
    OTHER = "Other"


class IncidentStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    RESOLVED = "resolved"


class AlertStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    SUPERSEDED = "superseded"


@dataclass(frozen=True, slots=True)
class Coordinate:
    latitude: float
    longitude: float

    def as_lng_lat(self) -> list[float]:
        return [self.longitude, self.latitude]


@dataclass(frozen=True, slots=True)
class Responder:
    """A responder as known to the directory.

    ``coordinate`` stays ``None`` until the first position fix is reported.
    """

    id: str
    coordinate: Optional[Coordinate] = None
    available: bool = False
    last_updated: Optional[datetime] = None
    completed_missions: int = 0


@dataclass(frozen=True, slots=True)
class Incident:
    """One emergency request from creation to resolution.

    Transitions return new instances; the status only moves forward and
    ``accepted_responder_id`` can be assigned once.
    """

    id: str
    origin: Coordinate
    type: IncidentType
    created_at: datetime
    status: IncidentStatus = IncidentStatus.PENDING
    requester_id: Optional[str] = None
    accepted_responder_id: Optional[str] = None
    accepted_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    cancelled: bool = False

    def accepted_by(self, responder_id: str, at: datetime) -> "Incident":
        if self.status is not IncidentStatus.PENDING or self.accepted_responder_id is not None:
            raise InvalidStateError(self.id, self.status.value, "accept")
        return replace(
            self,
            status=IncidentStatus.ACCEPTED,
            accepted_responder_id=responder_id,
            accepted_at=at,
        )

    def resolved(self, at: datetime) -> "Incident":
        if self.status is not IncidentStatus.ACCEPTED:
            raise InvalidStateError(self.id, self.status.value, "resolve")
        return replace(self, status=IncidentStatus.RESOLVED, resolved_at=at)

    def cancelled_at(self, at: datetime) -> "Incident":
        if self.status is not IncidentStatus.PENDING:
            raise InvalidStateError(self.id, self.status.value, "cancel")
        return replace(self, status=IncidentStatus.RESOLVED, resolved_at=at, cancelled=True)

    @property
    def channel(self) -> str:
        return incident_channel(self.id)


@dataclass(frozen=True, slots=True)
class Alert:
    incident_id: str
    responder_id: str
    distance_meters: float
    sent_at: datetime
    status: AlertStatus = AlertStatus.PENDING


@dataclass(frozen=True, slots=True)
class MatchedResponder:
    responder: Responder
    distance_meters: float


@dataclass(frozen=True, slots=True)
class MatchResult:
    responders: list[MatchedResponder]
    radius_used: float


@dataclass(frozen=True, slots=True)
class RoutePath:
    """A path between a responder and an incident origin.

    ``degraded`` marks a straight-line fallback produced without the routing
    service; such paths carry no duration.
    """

    polyline: list[Coordinate]
    distance_meters: float
    duration_seconds: Optional[float]
    computed_at: datetime
    incident_id: Optional[str] = None
    responder_id: Optional[str] = None
    degraded: bool = False


@dataclass(frozen=True, slots=True)
class CreateIncidentResult:
    incident: Incident
    alerts: list[Alert] = field(default_factory=list)
    radius_used: float = 0.0

    @property
    def notify_count(self) -> int:
        return len(self.alerts)


RESPONDERS_AVAILABLE_CHANNEL = "responders-available"


def incident_channel(incident_id: str) -> str:
    return f"incident:{incident_id}"


def user_channel(member_id: str) -> str:
    return f"user:{member_id}"
