"""Incident lifecycle: creation, acceptance, decline, resolution.

Every operation on one incident runs under that incident's lock and re-checks
its precondition through the repository's compare-and-set, so two responders
accepting at once yield exactly one winner.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from ..errors import AlreadyAcceptedError, InvalidStateError, NotFoundError, ResponderBusyError
from ..locks import KeyedLocks
from ..models.domain import (
    RESPONDERS_AVAILABLE_CHANNEL,
    Alert,
    AlertStatus,
    Coordinate,
    CreateIncidentResult,
    Incident,
    IncidentStatus,
    IncidentType,
    incident_channel,
)
from ..persistence.base import IncidentRepository
from .directory import ResponderDirectory, utcnow
from .matcher import IncidentMatcher
from .relay import Relay

logger = logging.getLogger(__name__)


def incident_payload(incident: Incident) -> dict:
    return {
        "incident_id": incident.id,
        "type": incident.type.value,
        "status": incident.status.value,
        "latitude": incident.origin.latitude,
        "longitude": incident.origin.longitude,
        "requester_id": incident.requester_id,
        "accepted_responder_id": incident.accepted_responder_id,
        "created_at": incident.created_at.isoformat(),
        "resolved_at": incident.resolved_at.isoformat() if incident.resolved_at else None,
        "cancelled": incident.cancelled,
    }


class IncidentStateMachine:
    def __init__(
        self,
        repository: IncidentRepository,
        directory: ResponderDirectory,
        matcher: IncidentMatcher,
        relay: Relay,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self.repository = repository
        self.directory = directory
        self.matcher = matcher
        self.relay = relay
        self.clock = clock
        self.id_factory = id_factory
        self._locks = KeyedLocks()
        # Taken before the incident lock so a responder holds at most one incident.
        self._responder_locks = KeyedLocks()
        self._closure_listeners: list[Callable[[str], None]] = []

    def get_incident(self, incident_id: str) -> Incident:
        incident = self.repository.get_incident(incident_id)
        if incident is None:
            raise NotFoundError("incident", incident_id)
        return incident

    def list_alerts(self, incident_id: str) -> list[Alert]:
        self.get_incident(incident_id)
        return self.repository.list_alerts(incident_id)

    def list_incidents(
        self,
        *,
        requester_id: str | None = None,
        status: IncidentStatus | None = None,
    ) -> list[Incident]:
        return self.repository.list_incidents(requester_id=requester_id, status=status)

    def create_incident(
        self,
        origin: Coordinate,
        incident_type: IncidentType,
        requester_id: Optional[str] = None,
    ) -> CreateIncidentResult:
        now = self.clock()
        incident = Incident(
            id=self.id_factory(),
            origin=origin,
            type=incident_type,
            created_at=now,
            requester_id=requester_id,
        )
        with self._locks.hold(incident.id):
            self.repository.add_incident(incident)
            if requester_id is not None:
                self.relay.join_member(requester_id, incident.channel)

            match = self.matcher.match_responders(origin)
            alerts = [
                Alert(
                    incident_id=incident.id,
                    responder_id=matched.responder.id,
                    distance_meters=matched.distance_meters,
                    sent_at=now,
                )
                for matched in match.responders
            ]
            self.repository.add_alerts(alerts)

        logger.info(
            f"Incident {incident.id} ({incident_type.value}) created; "
            f"{len(alerts)} responder(s) alerted within {match.radius_used:.0f} m"
        )
        base = incident_payload(incident)
        for alert in alerts:
            self.relay.publish(
                RESPONDERS_AVAILABLE_CHANNEL,
                "incident_alert",
                {**base, "responder_id": alert.responder_id, "distance_meters": alert.distance_meters},
                members=[alert.responder_id],
            )
        return CreateIncidentResult(incident=incident, alerts=alerts, radius_used=match.radius_used)

    def add_closure_listener(self, listener: Callable[[str], None]) -> None:
        """Call ``listener(incident_id)`` whenever an incident is resolved or cancelled."""
        self._closure_listeners.append(listener)

    def accept_incident(self, incident_id: str, responder_id: str) -> Incident:
        with self._responder_locks.hold(responder_id), self._locks.hold(incident_id):
            incident = self.get_incident(incident_id)
            if incident.status is not IncidentStatus.PENDING:
                raise AlreadyAcceptedError(incident_id, incident.status.value)

            alert = self.repository.get_alert(incident_id, responder_id)
            if alert is None or alert.status is not AlertStatus.PENDING:
                raise NotFoundError(
                    "alert",
                    f"{incident_id}/{responder_id}",
                    f"No pending alert for responder '{responder_id}' on incident '{incident_id}'",
                )

            active = self.repository.find_active_for_responder(responder_id)
            if active is not None:
                raise ResponderBusyError(responder_id, active.id)

            accepted = incident.accepted_by(responder_id, self.clock())
            if not self.repository.compare_and_set(IncidentStatus.PENDING, accepted):
                current = self.get_incident(incident_id)
                raise AlreadyAcceptedError(incident_id, current.status.value)

            self.repository.set_alert_status(incident_id, responder_id, AlertStatus.PENDING, AlertStatus.ACCEPTED)
            superseded = self.repository.supersede_pending_alerts(incident_id)

        logger.info(
            f"Incident {incident_id} accepted by responder {responder_id}; "
            f"{len(superseded)} other alert(s) superseded"
        )
        self.relay.join_member(responder_id, accepted.channel)
        self.relay.publish(
            accepted.channel,
            "responder_accepted",
            {**incident_payload(accepted), "responder_id": responder_id},
        )
        return accepted

    def decline_incident(self, incident_id: str, responder_id: str) -> bool:
        with self._locks.hold(incident_id):
            self.get_incident(incident_id)
            changed = self.repository.set_alert_status(
                incident_id, responder_id, AlertStatus.PENDING, AlertStatus.DECLINED
            )
        if changed:
            logger.info(f"Responder {responder_id} declined incident {incident_id}")
            self.relay.publish(
                incident_channel(incident_id),
                "responder_declined",
                {"incident_id": incident_id, "responder_id": responder_id},
            )
        return changed

    def resolve_incident(self, incident_id: str) -> Incident:
        with self._locks.hold(incident_id):
            incident = self.get_incident(incident_id)
            if incident.status is not IncidentStatus.ACCEPTED:
                raise InvalidStateError(incident_id, incident.status.value, "resolve")
            resolved = incident.resolved(self.clock())
            if not self.repository.compare_and_set(IncidentStatus.ACCEPTED, resolved):
                current = self.get_incident(incident_id)
                raise InvalidStateError(incident_id, current.status.value, "resolve")
            self.directory.record_completed_mission(resolved.accepted_responder_id)

        logger.info(f"Incident {incident_id} resolved by responder {resolved.accepted_responder_id}")
        self._broadcast_closure(resolved)
        return resolved

    def cancel_incident(self, incident_id: str) -> Incident:
        """Close a pending incident that never alerted anyone.

        Once alerts exist the incident must go through acceptance before it can
        be resolved.
        """
        with self._locks.hold(incident_id):
            incident = self.get_incident(incident_id)
            if incident.status is not IncidentStatus.PENDING or self.repository.list_alerts(incident_id):
                raise InvalidStateError(incident_id, incident.status.value, "cancel")
            cancelled = incident.cancelled_at(self.clock())
            if not self.repository.compare_and_set(IncidentStatus.PENDING, cancelled):
                current = self.get_incident(incident_id)
                raise InvalidStateError(incident_id, current.status.value, "cancel")

        logger.info(f"Incident {incident_id} cancelled before any responder was alerted")
        self._broadcast_closure(cancelled)
        return cancelled

    def _broadcast_closure(self, incident: Incident) -> None:
        self.relay.publish(incident.channel, "incident_resolved", incident_payload(incident))
        self.relay.close_channel(incident.channel)
        for listener in self._closure_listeners:
            listener(incident.id)
