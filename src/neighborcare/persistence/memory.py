"""In-memory repositories used by default and in tests."""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Optional, Sequence

from ..locks import KeyedLocks
from ..models.domain import Alert, AlertStatus, Coordinate, Incident, IncidentStatus, Responder
from .base import IncidentRepository, ResponderRepository


class InMemoryResponderRepository(ResponderRepository):
    """Responder records keyed by id, one lock per responder."""

    def __init__(self) -> None:
        self._records: dict[str, Responder] = {}
        self._locks = KeyedLocks()

    def add(self, responder: Responder) -> Responder:
        with self._locks.hold(responder.id):
            existing = self._records.get(responder.id)
            if existing is not None:
                return existing
            self._records[responder.id] = responder
            return responder

    def get(self, responder_id: str) -> Optional[Responder]:
        return self._records.get(responder_id)

    def set_available(self, responder_id: str, available: bool) -> Optional[Responder]:
        with self._locks.hold(responder_id):
            current = self._records.get(responder_id)
            if current is None:
                return None
            updated = replace(current, available=available)
            self._records[responder_id] = updated
            return updated

    def update_position(
        self, responder_id: str, coordinate: Coordinate, observed_at: datetime
    ) -> Optional[Responder]:
        with self._locks.hold(responder_id):
            current = self._records.get(responder_id)
            if current is None:
                return None
            if current.last_updated is not None and observed_at < current.last_updated:
                return current
            updated = replace(current, coordinate=coordinate, last_updated=observed_at)
            self._records[responder_id] = updated
            return updated

    def increment_completed(self, responder_id: str) -> Optional[Responder]:
        with self._locks.hold(responder_id):
            current = self._records.get(responder_id)
            if current is None:
                return None
            updated = replace(current, completed_missions=current.completed_missions + 1)
            self._records[responder_id] = updated
            return updated

    def list_available(self) -> list[Responder]:
        return [
            responder
            for responder in list(self._records.values())
            if responder.available and responder.coordinate is not None
        ]


class InMemoryIncidentRepository(IncidentRepository):
    """Incidents and their alerts, one lock per incident."""

    def __init__(self) -> None:
        self._incidents: dict[str, Incident] = {}
        self._alerts: dict[str, dict[str, Alert]] = {}
        self._locks = KeyedLocks()
        self._index_lock = threading.Lock()

    def add_incident(self, incident: Incident) -> None:
        with self._index_lock:
            if incident.id in self._incidents:
                raise ValueError(f"Incident '{incident.id}' already exists")
            self._incidents[incident.id] = incident
            self._alerts[incident.id] = {}

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        return self._incidents.get(incident_id)

    def list_incidents(
        self,
        *,
        requester_id: str | None = None,
        status: IncidentStatus | None = None,
    ) -> list[Incident]:
        incidents = list(self._incidents.values())
        if requester_id is not None:
            incidents = [incident for incident in incidents if incident.requester_id == requester_id]
        if status is not None:
            incidents = [incident for incident in incidents if incident.status is status]
        return sorted(incidents, key=lambda incident: incident.created_at, reverse=True)

    def find_active_for_responder(self, responder_id: str) -> Optional[Incident]:
        for incident in list(self._incidents.values()):
            if incident.status is IncidentStatus.ACCEPTED and incident.accepted_responder_id == responder_id:
                return incident
        return None

    def compare_and_set(self, expected: IncidentStatus, updated: Incident) -> bool:
        with self._locks.hold(updated.id):
            current = self._incidents.get(updated.id)
            if current is None or current.status is not expected:
                return False
            self._incidents[updated.id] = updated
            return True

    def add_alerts(self, alerts: Sequence[Alert]) -> None:
        for alert in alerts:
            with self._locks.hold(alert.incident_id):
                self._alerts.setdefault(alert.incident_id, {})[alert.responder_id] = alert

    def get_alert(self, incident_id: str, responder_id: str) -> Optional[Alert]:
        return self._alerts.get(incident_id, {}).get(responder_id)

    def list_alerts(self, incident_id: str) -> list[Alert]:
        alerts = list(self._alerts.get(incident_id, {}).values())
        return sorted(alerts, key=lambda alert: alert.distance_meters)

    def set_alert_status(
        self,
        incident_id: str,
        responder_id: str,
        expected: AlertStatus,
        new: AlertStatus,
    ) -> bool:
        with self._locks.hold(incident_id):
            alerts = self._alerts.get(incident_id, {})
            current = alerts.get(responder_id)
            if current is None or current.status is not expected:
                return False
            alerts[responder_id] = replace(current, status=new)
            return True

    def supersede_pending_alerts(self, incident_id: str) -> list[str]:
        changed: list[str] = []
        with self._locks.hold(incident_id):
            alerts = self._alerts.get(incident_id, {})
            for responder_id, alert in alerts.items():
                if alert.status is AlertStatus.PENDING:
                    alerts[responder_id] = replace(alert, status=AlertStatus.SUPERSEDED)
                    changed.append(responder_id)
        return changed
