"""Repository contracts for responders, incidents and alerts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Sequence

from ..models.domain import Alert, AlertStatus, Coordinate, Incident, IncidentStatus, Responder


class ResponderRepository(ABC):
    """Contract for responder storage.

    Writes for one responder are atomic; position writes are gated on
    ``observed_at`` so an older report never replaces a fresher one.
    """

    @abstractmethod
    def add(self, responder: Responder) -> Responder:
        raise NotImplementedError

    @abstractmethod
    def get(self, responder_id: str) -> Optional[Responder]:
        raise NotImplementedError

    @abstractmethod
    def set_available(self, responder_id: str, available: bool) -> Optional[Responder]:
        raise NotImplementedError

    @abstractmethod
    def update_position(
        self, responder_id: str, coordinate: Coordinate, observed_at: datetime
    ) -> Optional[Responder]:
        """Store the position unless ``observed_at`` is older than ``last_updated``.

        Returns the stored record, unchanged when the report was stale, or ``None``
        for an unknown responder.
        """
        raise NotImplementedError

    @abstractmethod
    def increment_completed(self, responder_id: str) -> Optional[Responder]:
        raise NotImplementedError

    @abstractmethod
    def list_available(self) -> list[Responder]:
        raise NotImplementedError


class IncidentRepository(ABC):
    """Contract for incident and alert storage.

    ``compare_and_set`` and ``set_alert_status`` only write when the stored
    status still equals the expected one; this is the serialisation point for
    racing state transitions.
    """

    @abstractmethod
    def add_incident(self, incident: Incident) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_incident(self, incident_id: str) -> Optional[Incident]:
        raise NotImplementedError

    @abstractmethod
    def list_incidents(
        self,
        *,
        requester_id: str | None = None,
        status: IncidentStatus | None = None,
    ) -> list[Incident]:
        raise NotImplementedError

    @abstractmethod
    def find_active_for_responder(self, responder_id: str) -> Optional[Incident]:
        """Return the accepted, unresolved incident assigned to the responder."""
        raise NotImplementedError

    @abstractmethod
    def compare_and_set(self, expected: IncidentStatus, updated: Incident) -> bool:
        raise NotImplementedError

    @abstractmethod
    def add_alerts(self, alerts: Sequence[Alert]) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_alert(self, incident_id: str, responder_id: str) -> Optional[Alert]:
        raise NotImplementedError

    @abstractmethod
    def list_alerts(self, incident_id: str) -> list[Alert]:
        raise NotImplementedError

    @abstractmethod
    def set_alert_status(
        self,
        incident_id: str,
        responder_id: str,
        expected: AlertStatus,
        new: AlertStatus,
    ) -> bool:
        raise NotImplementedError

    @abstractmethod
    def supersede_pending_alerts(self, incident_id: str) -> list[str]:
        """Move every still-pending alert of the incident to superseded.

        Returns the responder ids whose alerts changed.
        """
        raise NotImplementedError
