"""Supabase persistence for responders, incidents and alerts.

Conditional updates (``update ... eq("status", expected)``) act as the
compare-and-set: PostgREST only returns the rows it actually changed.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional, Sequence

from ..models.domain import (
    Alert,
    AlertStatus,
    Coordinate,
    Incident,
    IncidentStatus,
    IncidentType,
    Responder,
)
from .base import IncidentRepository, ResponderRepository

logger = logging.getLogger(__name__)

# Optimistic increments retry this many times before giving up.
MAX_INCREMENT_ATTEMPTS = 5


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _row_to_responder(row: dict) -> Responder:
    coordinate = None
    if row.get("latitude") is not None and row.get("longitude") is not None:
        coordinate = Coordinate(float(row["latitude"]), float(row["longitude"]))
    return Responder(
        id=str(row["id"]),
        coordinate=coordinate,
        available=bool(row.get("available")),
        last_updated=_parse_ts(row.get("last_updated")),
        completed_missions=int(row.get("completed_missions") or 0),
    )


def _responder_to_row(responder: Responder) -> dict:
    return {
        "id": responder.id,
        "latitude": responder.coordinate.latitude if responder.coordinate else None,
        "longitude": responder.coordinate.longitude if responder.coordinate else None,
        "available": responder.available,
        "last_updated": _ts(responder.last_updated),
        "completed_missions": responder.completed_missions,
    }


def _row_to_incident(row: dict) -> Incident:
    return Incident(
        id=str(row["id"]),
        origin=Coordinate(float(row["latitude"]), float(row["longitude"])),
        type=IncidentType(row["type"]),
        created_at=_parse_ts(row["created_at"]),
        status=IncidentStatus(row["status"]),
        requester_id=row.get("requester_id"),
        accepted_responder_id=row.get("accepted_responder_id"),
        accepted_at=_parse_ts(row.get("accepted_at")),
        resolved_at=_parse_ts(row.get("resolved_at")),
        cancelled=bool(row.get("cancelled")),
    )


def _incident_to_row(incident: Incident) -> dict:
    return {
        "id": incident.id,
        "latitude": incident.origin.latitude,
        "longitude": incident.origin.longitude,
        "type": incident.type.value,
        "status": incident.status.value,
        "created_at": _ts(incident.created_at),
        "requester_id": incident.requester_id,
        "accepted_responder_id": incident.accepted_responder_id,
        "accepted_at": _ts(incident.accepted_at),
        "resolved_at": _ts(incident.resolved_at),
        "cancelled": incident.cancelled,
    }


def _row_to_alert(row: dict) -> Alert:
    return Alert(
        incident_id=str(row["incident_id"]),
        responder_id=str(row["responder_id"]),
        distance_meters=float(row["distance_meters"]),
        sent_at=_parse_ts(row["sent_at"]),
        status=AlertStatus(row["status"]),
    )


def _alert_to_row(alert: Alert) -> dict:
    return {
        "incident_id": alert.incident_id,
        "responder_id": alert.responder_id,
        "distance_meters": alert.distance_meters,
        "sent_at": _ts(alert.sent_at),
        "status": alert.status.value,
    }


class SupabaseResponderRepository(ResponderRepository):
    table = "responders"

    def __init__(self, client) -> None:
        self.client = client

    def add(self, responder: Responder) -> Responder:
        # A concurrent registration of the same id leaves the first row in place.
        response = (
            self.client.table(self.table)
            .upsert(_responder_to_row(responder), on_conflict="id", ignore_duplicates=True)
            .execute()
        )
        if response.data:
            logger.info(f"Registered responder {responder.id} in database")
        stored = self.get(responder.id)
        return stored if stored is not None else responder

    def get(self, responder_id: str) -> Optional[Responder]:
        response = self.client.table(self.table).select("*").eq("id", responder_id).limit(1).execute()
        rows = response.data or []
        return _row_to_responder(rows[0]) if rows else None

    def set_available(self, responder_id: str, available: bool) -> Optional[Responder]:
        response = (
            self.client.table(self.table)
            .update({"available": available})
            .eq("id", responder_id)
            .execute()
        )
        rows = response.data or []
        return _row_to_responder(rows[0]) if rows else None

    def update_position(
        self, responder_id: str, coordinate: Coordinate, observed_at: datetime
    ) -> Optional[Responder]:
        stamp = observed_at.isoformat()
        response = (
            self.client.table(self.table)
            .update(
                {
                    "latitude": coordinate.latitude,
                    "longitude": coordinate.longitude,
                    "last_updated": stamp,
                }
            )
            .eq("id", responder_id)
            .or_(f"last_updated.is.null,last_updated.lte.{stamp}")
            .execute()
        )
        rows = response.data or []
        if rows:
            return _row_to_responder(rows[0])
        # Either unknown or the stored position is fresher.
        return self.get(responder_id)

    def increment_completed(self, responder_id: str) -> Optional[Responder]:
        for _ in range(MAX_INCREMENT_ATTEMPTS):
            current = self.get(responder_id)
            if current is None:
                return None
            response = (
                self.client.table(self.table)
                .update({"completed_missions": current.completed_missions + 1})
                .eq("id", responder_id)
                .eq("completed_missions", current.completed_missions)
                .execute()
            )
            rows = response.data or []
            if rows:
                return _row_to_responder(rows[0])
            logger.debug(f"Concurrent update on responder {responder_id}, retrying mission counter")
        raise RuntimeError(f"Could not increment completed missions for responder '{responder_id}'")

    def list_available(self) -> list[Responder]:
        response = (
            self.client.table(self.table)
            .select("*")
            .eq("available", True)
            .not_.is_("latitude", "null")
            .not_.is_("longitude", "null")
            .execute()
        )
        return [_row_to_responder(row) for row in (response.data or [])]


class SupabaseIncidentRepository(IncidentRepository):
    incidents_table = "incidents"
    alerts_table = "incident_alerts"

    def __init__(self, client) -> None:
        self.client = client

    def add_incident(self, incident: Incident) -> None:
        self.client.table(self.incidents_table).insert(_incident_to_row(incident)).execute()

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        response = (
            self.client.table(self.incidents_table).select("*").eq("id", incident_id).limit(1).execute()
        )
        rows = response.data or []
        return _row_to_incident(rows[0]) if rows else None

    def list_incidents(
        self,
        *,
        requester_id: str | None = None,
        status: IncidentStatus | None = None,
    ) -> list[Incident]:
        query = self.client.table(self.incidents_table).select("*")
        if requester_id is not None:
            query = query.eq("requester_id", requester_id)
        if status is not None:
            query = query.eq("status", status.value)
        response = query.order("created_at", desc=True).execute()
        return [_row_to_incident(row) for row in (response.data or [])]

    def find_active_for_responder(self, responder_id: str) -> Optional[Incident]:
        response = (
            self.client.table(self.incidents_table)
            .select("*")
            .eq("accepted_responder_id", responder_id)
            .eq("status", IncidentStatus.ACCEPTED.value)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return _row_to_incident(rows[0]) if rows else None

    def compare_and_set(self, expected: IncidentStatus, updated: Incident) -> bool:
        row = _incident_to_row(updated)
        row.pop("id")
        response = (
            self.client.table(self.incidents_table)
            .update(row)
            .eq("id", updated.id)
            .eq("status", expected.value)
            .execute()
        )
        return bool(response.data)

    def add_alerts(self, alerts: Sequence[Alert]) -> None:
        if not alerts:
            return
        self.client.table(self.alerts_table).insert([_alert_to_row(alert) for alert in alerts]).execute()

    def get_alert(self, incident_id: str, responder_id: str) -> Optional[Alert]:
        response = (
            self.client.table(self.alerts_table)
            .select("*")
            .eq("incident_id", incident_id)
            .eq("responder_id", responder_id)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return _row_to_alert(rows[0]) if rows else None

    def list_alerts(self, incident_id: str) -> list[Alert]:
        response = (
            self.client.table(self.alerts_table)
            .select("*")
            .eq("incident_id", incident_id)
            .order("distance_meters")
            .execute()
        )
        return [_row_to_alert(row) for row in (response.data or [])]

    def set_alert_status(
        self,
        incident_id: str,
        responder_id: str,
        expected: AlertStatus,
        new: AlertStatus,
    ) -> bool:
        response = (
            self.client.table(self.alerts_table)
            .update({"status": new.value})
            .eq("incident_id", incident_id)
            .eq("responder_id", responder_id)
            .eq("status", expected.value)
            .execute()
        )
        return bool(response.data)

    def supersede_pending_alerts(self, incident_id: str) -> list[str]:
        response = (
            self.client.table(self.alerts_table)
            .update({"status": AlertStatus.SUPERSEDED.value})
            .eq("incident_id", incident_id)
            .eq("status", AlertStatus.PENDING.value)
            .execute()
        )
        return [str(row["responder_id"]) for row in (response.data or [])]
