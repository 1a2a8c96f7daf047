"""Error taxonomy for dispatch operations."""

from __future__ import annotations

from typing import Any


class DispatchError(Exception):
    """Base class for failures surfaced to callers of the dispatch core."""

    code = "dispatch_error"

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": str(self)}


class NotFoundError(DispatchError):
    """A referenced responder, incident or alert does not exist."""

    code = "not_found"

    def __init__(self, kind: str, key: str, message: str | None = None) -> None:
        self.kind = kind
        self.key = key
        super().__init__(message or f"{kind} '{key}' not found")

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "kind": self.kind, "key": self.key, "message": str(self)}


class InvalidStateError(DispatchError):
    """The incident is in a state that forbids the requested operation.

    ``current_status`` is included so callers can refresh and decide whether they
    lost a race or sent a bad request.
    """

    code = "invalid_state"

    def __init__(self, incident_id: str, current_status: str, operation: str) -> None:
        self.incident_id = incident_id
        self.current_status = current_status
        self.operation = operation
        super().__init__(f"Cannot {operation} incident '{incident_id}' while it is {current_status}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "incident_id": self.incident_id,
            "current_status": self.current_status,
            "operation": self.operation,
            "message": str(self),
        }


class AlreadyAcceptedError(InvalidStateError):
    """Another responder's acceptance won; the incident is no longer pending."""

    code = "already_accepted"

    def __init__(self, incident_id: str, current_status: str) -> None:
        super().__init__(incident_id, current_status, "accept")


class ResponderBusyError(DispatchError):
    """The responder is still assigned to another incident that is not resolved."""

    code = "responder_busy"

    def __init__(self, responder_id: str, active_incident_id: str) -> None:
        self.responder_id = responder_id
        self.active_incident_id = active_incident_id
        super().__init__(
            f"Responder '{responder_id}' is already assigned to incident '{active_incident_id}'"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "responder_id": self.responder_id,
            "active_incident_id": self.active_incident_id,
            "message": str(self),
        }
