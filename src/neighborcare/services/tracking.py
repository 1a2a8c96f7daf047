"""Live tracking: relay responder positions and keep the route current."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..models.domain import Coordinate, Incident, IncidentStatus, RoutePath
from ..persistence.base import IncidentRepository
from .directory import ResponderDirectory
from .relay import Relay
from .routing.estimator import RouteEstimator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionReport:
    """Outcome of one position report.

    ``accepted`` is False for a report older than the stored position.
    ``recompute`` resolves to the new RoutePath, or None if it was discarded.
    """

    accepted: bool
    incident_id: Optional[str] = None
    recompute: Optional[Future] = None


def route_payload(path: RoutePath) -> dict:
    return {
        "incident_id": path.incident_id,
        "responder_id": path.responder_id,
        "polyline": [[point.latitude, point.longitude] for point in path.polyline],
        "distance_meters": path.distance_meters,
        "duration_seconds": path.duration_seconds,
        "computed_at": path.computed_at.isoformat(),
        "degraded": path.degraded,
    }


class TrackingService:
    """Fans out position reports of assigned responders.

    Route recomputation runs on a thread pool; a result that arrives after
    the incident left the ``accepted`` state is dropped.
    """

    def __init__(
        self,
        directory: ResponderDirectory,
        incidents: IncidentRepository,
        estimator: RouteEstimator,
        relay: Relay,
        max_workers: int = 4,
    ) -> None:
        self.directory = directory
        self.incidents = incidents
        self.estimator = estimator
        self.relay = relay
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="route")
        # incident id -> (report sequence, path); a later report always wins.
        self._routes: dict[str, tuple[int, RoutePath]] = {}
        self._sequence: dict[str, int] = {}
        self._routes_lock = threading.Lock()

    def report_position(
        self,
        responder_id: str,
        coordinate: Coordinate,
        observed_at: Optional[datetime] = None,
    ) -> PositionReport:
        """Store a position and, for an assigned responder, start a route recompute."""
        if not self.directory.update_location(responder_id, coordinate, observed_at):
            return PositionReport(accepted=False)

        incident = self.incidents.find_active_for_responder(responder_id)
        if incident is None:
            return PositionReport(accepted=True)

        self.relay.publish(
            incident.channel,
            "responder_location_update",
            {
                "incident_id": incident.id,
                "responder_id": responder_id,
                "latitude": coordinate.latitude,
                "longitude": coordinate.longitude,
            },
        )
        with self._routes_lock:
            sequence = self._sequence.get(incident.id, 0) + 1
            self._sequence[incident.id] = sequence
        recompute = self._executor.submit(
            self._recompute, incident.id, sequence, responder_id, coordinate, incident.origin
        )
        return PositionReport(accepted=True, incident_id=incident.id, recompute=recompute)

    def latest_route(self, incident_id: str) -> Optional[RoutePath]:
        with self._routes_lock:
            entry = self._routes.get(incident_id)
        return entry[1] if entry is not None else None

    def forget(self, incident_id: str) -> None:
        """Drop the cached route of a closed incident."""
        with self._routes_lock:
            self._routes.pop(incident_id, None)
            self._sequence.pop(incident_id, None)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _recompute(
        self,
        incident_id: str,
        sequence: int,
        responder_id: str,
        start: Coordinate,
        end: Coordinate,
    ) -> Optional[RoutePath]:
        path = self.estimator.estimate_route(start, end, incident_id=incident_id, responder_id=responder_id)

        incident = self.incidents.get_incident(incident_id)
        if self._is_closed(incident_id, incident):
            logger.info(f"Discarding route for incident {incident_id}: no longer being tracked")
            self.forget(incident_id)
            return None

        with self._routes_lock:
            previous = self._routes.get(incident_id)
            if previous is not None and previous[0] > sequence:
                return None
            self._routes[incident_id] = (sequence, path)
        # The incident may have closed while the path was being stored.
        if self._is_closed(incident_id):
            self.forget(incident_id)
            return None
        self.relay.publish(incident.channel, "route_update", route_payload(path))
        return path

    def _is_closed(self, incident_id: str, incident: Optional[Incident] = None) -> bool:
        incident = incident or self.incidents.get_incident(incident_id)
        return incident is None or incident.status is not IncidentStatus.ACCEPTED
