"""Route estimation between a responder and an incident origin."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

import httpx

from ...models.domain import Coordinate, RoutePath
from ..geospatial import distance_meters

logger = logging.getLogger(__name__)


class RoutingService(Protocol):
    def route(self, start_lng: float, start_lat: float, end_lng: float, end_lat: float) -> dict:
        ...


# Failures of the routing service that are answered with a straight line.
ROUTING_FAILURES = (httpx.HTTPError, ConnectionError, TimeoutError, ValueError, KeyError, TypeError)


class RouteEstimator:
    """Ask the routing service for a path, degrading to a straight line.

    With no routing service configured every estimate is the straight-line
    fallback, marked ``degraded``.
    """

    def __init__(
        self,
        routing: Optional[RoutingService] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.routing = routing
        self.clock = clock

    def estimate_route(
        self,
        start: Coordinate,
        end: Coordinate,
        *,
        incident_id: str | None = None,
        responder_id: str | None = None,
    ) -> RoutePath:
        if self.routing is None:
            return self._straight_line(start, end, incident_id, responder_id)

        try:
            payload = self.routing.route(start.longitude, start.latitude, end.longitude, end.latitude)
            polyline = [Coordinate(float(lat), float(lng)) for lng, lat in payload["coordinates"]]
            if len(polyline) < 2:
                raise ValueError("route geometry has fewer than two points")
            route_distance = float(payload["distance_meters"])
            duration = payload.get("duration_seconds")
            duration = float(duration) if duration is not None else None
        except ROUTING_FAILURES as exc:
            logger.warning(f"Routing unavailable, using straight line for incident {incident_id}: {exc}")
            return self._straight_line(start, end, incident_id, responder_id)

        return RoutePath(
            polyline=polyline,
            distance_meters=route_distance,
            duration_seconds=duration,
            computed_at=self.clock(),
            incident_id=incident_id,
            responder_id=responder_id,
        )

    def _straight_line(
        self,
        start: Coordinate,
        end: Coordinate,
        incident_id: str | None,
        responder_id: str | None,
    ) -> RoutePath:
        return RoutePath(
            polyline=[start, end],
            distance_meters=distance_meters(start, end),
            duration_seconds=None,
            computed_at=self.clock(),
            incident_id=incident_id,
            responder_id=responder_id,
            degraded=True,
        )
