"""Incident matcher: pick the responders to alert for an SOS origin."""

from __future__ import annotations

import logging

from ..config import settings
from ..models.domain import Coordinate, MatchedResponder, MatchResult
from .directory import ResponderDirectory
from .geospatial import distance_meters

logger = logging.getLogger(__name__)


class IncidentMatcher:
    """Two-tier radius search over available responders.

    Responders within ``primary_radius_m`` are used when there is at least one;
    otherwise the search widens once to ``fallback_radius_m`` and stops there.
    An empty result is a valid "no coverage" outcome.
    """

    def __init__(
        self,
        directory: ResponderDirectory,
        primary_radius_m: float | None = None,
        fallback_radius_m: float | None = None,
    ) -> None:
        self.directory = directory
        self.primary_radius_m = primary_radius_m if primary_radius_m is not None else settings.primary_radius_m
        self.fallback_radius_m = fallback_radius_m if fallback_radius_m is not None else settings.fallback_radius_m

    def match_responders(self, origin: Coordinate) -> MatchResult:
        candidates = [
            MatchedResponder(responder, distance_meters(origin, responder.coordinate))
            for responder in self.directory.list_available()
            if responder.coordinate is not None
        ]
        candidates.sort(key=lambda match: (match.distance_meters, match.responder.id))

        for radius in (self.primary_radius_m, self.fallback_radius_m):
            within = [match for match in candidates if match.distance_meters <= radius]
            if within:
                logger.info(f"Matched {len(within)} responder(s) within {radius:.0f} m")
                return MatchResult(responders=within, radius_used=radius)

        logger.info(
            f"No available responders within {self.fallback_radius_m:.0f} m of "
            f"({origin.latitude:.5f}, {origin.longitude:.5f})"
        )
        return MatchResult(responders=[], radius_used=self.fallback_radius_m)
