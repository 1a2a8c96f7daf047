"""Responder directory: availability and last-known positions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ..errors import NotFoundError
from ..models.domain import Coordinate, Responder
from ..persistence.base import ResponderRepository

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResponderDirectory:
    def __init__(
        self,
        repository: ResponderRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.clock = clock

    def register(
        self,
        responder_id: str,
        *,
        available: bool = False,
        coordinate: Optional[Coordinate] = None,
    ) -> Responder:
        """Create a responder record, or return the existing one unchanged."""
        responder = Responder(
            id=responder_id,
            coordinate=coordinate,
            available=available,
            last_updated=self.clock() if coordinate is not None else None,
        )
        return self.repository.add(responder)

    def get(self, responder_id: str) -> Responder:
        responder = self.repository.get(responder_id)
        if responder is None:
            raise NotFoundError("responder", responder_id)
        return responder

    def set_availability(
        self,
        responder_id: str,
        available: bool,
        coordinate: Optional[Coordinate] = None,
        observed_at: Optional[datetime] = None,
    ) -> Responder:
        responder = self.repository.set_available(responder_id, available)
        if responder is None:
            raise NotFoundError("responder", responder_id)
        logger.info(f"Responder {responder_id} is now {'available' if available else 'unavailable'}")
        if coordinate is not None:
            self.update_location(responder_id, coordinate, observed_at)
            responder = self.get(responder_id)
        return responder

    def update_location(
        self,
        responder_id: str,
        coordinate: Coordinate,
        observed_at: Optional[datetime] = None,
    ) -> bool:
        """Store a position report; returns False when it was older than the stored one."""
        observed_at = observed_at or self.clock()
        if observed_at.tzinfo is None:
            observed_at = observed_at.replace(tzinfo=timezone.utc)
        stored = self.repository.update_position(responder_id, coordinate, observed_at)
        if stored is None:
            raise NotFoundError("responder", responder_id)
        if stored.last_updated != observed_at or stored.coordinate != coordinate:
            logger.warning(
                f"Ignoring stale position for responder {responder_id}: "
                f"reported {observed_at.isoformat()}, stored {stored.last_updated}"
            )
            return False
        return True

    def list_available(self) -> list[Responder]:
        return self.repository.list_available()

    def record_completed_mission(self, responder_id: str) -> Responder:
        responder = self.repository.increment_completed(responder_id)
        if responder is None:
            raise NotFoundError("responder", responder_id)
        return responder
