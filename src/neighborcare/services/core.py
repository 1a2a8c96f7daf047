"""Wiring of the dispatch services behind one object the API can hold."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..config import Settings, settings as default_settings
from ..models.domain import RESPONDERS_AVAILABLE_CHANNEL, Coordinate, Responder
from ..persistence.base import IncidentRepository, ResponderRepository
from ..persistence.memory import InMemoryIncidentRepository, InMemoryResponderRepository
from .directory import ResponderDirectory
from .incidents import IncidentStateMachine
from .matcher import IncidentMatcher
from .relay import Relay
from .routing.estimator import RouteEstimator, RoutingService
from .tracking import TrackingService

logger = logging.getLogger(__name__)


@dataclass
class DispatchCore:
    directory: ResponderDirectory
    matcher: IncidentMatcher
    incidents: IncidentStateMachine
    relay: Relay
    estimator: RouteEstimator
    tracking: TrackingService

    def set_availability(
        self,
        responder_id: str,
        available: bool,
        coordinate: Optional[Coordinate] = None,
        observed_at: Optional[datetime] = None,
    ) -> Responder:
        """Toggle availability and the responder's membership of the alert channel."""
        responder = self.directory.set_availability(responder_id, available, coordinate, observed_at)
        if available:
            self.relay.join_member(responder_id, RESPONDERS_AVAILABLE_CHANNEL)
        else:
            self.relay.leave_member(responder_id, RESPONDERS_AVAILABLE_CHANNEL)
        return responder

    def close(self) -> None:
        self.tracking.shutdown()


def _repositories(config: Settings) -> tuple[ResponderRepository, IncidentRepository]:
    if config.storage_backend == "supabase":
        from ..db.supabase import get_supabase_client
        from ..persistence.database import SupabaseIncidentRepository, SupabaseResponderRepository

        client = get_supabase_client()
        if client is None:
            raise RuntimeError(
                "storage_backend is 'supabase' but Supabase is not configured. "
                "Set DISPATCH_SUPABASE_URL and DISPATCH_SUPABASE_KEY."
            )
        return SupabaseResponderRepository(client), SupabaseIncidentRepository(client)
    return InMemoryResponderRepository(), InMemoryIncidentRepository()


def _routing_service(config: Settings) -> Optional[RoutingService]:
    if not config.osrm_base_url:
        logger.info("OSRM is not configured; routes will be straight-line estimates")
        return None
    from .routing.osrm_client import OSRMClient

    return OSRMClient(
        base_url=config.osrm_base_url,
        profile=config.osrm_profile,
        timeout=config.osrm_timeout_seconds,
        max_retries=config.osrm_max_retries,
        backoff_seconds=config.osrm_backoff_seconds,
    )


def build_core(
    config: Settings | None = None,
    *,
    responders: ResponderRepository | None = None,
    incidents: IncidentRepository | None = None,
    routing: RoutingService | None = None,
) -> DispatchCore:
    """Assemble the services; explicit arguments override what settings select."""
    config = config or default_settings
    if responders is None or incidents is None:
        default_responders, default_incidents = _repositories(config)
        responders = responders or default_responders
        incidents = incidents or default_incidents
    if routing is None:
        routing = _routing_service(config)

    relay = Relay()
    directory = ResponderDirectory(responders)
    matcher = IncidentMatcher(directory, config.primary_radius_m, config.fallback_radius_m)
    estimator = RouteEstimator(routing)
    state_machine = IncidentStateMachine(incidents, directory, matcher, relay)
    tracking = TrackingService(directory, incidents, estimator, relay, max_workers=config.route_workers)
    state_machine.add_closure_listener(tracking.forget)
    return DispatchCore(
        directory=directory,
        matcher=matcher,
        incidents=state_machine,
        relay=relay,
        estimator=estimator,
        tracking=tracking,
    )
