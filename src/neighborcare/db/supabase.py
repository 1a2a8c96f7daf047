"""Supabase client used by the ``supabase`` storage backend."""

import logging
from functools import lru_cache

from supabase import Client, create_client

from ..config import settings

logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase_client() -> Client | None:
    """Return the shared client, or None when DISPATCH_SUPABASE_URL/KEY are unset.

    Creating the client does not contact the project; the first failing query
    is where network problems show up.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logger.warning("Supabase is not configured (DISPATCH_SUPABASE_URL or DISPATCH_SUPABASE_KEY missing)")
        return None

    try:
        client = create_client(settings.supabase_url, settings.supabase_key)
    except Exception as exc:
        logger.error(f"Could not create Supabase client for {settings.supabase_url}: {exc}")
        return None
    logger.info(f"Using Supabase project {settings.supabase_url} for dispatch storage")
    return client


# Tables used by persistence.database:
#
#   responders(id text pk, latitude float8, longitude float8, available bool,
#              last_updated timestamptz, completed_missions int)
#   incidents(id text pk, latitude float8, longitude float8, type text, status text,
#             created_at timestamptz, requester_id text, accepted_responder_id text,
#             accepted_at timestamptz, resolved_at timestamptz, cancelled bool)
#   incident_alerts(incident_id text, responder_id text, status text,
#                   distance_meters float8, sent_at timestamptz,
#                   primary key (incident_id, responder_id))
