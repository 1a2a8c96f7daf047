"""Publish/subscribe relay for live incident events.

Channels are plain strings: ``incident:<id>``, ``responders-available`` and
``user:<id>``. Delivery is fire-and-forget and at-most-once; nothing is queued
for subscribers that are not connected when an event is published.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from ..models.domain import user_channel

logger = logging.getLogger(__name__)


class RelayDeliveryError(Exception):
    """An event could not be handed to a subscriber."""


class Subscription:
    """One live connection of a member.

    Events are pushed onto ``queue``. When the subscription belongs to an event
    loop (a WebSocket handler) the push is scheduled on that loop, so publishers
    running in worker threads never touch the queue directly.
    """

    def __init__(self, member_id: str, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self.member_id = member_id
        self.channels: set[str] = set()
        self.queue: asyncio.Queue = asyncio.Queue()
        self.connected = True
        self._loop = loop

    def deliver(self, event: dict[str, Any]) -> None:
        if not self.connected:
            raise RelayDeliveryError(f"subscriber {self.member_id} is disconnected")
        if self._loop is None:
            self.queue.put_nowait(event)
            return
        try:
            self._loop.call_soon_threadsafe(self.queue.put_nowait, event)
        except RuntimeError as exc:
            # Raised once the connection's loop has been closed.
            raise RelayDeliveryError(f"subscriber {self.member_id} loop is closed") from exc

    def drain(self) -> list[dict[str, Any]]:
        """Return every queued event without waiting."""
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events


class Relay:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._channels: dict[str, set[Subscription]] = defaultdict(set)
        self._connections: dict[str, set[Subscription]] = defaultdict(set)
        self._memberships: dict[str, set[str]] = defaultdict(set)

    def connect(self, member_id: str, loop: Optional[asyncio.AbstractEventLoop] = None) -> Subscription:
        """Open a subscription for ``member_id``.

        The subscription joins the member's user channel and every channel the
        member was joined to before connecting.
        """
        subscription = Subscription(member_id, loop)
        with self._lock:
            self._connections[member_id].add(subscription)
            for channel in {user_channel(member_id), *self._memberships.get(member_id, ())}:
                self._attach(subscription, channel)
            count = len(self._connections[member_id])
        logger.info(f"Member {member_id} connected ({count} connection(s))")
        return subscription

    def disconnect(self, subscription: Subscription) -> None:
        with self._lock:
            subscription.connected = False
            for channel in list(subscription.channels):
                self._detach(subscription, channel)
            connections = self._connections.get(subscription.member_id)
            if connections is not None:
                connections.discard(subscription)
                if not connections:
                    del self._connections[subscription.member_id]
        logger.info(f"Member {subscription.member_id} disconnected")

    def subscribe(self, subscription: Subscription, channel: str) -> None:
        with self._lock:
            self._attach(subscription, channel)

    def unsubscribe(self, subscription: Subscription, channel: str) -> None:
        with self._lock:
            self._detach(subscription, channel)

    def join_member(self, member_id: str, channel: str) -> None:
        """Join the member's current and future connections to ``channel``."""
        with self._lock:
            self._memberships[member_id].add(channel)
            for subscription in self._connections.get(member_id, ()):
                self._attach(subscription, channel)

    def leave_member(self, member_id: str, channel: str) -> None:
        with self._lock:
            channels = self._memberships.get(member_id)
            if channels is not None:
                channels.discard(channel)
                if not channels:
                    del self._memberships[member_id]
            for subscription in list(self._connections.get(member_id, ())):
                self._detach(subscription, channel)

    def close_channel(self, channel: str) -> None:
        with self._lock:
            for member_id in [member for member, channels in self._memberships.items() if channel in channels]:
                self.leave_member(member_id, channel)
            for subscription in list(self._channels.get(channel, ())):
                self._detach(subscription, channel)
            self._channels.pop(channel, None)

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._channels.get(channel, ()))

    def publish(
        self,
        channel: str,
        event: str,
        data: dict[str, Any],
        members: Optional[Iterable[str]] = None,
    ) -> int:
        """Deliver ``event`` to the channel's current subscribers.

        ``members`` restricts delivery to subscriptions of those member ids.
        Returns the number of subscriptions that accepted the event; failed
        deliveries are logged and the subscription is dropped.
        """
        envelope = {
            "event": event,
            "channel": channel,
            "data": data,
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }
        allowed = set(members) if members is not None else None
        with self._lock:
            targets = [
                subscription
                for subscription in self._channels.get(channel, ())
                if allowed is None or subscription.member_id in allowed
            ]

        delivered = 0
        for subscription in targets:
            try:
                subscription.deliver(envelope)
                delivered += 1
            except RelayDeliveryError as exc:
                logger.warning(f"Relay delivery failure on {channel} ({event}): {exc}")
                self.disconnect(subscription)
        logger.debug(f"Published {event} on {channel} to {delivered}/{len(targets)} subscriber(s)")
        return delivered

    def _attach(self, subscription: Subscription, channel: str) -> None:
        if not subscription.connected:
            return
        self._channels[channel].add(subscription)
        subscription.channels.add(channel)

    def _detach(self, subscription: Subscription, channel: str) -> None:
        subscribers = self._channels.get(channel)
        if subscribers is not None:
            subscribers.discard(subscription)
            if not subscribers:
                del self._channels[channel]
        subscription.channels.discard(channel)
