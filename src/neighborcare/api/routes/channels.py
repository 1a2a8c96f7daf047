"""WebSocket live feed for incident and responder channels."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ...services.relay import Subscription

router = APIRouter(tags=["channels"])
logger = logging.getLogger(__name__)

ALLOWED_PREFIXES = ("incident:", "responders-available")


async def _pump(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        event = await subscription.queue.get()
        await websocket.send_json(event)


@router.websocket("/ws/{member_id}")
async def member_feed(websocket: WebSocket, member_id: str) -> None:
    """Stream relay events to one member.

    The connection starts on the member's user channel plus every channel the
    member already belongs to (incidents they raised or accepted, the alert
    channel while available). Clients send ``{"action": "subscribe" |
    "unsubscribe", "channel": ...}``; each action is acknowledged on the feed.
    """
    relay = websocket.app.state.core.relay
    # Connect before the handshake completes so nothing published afterwards is missed.
    subscription = relay.connect(member_id, loop=asyncio.get_running_loop())
    await websocket.accept()
    sender = asyncio.create_task(_pump(websocket, subscription))
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                subscription.deliver({"event": "error", "data": {"message": "frames must be JSON objects"}})
                continue
            action = message.get("action") if isinstance(message, dict) else None
            channel = message.get("channel") if isinstance(message, dict) else None
            if action not in ("subscribe", "unsubscribe") or not isinstance(channel, str) or not channel.startswith(
                ALLOWED_PREFIXES
            ):
                subscription.deliver({"event": "error", "data": {"message": "unsupported action or channel"}})
                continue
            if action == "subscribe":
                relay.subscribe(subscription, channel)
            else:
                relay.unsubscribe(subscription, channel)
            subscription.deliver({"event": f"{action}d", "channel": channel, "data": {}})
    except WebSocketDisconnect:
        pass
    finally:
        relay.disconnect(subscription)
        sender.cancel()
