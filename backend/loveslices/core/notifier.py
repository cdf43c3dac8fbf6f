# loveslices/core/notifier.py
"""
Per-user realtime notifier.
Pushes conversation lifecycle events to whichever partner currently has the
/ws channel open. Delivery is best-effort: nothing is queued, retried or
persisted, and a failed send never propagates to the caller. Clients resync
from the REST API whenever a push may have been missed.
"""
import json
import logging
from typing import Dict, Literal, Optional

from pydantic import BaseModel
from starlette.websockets import WebSocket

from loveslices.core.errors import ChannelDeliveryFailure

logger = logging.getLogger("uvicorn.error")

EventType = Literal["initiate_ending", "confirm_ending", "cancel_ending", "final_note_added"]


class ChannelEvent(BaseModel):
    """Server-to-client push frame, always scoped by conversationId."""
    type: EventType
    conversationId: str
    userName: str
    note: Optional[str] = None

    def to_frame(self) -> str:
        return json.dumps(self.model_dump(exclude_none=True))


class Notifier:
    """
    Channel registry keyed by user id.

    A user holds at most one channel; connecting again replaces the previous
    entry (last writer wins). Routers own ws.accept()/close(); this class only
    registers sockets and routes frames.

    Data structure:
    - _channels: Dict[user_id, WebSocket]
    """
    def __init__(self):
        self._channels: Dict[str, WebSocket] = {}

    def connect(self, user_id: str, ws: WebSocket) -> None:
        previous = self._channels.get(user_id)
        self._channels[user_id] = ws
        if previous is not None and previous is not ws:
            logger.info("[notifier] user=%s channel replaced", user_id)
        else:
            logger.info("[notifier] user=%s connected", user_id)

    def disconnect(self, user_id: str, ws: WebSocket) -> None:
        """
        Drop the user's channel, but only if it is still `ws`.
        A stale socket closing after a reconnect must not evict the new one.
        """
        if self._channels.get(user_id) is ws:
            del self._channels[user_id]
            logger.info("[notifier] user=%s disconnected", user_id)

    def is_connected(self, user_id: str) -> bool:
        return user_id in self._channels

    async def _send(self, user_id: str, ws: WebSocket, event: ChannelEvent) -> None:
        try:
            await ws.send_text(event.to_frame())
        except Exception as e:
            raise ChannelDeliveryFailure(user_id, event.type, e) from e

    async def publish(self, to_user_id: str, event: ChannelEvent) -> bool:
        """
        Deliver `event` to the user's open channel.

        Returns:
            True if the frame was written, False when the user has no channel
            or the send failed. Never raises.
        """
        ws = self._channels.get(to_user_id)
        if ws is None:
            logger.debug("[notifier] user=%s offline, dropped %s", to_user_id, event.type)
            return False
        try:
            await self._send(to_user_id, ws, event)
        except ChannelDeliveryFailure as e:
            logger.warning("[notifier] %s", e)
            self.disconnect(to_user_id, ws)
            return False
        return True


# Process-wide registry
notifier = Notifier()
