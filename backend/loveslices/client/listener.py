"""
Push channel listener built on `websockets`.
Authenticates with the access token, hands each frame to a callback, and
reconnects with backoff. After every reconnect it calls `on_reconnect` so the
owner can refetch; frames sent while disconnected are gone.
"""
import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional, Sequence

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

logger = logging.getLogger(__name__)


class ListenerAuthError(Exception):
    """The server refused the auth frame; retrying will not help."""


class RealtimeListener:
    def __init__(
        self,
        url: str,
        token: str,
        on_event: Callable[[dict], Awaitable[object]],
        on_reconnect: Optional[Callable[[], Awaitable[object]]] = None,
        backoff: Sequence[float] = (0.5, 1.0, 2.0, 5.0),
        connect=websockets.connect,
    ):
        self.url = url
        self.token = token
        self.on_event = on_event
        self.on_reconnect = on_reconnect
        self.backoff = tuple(backoff)
        self._connect = connect
        self._ws = None
        self._stopped = False
        self.user_id: Optional[str] = None

    async def _authenticate(self, ws) -> None:
        await ws.send(json.dumps({"type": "auth", "token": self.token}))
        reply = json.loads(await ws.recv())
        if reply.get("type") != "ready":
            raise ListenerAuthError(reply.get("code", "AUTH_FAILED"))
        self.user_id = reply.get("userId")

    async def _dispatch(self, raw) -> None:
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError):
            return
        if not isinstance(frame, dict) or frame.get("type") == "pong":
            return
        try:
            await self.on_event(frame)
        except Exception:
            logger.exception("push handler failed for %s", frame.get("type"))

    async def _resync(self) -> None:
        # A failed catch-up must not end the listener; the next push or reconnect retries it
        try:
            await self.on_reconnect()
        except Exception:
            logger.exception("reconnect hook failed")

    async def run(self) -> None:
        """Listen until stop() is called. Raises ListenerAuthError on rejected auth."""
        attempt = 0
        connected_before = False
        while not self._stopped:
            try:
                async with self._connect(self.url) as ws:
                    self._ws = ws
                    await self._authenticate(ws)
                    attempt = 0
                    if connected_before and self.on_reconnect is not None:
                        await self._resync()
                    connected_before = True
                    async for raw in ws:
                        await self._dispatch(raw)
            except (OSError, ConnectionClosed, InvalidHandshake) as e:
                logger.info("push channel dropped: %r", e)
            finally:
                self._ws = None
            if self._stopped:
                break
            await asyncio.sleep(self.backoff[min(attempt, len(self.backoff) - 1)])
            attempt += 1

    async def stop(self) -> None:
        self._stopped = True
        if self._ws is not None:
            await self._ws.close()
