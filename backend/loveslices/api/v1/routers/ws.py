import json
import logging

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketDisconnect

from loveslices.api.v1.deps import user_from_token
from loveslices.core.notifier import notifier

router = APIRouter()
logger = logging.getLogger("uvicorn.error")

AUTH_FAILED_CLOSE_CODE = 4401

async def _reject(ws: WebSocket, code: str) -> None:
    await ws.send_text(json.dumps({"type": "error", "code": code}))
    await ws.close(code=AUTH_FAILED_CLOSE_CODE)

@router.websocket("/ws")
async def ws_channel(ws: WebSocket):
    """
    Per-user push channel for conversation lifecycle events.

    Message flow:
    1. Client connects
    2. Client sends: {"type": "auth", "token": "<access token>", "userId": "..."?}
    3. Server registers the socket as the user's only channel
    4. Server sends: {"type": "ready", "userId": "..."}
    5. Server pushes {"type": "initiate_ending" | "confirm_ending" |
       "cancel_ending" | "final_note_added", "conversationId", "userName", "note"?}
       as the partner's transitions commit

    Afterwards {"type": "ping"} is answered with {"type": "pong"}; anything
    else from the client is ignored. State changes go through the REST API.
    """
    await ws.accept()
    user_id = None
    try:
        try:
            first = json.loads(await ws.receive_text())
        except json.JSONDecodeError:
            await _reject(ws, "BAD_FRAME")
            return
        if not isinstance(first, dict) or first.get("type") != "auth":
            await _reject(ws, "AUTH_REQUIRED")
            return
        user = await user_from_token(first.get("token") or "")
        if user is None:
            await _reject(ws, "AUTH_INVALID_TOKEN")
            return
        declared = first.get("userId")
        if declared is not None and str(declared) != str(user.id):
            await _reject(ws, "AUTH_USER_MISMATCH")
            return

        user_id = str(user.id)
        notifier.connect(user_id, ws)
        await ws.send_text(json.dumps({"type": "ready", "userId": user_id}))

        while True:
            raw = await ws.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if isinstance(msg, dict) and msg.get("type") == "ping":
                await ws.send_text(json.dumps({"type": "pong"}))
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning("[ws] user=%s error: %r", user_id, e)
    finally:
        if user_id:
            notifier.disconnect(user_id, ws)
