# routers/websocket_router.py — Real-time notification channels
import json
import uuid
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import decode_ws_token, get_current_user, CurrentUser
from database import get_db_session
from dependencies import get_presence
from models import User
from presence import PresenceRegistry

router = APIRouter(tags=["WebSocket"])
logger = logging.getLogger("taskhub.ws")

AUTH_FAILED = 4001
ACCOUNT_DEACTIVATED = 4003


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConnectionManager:
    """Open sockets keyed by channel id; the transport the dispatcher emits through"""

    def __init__(self):
        self._sockets: Dict[str, WebSocket] = {}  # channel_id -> ws

    async def connect(self, websocket: WebSocket) -> str:
        await websocket.accept()
        channel_id = str(uuid.uuid4())
        self._sockets[channel_id] = websocket
        return channel_id

    def disconnect(self, channel_id: str) -> None:
        self._sockets.pop(channel_id, None)

    async def close(self, channel_id: str, code: int = ACCOUNT_DEACTIVATED) -> None:
        websocket = self._sockets.pop(channel_id, None)
        if websocket is None:
            return
        try:
            await websocket.close(code=code)
        except Exception as e:
            logger.warning(f"Close failed on channel={channel_id[:8]}: {e}")

    async def emit(self, channel_id: str, event_kind: str, payload: Dict[str, Any]) -> None:
        websocket = self._sockets.get(channel_id)
        if websocket is None:
            raise ConnectionError(f"channel {channel_id[:8]} is closed")
        try:
            await websocket.send_json({"type": event_kind, "payload": payload, "timestamp": _now()})
        except Exception:
            self.disconnect(channel_id)
            raise

    def get_stats(self) -> dict:
        return {"open_sockets": len(self._sockets)}


async def drop_user_channels(presence: PresenceRegistry, connections: ConnectionManager, user_id: str) -> int:
    """Unregister and close every live channel of a user. Returns how many were dropped."""
    channels = presence.channels_for(user_id)
    for channel_id in channels:
        presence.unregister(channel_id)
        await connections.close(channel_id)
    if channels:
        logger.info(f"Dropped {len(channels)} channel(s) for user={user_id[:8]}")
    return len(channels)


async def _load_ws_user(db: AsyncSession, payload: dict) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == payload["sub"]))
    user = result.scalar_one_or_none()
    if not user or not user.is_active or user.tenant_id != payload.get("tenant_id"):
        return None
    return user


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...),
    db: AsyncSession = Depends(get_db_session),
):
    """Authenticated notification channel; one channel per socket"""
    payload = decode_ws_token(token)
    user = await _load_ws_user(db, payload) if payload else None
    # The session is only needed for the handshake
    await db.close()
    if not user:
        await websocket.close(code=AUTH_FAILED, reason="Authentication failed")
        return

    user_id = user.id
    presence = websocket.app.state.presence
    connections = websocket.app.state.connections

    channel_id = await connections.connect(websocket)
    presence.register(user_id, channel_id)
    try:
        await websocket.send_json({
            "type": "connected",
            "user_id": user_id,
            "channel_id": channel_id,
            "timestamp": _now(),
        })
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(data, dict):
                await websocket.send_json({"type": "error", "message": "Expected an object"})
                continue

            msg_type = data.get("type", "")
            if msg_type == "ping":
                await websocket.send_json({"type": "pong", "timestamp": _now()})

            elif msg_type == "join":
                # Channels only ever join their own user's group
                if data.get("userId") != user_id:
                    await websocket.send_json({"type": "error", "message": "Cannot join another user's channel"})
                    continue
                presence.register(user_id, channel_id)
                await websocket.send_json({"type": "joined", "userId": user_id})

            else:
                await websocket.send_json({"type": "error", "message": f"Unknown message type: {msg_type}"})

    except WebSocketDisconnect:
        logger.info(f"WS disconnected: user={user_id[:8]} channel={channel_id[:8]}")
    except RuntimeError as e:
        # Socket already closed server-side, e.g. by drop_user_channels
        logger.info(f"WS closed: user={user_id[:8]} channel={channel_id[:8]} ({e})")
    finally:
        connections.disconnect(channel_id)
        presence.unregister(channel_id)


@router.get("/ws/stats")
async def websocket_stats(
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    presence: PresenceRegistry = Depends(get_presence),
):
    stats = presence.get_stats()
    stats.update(request.app.state.connections.get_stats())
    return stats
