"""
WebSocket Router
Live engagement stream for students and for teachers watching a room.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from app.core.security import resolve_user_from_token
from app.services.websocket_manager import room_channel, student_channel, ws_manager

logger = logging.getLogger("studyguard.ws")

router = APIRouter(tags=["WebSocket"])

POLICY_VIOLATION = 1008


@router.websocket("/ws/live")
async def websocket_live(websocket: WebSocket, token: Optional[str] = Query(default=None)):
    """
    Samples accepted by the metrics API are pushed here as
    ``{"type": "metric", ...}``. Teachers may join room channels.
    """
    user = resolve_user_from_token(token)
    if user is None:
        await websocket.accept()
        await websocket.send_json({"type": "error", "message": "Authentication required"})
        await websocket.close(code=POLICY_VIOLATION)
        return

    own_channel = student_channel(user.id)
    await ws_manager.connect(websocket, own_channel)
    logger.info(f"Live client connected: user {user.id} ({user.role}), {ws_manager.total_connections} open")
    await websocket.send_json({
        "type": "connection-status",
        "status": "connected",
        "user_id": user.id,
        "role": user.role,
        "channels": [own_channel],
    })

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except ValueError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(msg, dict):
                await websocket.send_json({"type": "error", "message": "Invalid message"})
                continue

            kind = msg.get("type")
            room_id = msg.get("room_id")

            if kind == "ping":
                await websocket.send_json({"type": "pong"})
            elif kind == "join-room":
                if user.role != "teacher":
                    await websocket.send_json({"type": "error", "message": "Only teachers can join rooms"})
                elif not room_id:
                    await websocket.send_json({"type": "error", "message": "room_id is required"})
                else:
                    ws_manager.subscribe(websocket, room_channel(str(room_id)))
                    await websocket.send_json({"type": "room-joined", "room_id": room_id})
            elif kind == "leave-room":
                if room_id:
                    ws_manager.unsubscribe(websocket, room_channel(str(room_id)))
                await websocket.send_json({"type": "room-left", "room_id": room_id})
            else:
                await websocket.send_json({"type": "error", "message": f"Unknown message type: {kind}"})

    except WebSocketDisconnect:
        logger.info(f"Live client disconnected (user {user.id})")
    finally:
        ws_manager.disconnect(websocket)
