"""
StudyGuard WebSocket Manager
Fans live engagement samples out to student and room channels.

Channels are created on demand: ``student:<user_id>`` for the student's
own dashboard and ``room:<room_id>`` for teachers watching a room.
"""

import logging
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger("studyguard.websocket")


def student_channel(user_id: int) -> str:
    return f"student:{user_id}"


def room_channel(room_id: str) -> str:
    return f"room:{room_id}"


class ConnectionManager:
    """Manages WebSocket connections for real-time streaming"""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, channel: Optional[str] = None):
        await websocket.accept()
        if channel:
            self.subscribe(websocket, channel)

    def subscribe(self, websocket: WebSocket, channel: str):
        self.active_connections.setdefault(channel, set()).add(websocket)
        logger.info(f"Client joined channel: {channel} (total: {len(self.active_connections[channel])})")

    def unsubscribe(self, websocket: WebSocket, channel: str):
        members = self.active_connections.get(channel)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self.active_connections[channel]
        logger.info(f"Client left channel: {channel}")

    def disconnect(self, websocket: WebSocket):
        """Drop a socket from every channel it joined"""
        for channel in [c for c, members in self.active_connections.items() if websocket in members]:
            self.unsubscribe(websocket, channel)

    async def broadcast_to_channel(self, channel: str, message: dict):
        """Send message to all clients on a channel"""
        if channel not in self.active_connections:
            return

        dead = set()
        for ws in list(self.active_connections[channel]):
            try:
                await ws.send_json(message)
            except Exception:
                dead.add(ws)

        for ws in dead:
            self.disconnect(ws)

    async def send_metric(
        self,
        user_id: int,
        sample: Dict[str, Any],
        alerts: List[Dict[str, Any]],
        room_id: Optional[str] = None,
    ):
        """Push an accepted sample to the student's channel and its room"""
        message = jsonable_encoder({"type": "metric", "data": sample, "alerts": alerts})
        await self.broadcast_to_channel(student_channel(user_id), message)
        if room_id:
            await self.broadcast_to_channel(room_channel(room_id), {**message, "student_id": user_id})

    @property
    def total_connections(self) -> int:
        return len({ws for conns in self.active_connections.values() for ws in conns})


# Global instance
ws_manager = ConnectionManager()
