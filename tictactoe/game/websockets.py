# tictactoe/game/websockets.py

import logging
from fastapi import WebSocket
from typing import Dict, Iterable, Optional

from tictactoe.game.sessions import SessionRegistry

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self, sessions: SessionRegistry):
        self.sessions = sessions
        self.active_connections: Dict[str, WebSocket] = {}

    async def connect(self, connection_id: str, websocket: WebSocket):
        await websocket.accept()
        self.active_connections[connection_id] = websocket

    def disconnect(self, connection_id: str):
        self.active_connections.pop(connection_id, None)

    async def send(self, connection_id: str, message: dict):
        connection = self.active_connections.get(connection_id)
        if connection is None:
            return
        try:
            await connection.send_json(message)
        except Exception as e:
            logger.warning(f"[BROADCAST] Failed to send to {connection_id}: {e}")

    async def broadcast(self, room_code: str, message: dict, exclude: Optional[Iterable[str]] = None):
        skip = set(exclude or ())
        connections = [c for c in self.sessions.members(room_code) if c not in skip]
        logger.debug(f"[BROADCAST] Sending to {len(connections)} connections in room {room_code}: {message.get('type', 'unknown')}")
        for connection_id in connections:
            await self.send(connection_id, message)
