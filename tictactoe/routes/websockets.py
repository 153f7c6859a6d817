# tictactoe/routes/websockets.py

import json
import asyncio
import logging
import os
from uuid import uuid4
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from tictactoe.game.errors import GameError
from tictactoe.schemas import JoinRoomMessage, MoveMessage, ResetMessage

logger = logging.getLogger(__name__)

router = APIRouter()

KEEPALIVE_SECONDS = float(os.getenv("KEEPALIVE_SECONDS", "30"))


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    coordinator = websocket.app.state.coordinator
    manager = coordinator.transport
    connection_id = uuid4().hex
    await manager.connect(connection_id, websocket)
    logger.info(f"[WS] User connected: {connection_id}")
    await manager.send(connection_id, {"type": "connected", "connectionId": connection_id})

    # Keepalive task so idle proxies don't drop the socket
    async def send_keepalive():
        try:
            while True:
                await asyncio.sleep(KEEPALIVE_SECONDS)
                await manager.send(connection_id, {"type": "ping"})
        except asyncio.CancelledError:
            pass

    keepalive_task = asyncio.create_task(send_keepalive())

    async def send_error(code: str, message: str):
        await manager.send(connection_id, {"type": "error", "code": code, "message": message})

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await send_error("BadRequest", "Message is not valid JSON")
                continue
            if not isinstance(message, dict):
                await send_error("BadRequest", "Message must be a JSON object")
                continue

            msg_type = message.get("type")

            # --- 0. Ping/Pong for keepalive ---
            if msg_type == "pong":
                continue

            try:
                # --- 1. Join a room ---
                if msg_type == "join-room":
                    join = JoinRoomMessage(**message)
                    await coordinator.join(join.roomCode, connection_id, join.playerName, join.rejoinToken)

                # --- 2. Play a cell ---
                elif msg_type == "make-move":
                    move = MoveMessage(**message)
                    await coordinator.move(move.roomCode, connection_id, move.position)

                # --- 3. Start over ---
                elif msg_type == "reset-game":
                    reset = ResetMessage(**message)
                    await coordinator.reset(reset.roomCode, connection_id)

                else:
                    await send_error("UnknownMessage", "Unknown message type")

            except ValidationError as e:
                await send_error("BadRequest", f"Invalid {msg_type} message: {e.error_count()} field error(s)")
            except GameError as e:
                await manager.send(connection_id, {"type": "error", **e.to_dict()})
            except Exception as e:
                logger.error(f"[WS] Error handling {msg_type} from {connection_id}: {e}", exc_info=True)
                await send_error("ServerError", "Something went wrong")

    except WebSocketDisconnect:
        logger.info(f"[WS] User disconnected: {connection_id}")
    finally:
        keepalive_task.cancel()
        manager.disconnect(connection_id)
        await coordinator.disconnect(connection_id)
