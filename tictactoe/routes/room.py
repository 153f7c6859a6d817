from fastapi import APIRouter, Depends, Request
from typing import Optional
from tictactoe.schemas import CreateRoomRequest
from tictactoe.game.coordinator import RoomCoordinator
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_coordinator(request: Request) -> RoomCoordinator:
    return request.app.state.coordinator


@router.post("/create-room")
async def create_room(data: Optional[CreateRoomRequest] = None, coordinator: RoomCoordinator = Depends(get_coordinator)):
    room_code = await coordinator.create_room()
    logger.info(f"[ROOM] Room {room_code} created by {(data and data.playerName) or 'Anonymous'}")
    return {"roomCode": room_code, "success": True}


@router.get("/room/{code}")
async def get_room(code: str, coordinator: RoomCoordinator = Depends(get_coordinator)):
    room = await coordinator.get_room(code)
    state = room.to_dict()
    players = state.pop("players")
    state["createdAt"] = room.created_at.isoformat() if room.created_at else None
    state["updatedAt"] = room.updated_at.isoformat() if room.updated_at else None
    return {"room": state, "players": players}
