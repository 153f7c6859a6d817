from pydantic import BaseModel
from typing import Optional

class CreateRoomRequest(BaseModel):
    playerName: Optional[str] = None

class JoinRoomMessage(BaseModel):
    roomCode: str
    playerName: Optional[str] = None
    rejoinToken: Optional[str] = None

class MoveMessage(BaseModel):
    roomCode: str
    position: int

class ResetMessage(BaseModel):
    roomCode: str
