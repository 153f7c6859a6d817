"""Errors reported back to the connection (or request) that caused them."""


class GameError(Exception):
    code = "GameError"
    message = "Game error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class RoomNotFound(GameError):
    code = "RoomNotFound"
    message = "Room not found"


class RoomFull(GameError):
    code = "RoomFull"
    message = "Room is full"


class RoomCodeExhausted(GameError):
    code = "RoomCodeExhausted"
    message = "Unable to generate unique room code"


class NotInRoom(GameError):
    code = "NotInRoom"
    message = "Not in this room"


class GameNotInProgress(GameError):
    code = "GameNotInProgress"
    message = "Game not in progress"


class WrongTurn(GameError):
    code = "WrongTurn"
    message = "Not your turn"


class InvalidMove(GameError):
    code = "InvalidMove"
    message = "Invalid move"


class PersistenceFailure(GameError):
    code = "PersistenceFailure"
    message = "Storage unavailable, please try again"
