"""
Durable record of rooms and their players.

Every public method runs in its own database transaction and hands back
frozen snapshots, so callers never hold live ORM objects across awaits.
Database errors roll the transaction back and surface as PersistenceFailure.
"""
import logging
import secrets
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

import pytz
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from tictactoe.game import board as engine
from tictactoe.game.errors import GameError, PersistenceFailure, RoomCodeExhausted, RoomFull, RoomNotFound
from tictactoe.models import Player, Room, utcnow

logger = logging.getLogger(__name__)

ROOM_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 6
MAX_CODE_ATTEMPTS = 10
DEFAULT_NAME = "Anonymous"


def generate_room_code() -> str:
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def normalize_name(name) -> str:
    name = (name or "").strip()
    return name[:100] or DEFAULT_NAME


def to_utc_aware(dt):
    # SQLite hands back naive datetimes even for timezone-aware columns
    if not dt: return None
    if dt.tzinfo is None:
        return pytz.utc.localize(dt)
    return dt


@dataclass(frozen=True)
class PlayerSnapshot:
    room_code: str
    symbol: str
    name: str
    connected: bool
    connection_id: Optional[str]

    def to_dict(self) -> dict:
        return {"symbol": self.symbol, "name": self.name, "connected": self.connected}


@dataclass(frozen=True)
class RoomSnapshot:
    code: str
    board: Tuple[str, ...]
    current_player: str
    status: str
    winner: Optional[str]
    players: Tuple[PlayerSnapshot, ...]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def connected_players(self) -> List[PlayerSnapshot]:
        return [p for p in self.players if p.connected]

    def to_dict(self) -> dict:
        return {
            "roomCode": self.code,
            "board": list(self.board),
            "currentPlayer": self.current_player,
            "gameStatus": self.status,
            "winner": self.winner,
            "players": [p.to_dict() for p in self.connected_players],
        }


def _player_snapshot(player: Player) -> PlayerSnapshot:
    return PlayerSnapshot(
        room_code=player.room_code,
        symbol=player.symbol,
        name=player.name,
        connected=bool(player.connected),
        connection_id=player.connection_id,
    )


def _last_activity(room: Room) -> datetime:
    return to_utc_aware(room.updated_at) or datetime.min.replace(tzinfo=timezone.utc)


def _room_snapshot(room: Room) -> RoomSnapshot:
    return RoomSnapshot(
        code=room.code,
        board=tuple(engine.decode(room.board)),
        current_player=room.current_player,
        status=room.status,
        winner=room.winner,
        players=tuple(_player_snapshot(p) for p in sorted(room.players, key=lambda p: p.symbol != "X")),
        created_at=to_utc_aware(room.created_at),
        updated_at=to_utc_aware(room.updated_at),
    )


class RoomStore:
    def __init__(self, session_factory, code_factory: Callable[[], str] = generate_room_code,
                 max_attempts: int = MAX_CODE_ATTEMPTS):
        self.session_factory = session_factory
        self.code_factory = code_factory
        self.max_attempts = max_attempts

    @contextmanager
    def _transaction(self):
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except GameError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[STORE] Database error: {e}")
            raise PersistenceFailure() from e
        finally:
            db.close()

    def _lock_room(self, db, code: str) -> Room:
        room = (
            db.query(Room)
            .options(selectinload(Room.players))
            .filter(Room.code == code)
            .with_for_update()
            .first()
        )
        if room is None:
            raise RoomNotFound()
        return room

    def create_room(self) -> str:
        """Insert a fresh waiting room under a unique code and return the code."""
        for attempt in range(1, self.max_attempts + 1):
            code = self.code_factory()
            try:
                with self._transaction() as db:
                    if db.get(Room, code) is not None:
                        logger.info(f"[STORE] Room code collision on {code} (attempt {attempt})")
                        continue
                    db.add(Room(
                        code=code,
                        board=engine.encode(engine.empty_board()),
                        current_player="X",
                        status="waiting",
                        winner=None,
                    ))
            except PersistenceFailure as e:
                # lost an insert race for the same code
                if isinstance(e.__cause__, IntegrityError):
                    continue
                raise
            logger.info(f"[STORE] Created room {code}")
            return code
        raise RoomCodeExhausted()

    def get_room(self, code: str) -> RoomSnapshot:
        with self._transaction() as db:
            room = db.query(Room).options(selectinload(Room.players)).filter(Room.code == code).first()
            if room is None:
                raise RoomNotFound()
            return _room_snapshot(room)

    def upsert_player(self, code: str, connection_id: str, name: str, preferred: str = None) -> str:
        """
        Bind a connection to a free symbol in the room and return the symbol.

        X goes to whoever joins while nobody holds X, O otherwise. A disconnected
        record for that symbol is taken over by the new connection. When the join
        brings a waiting room to two connected players the room starts playing.
        """
        with self._transaction() as db:
            room = self._lock_room(db, code)
            by_symbol = {p.symbol: p for p in room.players}
            taken = {p.symbol for p in room.players if p.connected}
            if len(taken) >= 2:
                raise RoomFull()

            if preferred in engine.SYMBOLS and preferred not in taken:
                symbol = preferred
            else:
                symbol = "X" if "X" not in taken else "O"

            player = by_symbol.get(symbol)
            if player is None:
                player = Player(room_code=room.code, symbol=symbol)
                room.players.append(player)
            player.connection_id = connection_id
            player.name = normalize_name(name)
            player.connected = True
            player.joined_at = utcnow()

            if room.status == "waiting" and len(taken) + 1 == 2:
                room.status = "playing"
            room.updated_at = utcnow()
            return symbol

    def set_player_connected(self, connection_id: str, connected: bool) -> Optional[PlayerSnapshot]:
        with self._transaction() as db:
            player = db.query(Player).filter(Player.connection_id == connection_id).first()
            if player is None:
                return None
            player.connected = connected
            if not connected:
                player.connection_id = None
            player.room.updated_at = utcnow()
            db.flush()
            return _player_snapshot(player)

    def apply_room_update(self, code: str, new_board, new_current_player: str, new_status: str,
                          new_winner: Optional[str]) -> RoomSnapshot:
        with self._transaction() as db:
            room = self._lock_room(db, code)
            room.board = engine.encode(new_board)
            room.current_player = new_current_player
            room.status = new_status
            room.winner = new_winner
            room.updated_at = utcnow()
            db.flush()
            return _room_snapshot(room)

    def find_player(self, connection_id: str) -> Optional[PlayerSnapshot]:
        with self._transaction() as db:
            player = db.query(Player).filter(Player.connection_id == connection_id).first()
            return _player_snapshot(player) if player is not None else None

    def delete_room_if_empty(self, code: str, idle_before: Optional[datetime] = None) -> bool:
        """Delete the room and its players unless someone is connected or, with `idle_before`, it saw activity since then."""
        with self._transaction() as db:
            room = db.query(Room).options(selectinload(Room.players)).filter(Room.code == code).with_for_update().first()
            if room is None or any(p.connected for p in room.players):
                return False
            if idle_before is not None and _last_activity(room) >= idle_before:
                return False
            db.delete(room)
            return True

    def release_all_connections(self) -> int:
        """Mark every player disconnected; no connection outlives the process."""
        with self._transaction() as db:
            result = db.execute(
                update(Player).where(Player.connected.is_(True)).values(connected=False, connection_id=None)
            )
            return result.rowcount or 0

    def stale_room_codes(self, idle_before: datetime) -> List[str]:
        """Codes of rooms nobody is connected to that have been idle since before `idle_before`."""
        with self._transaction() as db:
            rooms = db.query(Room).options(selectinload(Room.players)).all()
            return [
                room.code for room in rooms
                if not any(p.connected for p in room.players) and _last_activity(room) < idle_before
            ]
