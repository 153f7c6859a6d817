"""
Room coordinator: the turn/room state machine.

Rooms go waiting -> playing (second player joins) -> finished (win or
draw) -> playing (reset). Every action touching a room runs under that
room's lock, and the resulting state is broadcast before the lock is
released, so members see states in the order they were committed.
Database calls run in the thread pool so one slow room never stalls the
others.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional

from starlette.concurrency import run_in_threadpool

from tictactoe.game import board as engine
from tictactoe.game.errors import GameError, GameNotInProgress, NotInRoom, WrongTurn
from tictactoe.game.sessions import SessionRegistry
from tictactoe.game.store import RoomSnapshot, RoomStore
from tictactoe.session import issue_rejoin_token, read_rejoin_token
from tictactoe.tasks.cleanup import CleanupScheduler

logger = logging.getLogger(__name__)

GRACE_SECONDS = 5 * 60


def normalize_code(room_code) -> str:
    return str(room_code or "").strip().upper()


class RoomCoordinator:
    def __init__(self, store: RoomStore, sessions: SessionRegistry, transport,
                 grace_seconds: float = GRACE_SECONDS, scheduler: Optional[CleanupScheduler] = None):
        self.store = store
        self.sessions = sessions
        self.transport = transport
        self.grace_seconds = grace_seconds
        self.scheduler = scheduler or CleanupScheduler()
        # room code -> [lock, holders + waiters]; dropped once nobody uses it
        self._locks: Dict[str, list] = {}

    @asynccontextmanager
    async def _lock(self, room_code: str):
        entry = self._locks.get(room_code)
        if entry is None:
            entry = self._locks[room_code] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0 and self._locks.get(room_code) is entry:
                del self._locks[room_code]

    async def _call(self, fn, *args):
        return await run_in_threadpool(fn, *args)

    async def _publish(self, room: RoomSnapshot, event: str, **extra):
        """Send the full room state to every member, then each player's own turn flag."""
        await self.transport.broadcast(room.code, {"type": event, **room.to_dict(), **extra})
        for player in room.connected_players:
            if not player.connection_id:
                continue
            await self.transport.send(player.connection_id, {
                "type": "player-info",
                "symbol": player.symbol,
                "isMyTurn": player.symbol == room.current_player and room.status == "playing",
            })

    async def create_room(self) -> str:
        return await self._call(self.store.create_room)

    async def get_room(self, room_code) -> RoomSnapshot:
        return await self._call(self.store.get_room, normalize_code(room_code))

    async def join(self, room_code, connection_id: str, name: str = None, rejoin_token: str = None) -> str:
        code = normalize_code(room_code)
        current = self.sessions.lookup(connection_id)
        if current is not None and current.room_code == code:
            async with self._lock(code):
                room = await self._call(self.store.get_room, code)
                await self._send_joined(connection_id, code, current.symbol)
                await self._publish(room, "room-joined")
            return current.symbol
        if current is not None:
            await self.disconnect(connection_id)

        preferred = read_rejoin_token(rejoin_token, code)
        async with self._lock(code):
            symbol = await self._call(self.store.upsert_player, code, connection_id, name, preferred)
            self.sessions.bind(connection_id, code, symbol)
            room = await self._call(self.store.get_room, code)
            logger.info(f"[ROOM] {connection_id} joined {code} as {symbol} ({room.status})")
            await self._send_joined(connection_id, code, symbol)
            await self._publish(room, "room-joined")
        return symbol

    async def _send_joined(self, connection_id: str, code: str, symbol: str):
        await self.transport.send(connection_id, {
            "type": "joined",
            "roomCode": code,
            "symbol": symbol,
            "rejoinToken": issue_rejoin_token(code, symbol),
        })

    def _binding_for(self, code: str, connection_id: str):
        binding = self.sessions.lookup(connection_id)
        if binding is None or binding.room_code != code:
            raise NotInRoom()
        return binding

    async def move(self, room_code, connection_id: str, position) -> RoomSnapshot:
        code = normalize_code(room_code)
        binding = self._binding_for(code, connection_id)
        async with self._lock(code):
            room = await self._call(self.store.get_room, code)
            if room.status != "playing":
                raise GameNotInProgress()
            if room.current_player != binding.symbol:
                raise WrongTurn()

            board = engine.apply_move(list(room.board), position, binding.symbol)
            result = engine.evaluate(board)
            if result is None:
                status, winner, next_player = "playing", None, engine.other(binding.symbol)
            else:
                status, winner, next_player = "finished", result, binding.symbol

            updated = await self._call(self.store.apply_room_update, code, board, next_player, status, winner)
            if winner:
                logger.info(f"[ROOM] Game in {code} finished: {winner}")
            await self._publish(updated, "game-updated", lastMove={"position": position, "player": binding.symbol})
            return updated

    async def reset(self, room_code, connection_id: str) -> RoomSnapshot:
        code = normalize_code(room_code)
        self._binding_for(code, connection_id)
        async with self._lock(code):
            updated = await self._call(self.store.apply_room_update, code, engine.empty_board(), "X", "playing", None)
            logger.info(f"[ROOM] {connection_id} reset {code}")
            await self._publish(updated, "game-reset")
            return updated

    async def disconnect(self, connection_id: str):
        """Release the connection's seat, tell the others, and start the grace timer."""
        binding = self.sessions.unbind(connection_id)
        code = binding.room_code if binding else None
        try:
            if code is None:
                # no live session, but the record may still claim the connection
                player = await self._call(self.store.find_player, connection_id)
                if player is None:
                    return
                code = player.room_code
            async with self._lock(code):
                player = await self._call(self.store.set_player_connected, connection_id, False)
                symbol = binding.symbol if binding else (player.symbol if player else None)
                logger.info(f"[ROOM] {connection_id} ({symbol}) left {code}")
                await self.transport.broadcast(code, {"type": "player-disconnected", "playerId": connection_id, "symbol": symbol})
        except GameError as e:
            logger.error(f"[ROOM] Error handling disconnect of {connection_id}: {e}")
        if code is not None:
            self.scheduler.schedule(code, self.grace_seconds, self.cleanup_room)

    async def cleanup_room(self, room_code: str, idle_before: Optional[datetime] = None) -> bool:
        """Delete the room if, right now, nobody is connected to it (and it has been idle since `idle_before`)."""
        async with self._lock(room_code):
            return await self._call(self.store.delete_room_if_empty, room_code, idle_before)

    async def sweep_stale_rooms(self, idle_before: datetime) -> List[str]:
        """Delete every room left empty since before `idle_before`, one room lock at a time."""
        candidates = await self._call(self.store.stale_room_codes, idle_before)
        removed = []
        for room_code in candidates:
            if await self.cleanup_room(room_code, idle_before):
                removed.append(room_code)
        return removed

    def shutdown(self):
        self.scheduler.cancel_all()
