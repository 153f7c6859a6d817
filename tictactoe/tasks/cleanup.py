"""
Room cleanup.

Two mechanisms remove rooms nobody plays in any more:
- a deferred check per room, scheduled when a player disconnects;
- a periodic sweep for rooms whose deferred check was lost (restart) or
  that were created and never joined.
Both delete under the room's lock and re-read the database when they fire,
never trusting earlier state.
"""
import asyncio
import logging
from datetime import datetime, timezone, timedelta
from typing import Awaitable, Callable, Dict, List

logger = logging.getLogger(__name__)


class CleanupScheduler:
    def __init__(self):
        self._pending: Dict[str, asyncio.Task] = {}

    def schedule(self, room_code: str, delay: float, check: Callable[[str], Awaitable[bool]]):
        """(Re)start the grace timer for a room; `check` runs once it expires."""
        previous = self._pending.pop(room_code, None)
        if previous is not None and not previous.done():
            previous.cancel()
        task = asyncio.create_task(self._run(room_code, delay, check))
        self._pending[room_code] = task
        logger.info(f"[CLEANUP] Room {room_code} will be checked in {delay}s")
        return task

    async def _run(self, room_code: str, delay: float, check):
        try:
            await asyncio.sleep(delay)
            deleted = await check(room_code)
            if deleted:
                logger.info(f"[CLEANUP] Cleaned up empty room: {room_code}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[CLEANUP] Error cleaning up room {room_code}: {e}", exc_info=True)
        finally:
            if self._pending.get(room_code) is asyncio.current_task():
                del self._pending[room_code]

    def pending(self) -> List[str]:
        return list(self._pending.keys())

    def cancel_all(self):
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()


async def cleanup_empty_rooms_task(coordinator, grace_seconds: float, interval: float = 60):
    while True:
        await asyncio.sleep(interval)
        try:
            cutoff = datetime.now(timezone.utc) - timedelta(seconds=grace_seconds)
            removed = await coordinator.sweep_stale_rooms(cutoff)
            if removed:
                logger.info(f"[CLEANUP] Swept {len(removed)} idle rooms: {', '.join(removed)}")
        except Exception as e:
            logger.error(f"[CLEANUP] Sweep failed: {e}", exc_info=True)
