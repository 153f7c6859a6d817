"""Shared fixtures: a throwaway SQLite store and a transport that records messages."""

from __future__ import annotations

import os
import tempfile

_tmpdir = tempfile.mkdtemp(prefix="tictactoe-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_tmpdir}/app.db"
os.environ.setdefault("SESSION_SECRET", "test-secret")
os.environ.setdefault("ROOM_GRACE_SECONDS", "300")
os.environ.setdefault("CLEANUP_INTERVAL_SECONDS", "3600")

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from tictactoe.db import init_db, make_engine
from tictactoe.game.coordinator import RoomCoordinator
from tictactoe.game.sessions import SessionRegistry
from tictactoe.game.store import RoomStore


class RecordingTransport:
    """Stands in for the WebSocket manager; keeps an inbox per connection."""

    def __init__(self, sessions: SessionRegistry):
        self.sessions = sessions
        self.inboxes = {}

    async def send(self, connection_id, message):
        self.inboxes.setdefault(connection_id, []).append(message)

    async def broadcast(self, room_code, message, exclude=None):
        skip = set(exclude or ())
        for connection_id in self.sessions.members(room_code):
            if connection_id not in skip:
                await self.send(connection_id, message)

    def inbox(self, connection_id, msg_type=None):
        messages = self.inboxes.get(connection_id, [])
        if msg_type is None:
            return list(messages)
        return [m for m in messages if m["type"] == msg_type]

    def last(self, connection_id, msg_type):
        matching = self.inbox(connection_id, msg_type)
        return matching[-1] if matching else None


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path}/rooms.db")
    init_db(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return RoomStore(session_factory)


@pytest.fixture
def game(store):
    """Coordinator wired to a recording transport with a short grace period."""
    sessions = SessionRegistry()
    transport = RecordingTransport(sessions)
    return RoomCoordinator(store, sessions, transport, grace_seconds=0.05)


@pytest.fixture
def broken_store(session_factory):
    """Store over the same database whose commits fail after the changes were flushed."""

    def failing_sessions():
        db = session_factory()

        def commit():
            db.flush()
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        db.commit = commit
        return db

    return RoomStore(failing_sessions)
