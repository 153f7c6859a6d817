from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime, timezone

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


class Room(Base):
    __tablename__ = "rooms"
    code = Column(String(6), primary_key=True)
    board = Column(String(9), nullable=False, default=" " * 9)  # space = empty cell
    current_player = Column(String(1), nullable=False, default="X")
    status = Column(String(20), nullable=False, default="waiting")
    winner = Column(String(4), nullable=True)  # X, O or draw
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    players = relationship("Player", back_populates="room", cascade="all, delete-orphan", passive_deletes=True)


class Player(Base):
    __tablename__ = "players"
    __table_args__ = (UniqueConstraint("room_code", "symbol", name="uq_players_room_symbol"),)

    id = Column(Integer, primary_key=True, index=True)
    connection_id = Column(String(64), nullable=True, index=True)
    room_code = Column(String(6), ForeignKey("rooms.code", ondelete="CASCADE"), nullable=False, index=True)
    symbol = Column(String(1), nullable=False)
    name = Column(String(100), nullable=False, default="Anonymous")
    connected = Column(Boolean, nullable=False, default=True)
    joined_at = Column(DateTime(timezone=True), default=utcnow)

    room = relationship("Room", back_populates="players")
