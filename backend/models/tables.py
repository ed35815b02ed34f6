# backend/models/tables.py
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class RoomRecord(Base):
    __tablename__ = "rooms"

    id = Column(String, primary_key=True)
    name = Column(String)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class MessageRecord(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=False)
    room_id = Column(String, ForeignKey("rooms.id"), index=True, nullable=False)
    username = Column(String, nullable=False)
    message = Column(Text)
    message_type = Column(String, default="text", nullable=False)
    file_url = Column(String)
    file_name = Column(String)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class CounterRecord(Base):
    """High-water mark of an identifier sequence, kept even when its rows are deleted."""

    __tablename__ = "counters"

    name = Column(String, primary_key=True)
    value = Column(Integer, nullable=False, default=0)
