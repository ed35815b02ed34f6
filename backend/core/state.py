# backend/core/state.py
from __future__ import annotations

from datetime import datetime, timezone

from core.config import settings
from services.broadcaster import EventBroadcaster
from services.message_store import MessageStore
from services.room_registry import RoomRegistry

# Default instances wired into the application; tests build their own
room_registry = RoomRegistry()
broadcaster = EventBroadcaster(room_registry)
message_store = MessageStore(settings.DATABASE_URL)

# Metrics
message_counter: int = 0
app_start_time: datetime = datetime.now(timezone.utc)
