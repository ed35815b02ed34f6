# backend/api/routes/metrics.py
from fastapi import APIRouter
from datetime import datetime, timezone

from core import state

router = APIRouter()

@router.get("/metrics")
async def get_metrics():
    """
    Runtime counters.

    Persistence failures are reported here because they are never sent to a
    client: a message is broadcast before it is written, so a failed write
    only shows up as a gap in later history.

    Example Response:
        {
            "total_messages": 120,
            "messages_per_second": 0.03,
            "uptime_hours": 1.1,
            "frames_sent": 904,
            "concurrent_connections": 4,
            "active_rooms": {"abc123": 3, "team": 1},
            "pending_writes": 0,
            "persistence_failures": 0,
            "last_persistence_failure": null
        }
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()

    if uptime_seconds > 0:
        messages_per_second = state.message_counter / uptime_seconds
    else:
        messages_per_second = 0

    return {
        # Statistics
        "total_messages": state.message_counter,
        "messages_per_second": round(messages_per_second, 2),
        "uptime_hours": round(uptime_seconds / 3600, 2) if uptime_seconds > 0 else 0,
        "frames_sent": state.broadcaster.sent_count,

        # Capacity
        "concurrent_connections": state.room_registry.connection_count,
        "active_rooms": state.room_registry.rooms_info(),

        # Persistence
        "pending_writes": state.message_store.pending_count,
        "persistence_failures": state.message_store.failure_count,
        "last_persistence_failure": state.message_store.last_failure,
    }
