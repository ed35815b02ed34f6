# backend/api/routes/rooms.py

import logging
from typing import List

from fastapi import APIRouter, HTTPException, Path

from core import state
from core.config import settings
from models.models import ROOM_ID_PATTERN, ChatMessage, RoomUsers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/room")

# ============================================================================
# ROOM READ ENDPOINTS
# ============================================================================

@router.get("/{room_id}/messages", response_model=List[ChatMessage])
async def get_room_messages(room_id: str = Path(pattern=ROOM_ID_PATTERN)):
    """
    REST fallback for a room's history.

    Returns the most recent messages (REST_HISTORY_LIMIT, default 100),
    oldest first. A room nobody has joined yet simply has no messages.

    Raises:
        HTTPException: 500 if the message store fails
    """
    await state.message_store.wait_pending()
    try:
        return await state.message_store.get_recent_messages(room_id, settings.REST_HISTORY_LIMIT)
    except Exception as e:
        state.message_store.record_failure(f"fetch messages {room_id}", e)
        raise HTTPException(status_code=500, detail="Failed to fetch messages")


@router.get("/{room_id}/users", response_model=RoomUsers)
async def get_room_users(room_id: str = Path(pattern=ROOM_ID_PATTERN)):
    """
    Current roster of a room, in join order.

    Display names are not deduplicated: two connections using the same
    name both appear.
    """
    users = state.room_registry.list_display_names(room_id)
    return RoomUsers(room_id=room_id, users=users, member_count=len(users))
