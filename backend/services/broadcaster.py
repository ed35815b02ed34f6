# backend/services/broadcaster.py

from __future__ import annotations

import logging
from typing import Any, Optional

from services.room_registry import Member, RoomRegistry

logger = logging.getLogger(__name__)

# Server -> client event names
MESSAGE_HISTORY = "message history"
CHAT_MESSAGE = "chat message"
USER_JOINED = "user joined"
USER_LEFT = "user left"
USERS_LIST = "users list"
MESSAGE_DELETED = "message deleted"
DELETE_DENIED = "delete denied"
TYPING = "typing"
ERROR = "error"


def frame(event: str, data: Any) -> dict:
    return {"event": event, "data": data}


# ============================================================================
# ROOM EVENT BROADCASTER
# ============================================================================

class EventBroadcaster:
    """
    Routes outbound events to the sessions registered in a room.

    Audiences:
        - to_room(room_id, ...)                  entire room, sender included
        - to_room(room_id, ..., exclude=conn_id) entire room minus the sender

    Delivery is fire-and-forget: no buffering, no retry, no acknowledgment.
    A send that fails (connection already gone) is logged and skipped; the
    session's own receive loop notices the disconnect and leaves the room.
    """

    def __init__(self, registry: RoomRegistry) -> None:
        self.registry = registry
        self.sent_count: int = 0

    async def send(self, connection: Any, event: str, data: Any) -> bool:
        """Deliver one event to one connection. Returns False if the send failed."""
        try:
            await connection.send_json(frame(event, data))
        except Exception as e:
            logger.warning("Send error (%s): %s", event, e)
            return False
        self.sent_count += 1
        return True

    async def to_room(self, room_id: str, event: str, data: Any, exclude: Optional[str] = None) -> int:
        """Broadcast to a room snapshot. Returns the number of successful deliveries."""
        members = [m for m in self.registry.members(room_id) if m.connection_id != exclude]
        if not members:
            logger.debug("[routing] Skipped %s: room=%s has no recipients", event, room_id)
            return 0

        logger.debug("📨 Broadcasting %s to room %s: %d clients", event, room_id, len(members))

        delivered = 0
        for member in members:
            if await self.send(member.connection, event, data):
                delivered += 1
        return delivered

    async def refresh_roster(self, room_id: str) -> None:
        await self.to_room(room_id, USERS_LIST, self.registry.list_display_names(room_id))

    # ------------------------------------------------------------------------
    # Membership changes (mutation + presence broadcast as one step)
    # ------------------------------------------------------------------------

    async def register(self, room_id: str, connection_id: str, display_name: str, connection: Any) -> Member:
        async with self.registry.lock_for(room_id):
            member = self.registry.register(room_id, connection_id, display_name, connection)
            await self.refresh_roster(room_id)
        return member

    async def unregister(self, room_id: str, connection_id: str, farewell: Optional[dict] = None) -> Optional[Member]:
        """
        Remove a member and refresh the roster of the remaining ones.

        If farewell is given, it is broadcast as a "user left" event before
        the roster refresh, inside the same atomic step.
        """
        async with self.registry.lock_for(room_id):
            member = self.registry.unregister(room_id, connection_id)
            if member is None:
                return None
            if farewell is not None:
                await self.to_room(room_id, USER_LEFT, farewell)
            await self.refresh_roster(room_id)
        return member
