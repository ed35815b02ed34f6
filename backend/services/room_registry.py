# backend/services/room_registry.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Member:
    """One live membership entry: a connection bound to a room under a display name."""

    room_id: str
    connection_id: str
    display_name: str
    connection: Any = None


# ============================================================================
# ROOM MEMBERSHIP REGISTRY
# ============================================================================

class RoomRegistry:
    """
    In-memory view of who is connected to which room right now.

    Data Structures:
        rooms: Maps room_id -> {connection_id: Member}, in join order
               Example: {"abc123": {"c1": Member(..., "alice"), "c2": Member(..., "bob")}}

        connection_rooms: Maps connection_id -> room_id it is registered in
                          Example: {"c1": "abc123", "c2": "abc123"}

    A connection is registered in at most one room. Registering it again,
    in the same or another room, replaces the previous entry.

    All operations are total: unregistering an absent entry does nothing.
    The registry itself never broadcasts; callers that must pair a change
    with a presence broadcast hold that room's `lock_for(room_id)` around
    both (see EventBroadcaster). Rooms never wait on each other.

    Scaling:
        - Single process only. Nothing here is shared between workers.
    """

    def __init__(self) -> None:
        self.rooms: Dict[str, Dict[str, Member]] = {}
        self.connection_rooms: Dict[str, str] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def register(self, room_id: str, connection_id: str, display_name: str, connection: Any = None) -> Member:
        """Add or replace the membership entry for connection_id."""
        previous_room = self.connection_rooms.get(connection_id)
        if previous_room is not None and previous_room != room_id:
            self.unregister(previous_room, connection_id)

        member = Member(room_id, connection_id, display_name, connection)
        members = self.rooms.setdefault(room_id, {})
        # Replacing keeps the original position in the roster
        members[connection_id] = member
        self.connection_rooms[connection_id] = room_id

        logger.info("→ %s joined room %s (%d members)", display_name, room_id, len(members))
        return member

    def unregister(self, room_id: str, connection_id: str) -> Optional[Member]:
        """Remove the membership entry for connection_id. Returns it, or None if absent."""
        members = self.rooms.get(room_id)
        if not members or connection_id not in members:
            return None

        member = members.pop(connection_id)
        if self.connection_rooms.get(connection_id) == room_id:
            del self.connection_rooms[connection_id]

        # Clean up empty rooms from memory
        if not members:
            del self.rooms[room_id]

        logger.info("← %s left room %s (%d members)", member.display_name, room_id, len(members))
        return member

    def list_display_names(self, room_id: str) -> List[str]:
        return [m.display_name for m in self.rooms.get(room_id, {}).values()]

    def members(self, room_id: str) -> List[Member]:
        """Snapshot of the members of a room, safe to iterate while the registry changes."""
        return list(self.rooms.get(room_id, {}).values())

    def room_of(self, connection_id: str) -> Optional[str]:
        return self.connection_rooms.get(connection_id)

    def lock_for(self, room_id: str) -> asyncio.Lock:
        """The lock serializing membership changes of one room."""
        lock = self._locks.get(room_id)
        if lock is None:
            lock = self._locks[room_id] = asyncio.Lock()
        return lock

    def rooms_info(self) -> Dict[str, int]:
        """Map of active room_id -> member count, for health and metrics."""
        return {room_id: len(members) for room_id, members in self.rooms.items()}

    @property
    def connection_count(self) -> int:
        return len(self.connection_rooms)
