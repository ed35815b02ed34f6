# backend/services/session.py

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from core.config import settings
from models.models import (
    ChatMessage,
    ChatMessagePayload,
    DeleteMessagePayload,
    JoinRoomPayload,
    TypingPayload,
)
from services.broadcaster import (
    CHAT_MESSAGE,
    DELETE_DENIED,
    MESSAGE_DELETED,
    MESSAGE_HISTORY,
    TYPING,
    USER_JOINED,
    EventBroadcaster,
)
from services.message_store import MessageStore
from services.room_registry import RoomRegistry

logger = logging.getLogger(__name__)

# Client -> server event names
JOIN_ROOM = "join room"
SEND_MESSAGE = "chat message"
SET_TYPING = "typing"
DELETE_MESSAGE = "delete message"


class SessionState(str, Enum):
    UNJOINED = "unjoined"
    JOINED = "joined"
    CLOSED = "closed"


class UnknownEventError(Exception):
    """Raised by Session.handle for an event name it does not understand."""

    def __init__(self, event: Any) -> None:
        super().__init__(f"Unknown event: {event}")
        self.event = event


def is_message_owner(stored_author: Optional[str], requester: str) -> bool:
    """Only the original author may delete a message."""
    return stored_author is not None and stored_author == requester


# ============================================================================
# CLIENT SESSION
# ============================================================================

class Session:
    """
    Binds one transport connection to (room, display name) once joined.

    States:
        UNJOINED -> JOINED   on "join room"
        JOINED   -> JOINED   on a second "join room" (leave the old room, join the new one)
        any      -> CLOSED   on transport disconnect (close())

    Room-scoped events (chat message, typing, delete message) received
    outside JOINED are ignored without a reply or side effect, so a client
    may send them before its join has been processed.

    The connection only needs an async send_json(dict) method; FastAPI's
    WebSocket is what the application passes in.
    """

    def __init__(
        self,
        connection: Any,
        registry: RoomRegistry,
        store: MessageStore,
        broadcaster: Optional[EventBroadcaster] = None,
        connection_id: Optional[str] = None,
        history_limit: Optional[int] = None,
        max_message_length: Optional[int] = None,
        explicit_delete_denial: Optional[bool] = None,
    ) -> None:
        self.connection = connection
        self.registry = registry
        self.store = store
        self.broadcaster = broadcaster or EventBroadcaster(registry)
        self.connection_id = connection_id or uuid.uuid4().hex

        self.history_limit = history_limit if history_limit is not None else settings.HISTORY_LIMIT
        self.max_message_length = max_message_length if max_message_length is not None else settings.MAX_MESSAGE_LENGTH
        self.explicit_delete_denial = (
            explicit_delete_denial if explicit_delete_denial is not None else settings.EXPLICIT_DELETE_DENIAL
        )

        self.state = SessionState.UNJOINED
        self.room_id: Optional[str] = None
        self.username: Optional[str] = None

        self._handlers: Dict[str, Callable[[dict], Awaitable[Any]]] = {
            JOIN_ROOM: self._on_join,
            SEND_MESSAGE: self.send_message,
            SET_TYPING: self.set_typing,
            DELETE_MESSAGE: self.delete_message,
        }

    @property
    def joined(self) -> bool:
        return self.state is SessionState.JOINED

    async def handle(self, event: str, data: Any) -> Any:
        """Dispatch one inbound event. Raises UnknownEventError for unknown names."""
        handler = self._handlers.get(event)
        if handler is None:
            raise UnknownEventError(event)
        if not isinstance(data, dict):
            data = {}
        return await handler(data)

    # ------------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------------

    async def _on_join(self, data: dict) -> bool:
        return await self.join(data.get("roomId"), data.get("username"))

    async def join(self, room_id: Any, username: Any) -> bool:
        """
        Join a room.

        Process:
            1. Register in the room registry (roster broadcast to the room)
            2. Make sure the room record exists
            3. Tell the rest of the room who joined
            4. Send the recent history to this session only, oldest first
        """
        if self.state is SessionState.CLOSED:
            return False

        try:
            payload = JoinRoomPayload.model_validate({"roomId": room_id, "username": username})
        except ValidationError as e:
            logger.warning("Rejected join from %s: %s", self.connection_id, e.errors()[0]["msg"])
            return False

        if self.joined:
            # Room switch
            await self._leave()

        self.room_id = payload.room_id
        self.username = payload.username
        await self.broadcaster.register(self.room_id, self.connection_id, self.username, self.connection)
        self.state = SessionState.JOINED

        try:
            await self.store.ensure_room(self.room_id)
        except Exception as e:
            self.store.record_failure(f"ensure room {self.room_id}", e)

        await self.broadcaster.to_room(
            self.room_id,
            USER_JOINED,
            {"username": self.username, "message": f"{self.username} joined the chat"},
            exclude=self.connection_id,
        )

        history = await self._load_history(self.room_id)
        await self.broadcaster.send(
            self.connection,
            MESSAGE_HISTORY,
            [m.model_dump(mode="json") for m in history],
        )
        return True

    async def close(self) -> None:
        """Transport is gone: leave the current room, if any. Safe to call twice."""
        if self.state is SessionState.CLOSED:
            return
        if self.joined:
            await self._leave()
        self.state = SessionState.CLOSED

    async def _leave(self) -> None:
        room_id, username = self.room_id, self.username
        self.state = SessionState.UNJOINED
        self.room_id = None
        self.username = None

        await self.broadcaster.unregister(
            room_id,
            self.connection_id,
            farewell={"username": username, "message": f"{username} left the chat"},
        )

    async def _load_history(self, room_id: str) -> List[ChatMessage]:
        # Let this room's in-flight writes land first
        await self.store.wait_pending()
        try:
            return await self.store.get_recent_messages(room_id, self.history_limit)
        except Exception as e:
            self.store.record_failure(f"load history {room_id}", e)
            return []

    # ------------------------------------------------------------------------
    # Room-scoped events
    # ------------------------------------------------------------------------

    async def send_message(self, data: dict) -> Optional[ChatMessage]:
        """Assign id + timestamp, persist in the background, broadcast to the whole room."""
        if not self.joined:
            return None

        try:
            payload = ChatMessagePayload.model_validate(data)
        except ValidationError as e:
            logger.debug("Ignored chat message from %s: %s", self.username, e.errors()[0]["msg"])
            return None

        if payload.is_empty():
            return None
        if payload.message and len(payload.message) > self.max_message_length:
            logger.debug("Ignored chat message from %s: %d characters", self.username, len(payload.message))
            return None

        message = ChatMessage(
            id=self.store.next_id(),
            room_id=self.room_id,
            username=self.username,
            message=payload.message,
            message_type=payload.type,
            file_url=payload.file_url,
            file_name=payload.file_name,
            timestamp=datetime.now(timezone.utc),
        )

        # Broadcast does not wait for the write
        self.store.schedule(self.store.save_message(message), f"insert message {message.id}")
        await self.broadcaster.to_room(self.room_id, CHAT_MESSAGE, message.model_dump(mode="json"))
        return message

    async def set_typing(self, data: dict) -> bool:
        if not self.joined:
            return False

        try:
            payload = TypingPayload.model_validate(data)
        except ValidationError:
            return False

        await self.broadcaster.to_room(
            self.room_id,
            TYPING,
            {"username": self.username, "isTyping": payload.is_typing},
            exclude=self.connection_id,
        )
        return True

    async def delete_message(self, data: dict) -> bool:
        """Delete one of the requester's own messages in the current room."""
        if not self.joined:
            return False

        try:
            payload = DeleteMessagePayload.model_validate(data)
        except ValidationError:
            return False

        room_id, username = self.room_id, self.username
        message_id = payload.message_id

        # A message still being written would look absent
        await self.store.wait_pending()
        try:
            author = await self.store.get_message_author(message_id, room_id)
        except Exception as e:
            self.store.record_failure(f"look up message {message_id}", e)
            return False

        if author is None:
            return False

        if not is_message_owner(author, username):
            logger.info("Refused delete of message %s in %s by %s", message_id, room_id, username)
            if self.explicit_delete_denial:
                await self.broadcaster.send(self.connection, DELETE_DENIED, {"messageId": message_id})
            return False

        try:
            deleted = await self.store.delete_message(message_id, room_id)
        except Exception as e:
            self.store.record_failure(f"delete message {message_id}", e)
            return False

        if not deleted:
            return False

        await self.broadcaster.to_room(
            room_id,
            MESSAGE_DELETED,
            {"messageId": message_id, "deletedBy": username},
        )
        return True
