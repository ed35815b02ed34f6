# backend/services/client_adapter.py

"""
Client side of the room protocol.

The server is the only source of truth for what is displayed: a client
never echoes its own message locally, it waits for the "chat message"
broadcast. Typing state is the one thing a client has to manage on its own:

    - TypingDebouncer decides when to tell the server "I am typing" and
      "I stopped" (one second after the last keystroke, or on send).
    - RoomView expires a peer's typing flag after a local inactivity window,
      because the server never sends a timeout of its own.

Nothing here touches a socket. `emit(event, data)` is whatever sends a frame
on the client's transport, and `clock` returns seconds (time.monotonic).
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional

from models.models import MessageKind
from services.broadcaster import (
    CHAT_MESSAGE,
    MESSAGE_DELETED,
    MESSAGE_HISTORY,
    TYPING,
    USER_JOINED,
    USER_LEFT,
    USERS_LIST,
)
from services.session import DELETE_MESSAGE, JOIN_ROOM, SEND_MESSAGE, SET_TYPING

Emit = Callable[[str, dict], Any]
Clock = Callable[[], float]

TYPING_IDLE_TIMEOUT = 1.0
PEER_TYPING_EXPIRY = 5.0


def message_kind_for_upload(file_type: str) -> MessageKind:
    """Pick the chat message kind for an upload response's MIME type."""
    if file_type.startswith("image/"):
        return MessageKind.IMAGE
    if file_type.startswith("video/"):
        return MessageKind.VIDEO
    if file_type.startswith("audio/"):
        return MessageKind.AUDIO
    return MessageKind.FILE


class TypingDebouncer:
    """Emits typing=true once per burst of keystrokes and typing=false after idle_timeout."""

    def __init__(self, emit: Emit, idle_timeout: float = TYPING_IDLE_TIMEOUT, clock: Clock = time.monotonic) -> None:
        self.emit = emit
        self.idle_timeout = idle_timeout
        self.clock = clock
        self.is_typing = False
        self._last_keystroke = 0.0

    def keystroke(self) -> None:
        if not self.is_typing:
            self.emit(SET_TYPING, {"isTyping": True})
            self.is_typing = True
        self._last_keystroke = self.clock()

    def poll(self) -> None:
        """Call periodically; sends typing=false once the idle timeout has passed."""
        if self.is_typing and self.clock() - self._last_keystroke >= self.idle_timeout:
            self.stop()

    def stop(self) -> None:
        if self.is_typing:
            self.emit(SET_TYPING, {"isTyping": False})
            self.is_typing = False


class RoomView:
    """
    What a client shows for one room, rebuilt purely from server events.

    messages  message id -> message dict, as broadcast
    roster    display names from the last "users list"
    notices   "x joined the chat" / "x left the chat" lines
    """

    def __init__(self, typing_expiry: float = PEER_TYPING_EXPIRY, clock: Clock = time.monotonic) -> None:
        self.typing_expiry = typing_expiry
        self.clock = clock
        self.messages: Dict[int, dict] = {}
        self.roster: List[str] = []
        self.notices: List[str] = []
        self._typing: Dict[str, float] = {}

    def apply(self, event: str, data: Any) -> None:
        if event == MESSAGE_HISTORY:
            # Live messages may arrive before the history that predates them
            self.messages.update((m["id"], m) for m in data or [])
        elif event == CHAT_MESSAGE:
            self.messages[data["id"]] = data
        elif event == MESSAGE_DELETED:
            self.messages.pop(data["messageId"], None)
        elif event == USERS_LIST:
            self.roster = list(data or [])
        elif event == USER_JOINED:
            self.notices.append(data["message"])
        elif event == USER_LEFT:
            self.notices.append(data["message"])
            self._typing.pop(data["username"], None)
        elif event == TYPING:
            if data.get("isTyping"):
                self._typing[data["username"]] = self.clock()
            else:
                self._typing.pop(data["username"], None)

    def reset(self) -> None:
        self.messages.clear()
        self.roster = []
        self.notices.clear()
        self._typing.clear()

    def message_list(self) -> List[dict]:
        return [self.messages[i] for i in sorted(self.messages)]

    def typing_users(self) -> List[str]:
        now = self.clock()
        for name, since in list(self._typing.items()):
            if now - since >= self.typing_expiry:
                del self._typing[name]
        return list(self._typing)

    def typing_indicator(self) -> str:
        users = self.typing_users()
        if not users:
            return ""
        if len(users) == 1:
            return f"{users[0]} is typing..."
        if len(users) == 2:
            return f"{users[0]} and {users[1]} are typing..."
        return f"{len(users)} people are typing..."


class RoomClient:
    """Outbound events for one connection plus the RoomView fed by inbound ones."""

    def __init__(
        self,
        emit: Emit,
        clock: Clock = time.monotonic,
        typing_idle_timeout: float = TYPING_IDLE_TIMEOUT,
        peer_typing_expiry: float = PEER_TYPING_EXPIRY,
    ) -> None:
        self.emit = emit
        self.view = RoomView(typing_expiry=peer_typing_expiry, clock=clock)
        self.typing = TypingDebouncer(emit, idle_timeout=typing_idle_timeout, clock=clock)
        self.room_id: Optional[str] = None
        self.username: Optional[str] = None

    def join(self, room_id: str, username: str) -> None:
        if room_id != self.room_id:
            self.view.reset()
        self.room_id, self.username = room_id, username.strip()
        self.emit(JOIN_ROOM, {"roomId": room_id, "username": self.username})

    def send_text(self, text: str) -> bool:
        text = text.strip()
        if not text:
            return False
        self.emit(SEND_MESSAGE, {"message": text, "type": MessageKind.TEXT.value})
        self.typing.stop()
        return True

    def send_upload(self, upload: dict, kind: Optional[MessageKind] = None, caption: Optional[str] = None) -> None:
        """Announce an uploaded file, given the upload endpoint's {fileUrl, fileName, fileType}."""
        kind = kind or message_kind_for_upload(upload.get("fileType", ""))
        self.emit(
            SEND_MESSAGE,
            {
                "message": caption or upload["fileName"],
                "type": kind.value,
                "fileUrl": upload["fileUrl"],
                "fileName": upload["fileName"],
            },
        )

    def delete(self, message_id: int) -> None:
        self.emit(DELETE_MESSAGE, {"messageId": message_id})

    def receive(self, frame: dict) -> None:
        self.view.apply(frame.get("event"), frame.get("data"))
