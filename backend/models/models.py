# backend/models/models.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

ROOM_ID_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


class MessageKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    VOICE = "voice"
    FILE = "file"


class ChatMessage(BaseModel):
    """A stored (or about to be stored) chat message, as sent on the wire."""

    id: int
    room_id: str
    username: str
    message: Optional[str] = None
    message_type: MessageKind = MessageKind.TEXT
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    timestamp: datetime


# ============================================================================
# CLIENT -> SERVER PAYLOADS
# ============================================================================

class JoinRoomPayload(BaseModel):
    room_id: str = Field(alias="roomId", pattern=ROOM_ID_PATTERN)
    username: str = Field(min_length=1, max_length=50)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class ChatMessagePayload(BaseModel):
    message: Optional[str] = None
    type: MessageKind = MessageKind.TEXT
    file_url: Optional[str] = Field(default=None, alias="fileUrl")
    file_name: Optional[str] = Field(default=None, alias="fileName")

    @field_validator("message", "file_url", "file_name", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("type", mode="before")
    @classmethod
    def default_kind(cls, value):
        return value or MessageKind.TEXT

    def is_empty(self) -> bool:
        return not self.message and not self.file_url


class TypingPayload(BaseModel):
    is_typing: bool = Field(alias="isTyping")


class DeleteMessagePayload(BaseModel):
    message_id: int = Field(alias="messageId", ge=1, le=2**63 - 1)


# ============================================================================
# HTTP COLLABORATORS
# ============================================================================

class UploadResponse(BaseModel):
    fileUrl: str
    fileName: str
    fileType: str


class RoomUsers(BaseModel):
    room_id: str
    users: List[str]
    member_count: int = 0
