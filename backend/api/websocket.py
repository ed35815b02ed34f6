# backend/api/websocket.py

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from core import state
from services.broadcaster import ERROR
from services.session import Session, UnknownEventError
from models.models import ChatMessage

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time room chat.

    Every frame, in both directions, is {"event": "<name>", "data": {...}}.

    Client -> Server Events:
    ------------------------
    Join Room:
        {"event": "join room", "data": {"roomId": "abc123", "username": "alice"}}
        Joiner receives:  "users list", then "message history" (oldest first, max 50)
        Others receive:   "users list", "user joined"

    Send Message:
        {"event": "chat message",
         "data": {"message": "hi", "type": "text", "fileUrl": null, "fileName": null}}
        Whole room (sender included) receives "chat message" with the stored message

    Typing:
        {"event": "typing", "data": {"isTyping": true}}
        Room minus sender receives {"event": "typing", "data": {"username": "alice", "isTyping": true}}

    Delete Message:
        {"event": "delete message", "data": {"messageId": 42}}
        Whole room receives "message deleted" {"messageId": 42, "deletedBy": "alice"}
        if alice wrote message 42 in this room; otherwise nothing happens

    Server -> Client Only:
    ----------------------
    User Left:
        {"event": "user left", "data": {"username": "bob", "message": "bob left the chat"}}

    Error:
        {"event": "error", "data": {"message": "Invalid JSON"}}

    Lifecycle:
    ==========
    1. Client connects, a connection id is assigned
    2. Room-scoped events are ignored until "join room" is processed
    3. A second "join room" moves the connection to the new room
    4. On disconnect the session leaves its room ("user left" + roster refresh)
    """
    await websocket.accept()

    session = Session(
        websocket,
        registry=state.room_registry,
        store=state.message_store,
        broadcaster=state.broadcaster,
    )
    logger.info("✓ Connection %s opened. Total joined: %d", session.connection_id, state.room_registry.connection_count)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            data = message.get("text")
            if data is None:
                await websocket.send_json({"event": ERROR, "data": {"message": "Binary frames are not supported"}})
                continue

            try:
                frame = json.loads(data)
                if not isinstance(frame, dict):
                    raise ValueError("frame must be an object")
            except ValueError:
                await websocket.send_json({"event": ERROR, "data": {"message": "Invalid JSON"}})
                continue

            event = frame.get("event")
            logger.debug("Websocket input from %s: %s", session.connection_id, event)

            try:
                result = await session.handle(event, frame.get("data"))
            except UnknownEventError:
                await websocket.send_json({"event": ERROR, "data": {"message": f"Unknown event: {event}"}})
                continue

            if isinstance(result, ChatMessage):
                state.message_counter += 1

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error: %s", e)
    finally:
        # Leaving the room must complete even if this handler is being cancelled
        await asyncio.shield(session.close())
        logger.info("✗ Connection %s closed. Total joined: %d", session.connection_id, state.room_registry.connection_count)
