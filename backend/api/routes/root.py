# backend/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the API and its features.
    """
    return {
        "message": "Private Rooms Chat",
        "version": "1.0",
        "features": ["rooms_by_url", "presence", "typing", "media_messages", "own_message_delete"],
        "endpoints": {
            "websocket": "/ws",
            "history": "/api/room/{room_id}/messages",
            "users": "/api/room/{room_id}/users",
            "upload": "/api/upload",
            "uploads": "/uploads",
            "health": "/health",
            "metrics": "/metrics",
        },
    }
