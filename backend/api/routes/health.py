# backend/api/routes/health.py

from fastapi import APIRouter

from core import state

router = APIRouter()

@router.get("/health")
async def health():
    """
    Health check endpoint.

    Returns current system status, joined connection count and the number
    of rooms with at least one member.
    """
    return {
        "status": "healthy",
        "connections": state.room_registry.connection_count,
        "active_rooms_with_members": len(state.room_registry.rooms),
    }
