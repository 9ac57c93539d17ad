"""System status routes."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from fastapi import APIRouter
from sqlalchemy import text

from order_tracking.database import get_session_factory
from order_tracking.engine.room_manager import RoomManager
from order_tracking.services.location_cache import LocationCache

router = APIRouter(prefix="/api", tags=["system"])

# Injected at startup
_get_rooms: Callable[[], RoomManager] | None = None
_get_cache: Callable[[], LocationCache] | None = None


def set_service_getters(
    rooms_getter: Callable[[], RoomManager],
    cache_getter: Callable[[], LocationCache],
) -> None:
    """Inject the room manager and cache getters used by system endpoints."""
    global _get_rooms, _get_cache
    _get_rooms = rooms_getter
    _get_cache = cache_getter


@router.get("/health")
async def get_health() -> dict[str, Any]:
    """Report store, cache and realtime state."""
    if _get_rooms is None or _get_cache is None:
        return {"running": False, "error": "Not initialized"}

    result: dict[str, Any] = {"running": True}
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        result["database"] = "ok"
    except Exception as e:
        result["database"] = f"error: {e}"

    result["cache"] = "ok" if await _get_cache().ping() else "unavailable"

    rooms = _get_rooms()
    result["realtime"] = {
        "running": rooms.is_running,
        "rooms": rooms.room_count,
        "connections": rooms.connection_count,
    }
    return result
