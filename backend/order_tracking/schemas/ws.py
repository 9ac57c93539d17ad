"""WebSocket message schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class WSMessage(BaseModel):
    """Generic WebSocket message envelope."""

    type: str
    data: dict[str, Any] = {}


class RoomRequest(BaseModel):
    """Payload of ``join_order_room`` / ``leave_order_room``."""

    order_id: int


class LocationMessage(BaseModel):
    """Payload of ``report_location``."""

    order_id: int
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
