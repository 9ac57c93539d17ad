"""Pydantic schemas for API request/response validation."""

from order_tracking.schemas.couriers import CourierCreate, CourierResponse
from order_tracking.schemas.tracking import (
    ActiveOrder,
    CourierAssignment,
    DeliveryConfirmation,
    LocationReport,
    LocationResponse,
    OrderStatusResponse,
    StatusUpdate,
    TrackingSnapshot,
)
from order_tracking.schemas.ws import LocationMessage, RoomRequest, WSMessage

__all__ = [
    "CourierCreate",
    "CourierResponse",
    "StatusUpdate",
    "CourierAssignment",
    "LocationReport",
    "DeliveryConfirmation",
    "TrackingSnapshot",
    "OrderStatusResponse",
    "LocationResponse",
    "ActiveOrder",
    "WSMessage",
    "RoomRequest",
    "LocationMessage",
]
