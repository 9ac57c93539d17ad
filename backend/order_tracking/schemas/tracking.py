"""Order tracking Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class StatusUpdate(BaseModel):
    """Request schema for changing an order's status."""

    status: str = Field(min_length=1)


class CourierAssignment(BaseModel):
    courier_id: int = Field(gt=0)


class LocationReport(BaseModel):
    """A single GPS sample from the courier app."""

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class DeliveryConfirmation(BaseModel):
    courier_id: int | None = Field(default=None, gt=0)


class StatusHistoryEntry(BaseModel):
    status: str
    timestamp: str
    actor: str


class CourierSummary(BaseModel):
    id: int
    name: str
    phone: str
    vehicle_type: str
    vehicle_number: str
    rating: float


class DeliveryLocation(BaseModel):
    latitude: float
    longitude: float
    updated_at: str | None = None
    source: str | None = None


class TrackingSnapshot(BaseModel):
    """Response schema for ``GET /api/orders/{id}/track``."""

    order_id: int
    status: str
    items: list[dict[str, Any]]
    total_amount: float
    status_history: list[StatusHistoryEntry]
    courier: CourierSummary | None = None
    delivery_location: DeliveryLocation | None = None
    estimated_delivery_time: datetime | None = None
    created_at: datetime
    updated_at: datetime


class OrderStatusResponse(BaseModel):
    order_id: int
    status: str
    courier_id: int | None = None
    estimated_delivery_time: datetime | None = None
    updated_at: datetime


class LocationResponse(BaseModel):
    order_id: int
    courier_id: int
    location: DeliveryLocation


class ActiveOrder(BaseModel):
    order_id: int
    status: str
    courier_id: int | None = None
    since: str
