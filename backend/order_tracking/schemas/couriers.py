"""Courier roster Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class CourierCreate(BaseModel):
    """Request schema for registering a courier."""

    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: str = Field(min_length=3)
    vehicle_type: Literal["bike", "scooter", "bicycle", "car"] = "bike"
    vehicle_number: str = Field(min_length=1)
    current_latitude: float = Field(default=0.0, ge=-90, le=90)
    current_longitude: float = Field(default=0.0, ge=-180, le=180)


class CourierResponse(BaseModel):
    """Response schema for a courier."""

    id: int
    name: str
    phone: str
    email: str
    vehicle_type: str
    vehicle_number: str
    rating: float
    current_latitude: float
    current_longitude: float
    location_updated_at: datetime
    is_available: bool
    active_order_ids: list[int]
    total_deliveries: int
    created_at: datetime

    model_config = {"from_attributes": True}
