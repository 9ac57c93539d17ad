"""Durable order record.

Items and amount belong to order placement; the tracking engine owns the
live fields (status, history, courier, location, ETA).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from order_tracking.database import Base
from order_tracking.models._time import utcnow


class Order(Base):
    """A customer order and its delivery tracking state."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    restaurant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    # Append-only list of {"status", "timestamp", "actor"}
    status_history: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    courier_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("couriers.id"), nullable=True
    )
    # {"latitude", "longitude", "updated_at"}
    delivery_location: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )
    estimated_delivery_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
