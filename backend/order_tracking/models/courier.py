"""Courier (delivery partner) model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from order_tracking.database import Base
from order_tracking.models._time import utcnow


class Courier(Base):
    """A delivery partner and its live availability state."""

    __tablename__ = "couriers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    phone: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    vehicle_type: Mapped[str] = mapped_column(String, nullable=False, default="bike")
    vehicle_number: Mapped[str] = mapped_column(String, nullable=False)
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=4.5)
    current_latitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    current_longitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    location_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Set semantics; reassign a new list to mark the column dirty.
    active_order_ids: Mapped[list[int]] = mapped_column(
        JSON, nullable=False, default=list
    )
    total_deliveries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    def summary(self) -> dict[str, object]:
        """Public courier card sent to viewers of an order."""
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "vehicle_type": self.vehicle_type,
            "vehicle_number": self.vehicle_number,
            "rating": self.rating,
        }
