"""SQLAlchemy ORM models."""

from order_tracking.models.audit_log import AuditLog
from order_tracking.models.courier import Courier
from order_tracking.models.order import Order
from order_tracking.models.restaurant import Restaurant
from order_tracking.models.user import User

__all__ = [
    "User",
    "Courier",
    "Restaurant",
    "Order",
    "AuditLog",
]
