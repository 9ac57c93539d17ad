"""Order status state machine.

pending → confirmed → preparing → out_for_delivery → delivered, with
cancelled reachable from any non-terminal state. The lifecycle only moves
forward: steps may be skipped (assigning a courier to a pending order takes it
straight to out_for_delivery) but never taken back. Restaurant staff, couriers
and admins all drive the machine and upstream commands may be redelivered, so
reapplying the current status is accepted and recorded rather than rejected.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from order_tracking.errors import InvalidStatus
from order_tracking.models._time import utcnow
from order_tracking.models.order import Order

logger = logging.getLogger(__name__)

DEFAULT_DELIVERY_WINDOW = timedelta(minutes=30)


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Position along the delivery lifecycle. Cancelled sits outside it.
_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.CONFIRMED: 1,
    OrderStatus.PREPARING: 2,
    OrderStatus.OUT_FOR_DELIVERY: 3,
    OrderStatus.DELIVERED: 4,
}


def parse_status(value: str | OrderStatus) -> OrderStatus:
    """Coerce *value* into an :class:`OrderStatus` or raise ``InvalidStatus``."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidStatus(f"Invalid order status: {value!r}") from None


def history_entry(status: OrderStatus, timestamp: datetime, actor: str) -> dict[str, Any]:
    return {"status": status.value, "timestamp": timestamp.isoformat(), "actor": actor}


def transition(
    order: Order,
    target: str | OrderStatus,
    actor: str,
    *,
    now: datetime | None = None,
    delivery_window: timedelta = DEFAULT_DELIVERY_WINDOW,
) -> Order:
    """Apply *target* to *order* in place and return it.

    Raises ``InvalidStatus`` for values outside the enumeration, for any
    attempt to leave a terminal state and for moves back down the lifecycle.
    """
    status = parse_status(target)
    current = parse_status(order.status)
    if current.is_terminal and status is not current:
        raise InvalidStatus(
            f"Order {order.id} is already {current.value}; cannot move to {status.value}"
        )
    if status is not OrderStatus.CANCELLED and _RANK[status] < _RANK[current]:
        raise InvalidStatus(
            f"Order {order.id} is {current.value}; cannot go back to {status.value}"
        )

    now = now or utcnow()
    order.status = status.value
    # Reassign so SQLAlchemy sees the JSON column change.
    order.status_history = [*(order.status_history or []), history_entry(status, now, actor)]

    if status is OrderStatus.OUT_FOR_DELIVERY and order.estimated_delivery_time is None:
        order.estimated_delivery_time = now + delivery_window

    if status is current:
        logger.debug("Order %s re-applied status %s (%s)", order.id, status.value, actor)
    else:
        logger.info(
            "Order %s: %s -> %s (%s)", order.id, current.value, status.value, actor
        )
    return order
