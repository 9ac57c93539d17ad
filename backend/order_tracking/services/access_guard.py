"""Room authorization: who may watch which order."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_tracking.errors import Forbidden, OrderNotFound
from order_tracking.models.order import Order
from order_tracking.services.auth import (
    AdminIdentity,
    CourierIdentity,
    CustomerIdentity,
    Identity,
    RestaurantIdentity,
)

logger = logging.getLogger(__name__)

ORDER_NOT_FOUND = "Order not found"


@dataclass(frozen=True)
class AccessDecision:
    authorized: bool
    reason: str | None = None


ALLOWED = AccessDecision(True)


def decide(identity: Identity, order: Order) -> AccessDecision:
    """Apply the per-role ownership rule to an already loaded order."""
    match identity:
        case AdminIdentity():
            return ALLOWED
        case CustomerIdentity(principal_id=customer_id):
            if order.customer_id == customer_id:
                return ALLOWED
            return AccessDecision(False, "Not your order")
        case CourierIdentity(courier_id=courier_id):
            if order.courier_id is not None and order.courier_id == courier_id:
                return ALLOWED
            return AccessDecision(False, "Not assigned to you")
        case RestaurantIdentity(restaurant_id=restaurant_id):
            if order.restaurant_id == restaurant_id:
                return ALLOWED
            return AccessDecision(False, "Not your restaurant's order")
        case _:
            return AccessDecision(False, "Unauthorized role")


class RoomAccessGuard:
    """Decides whether a connection may subscribe to an order's room.

    The order is re-read on every check so ownership reflects the durable
    record (e.g. a courier gains access only once assigned).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def check(self, identity: Identity, order_id: int) -> AccessDecision:
        """Return the decision; denials carry a human-readable reason."""
        try:
            async with self._session_factory() as session:
                order = await session.get(Order, order_id)
        except Exception as e:
            logger.error("Order access validation failed for %s: %s", order_id, e)
            return AccessDecision(False, "Validation error")

        if order is None:
            return AccessDecision(False, ORDER_NOT_FOUND)
        return decide(identity, order)

    async def require(self, identity: Identity, order_id: int) -> None:
        """Raise instead of returning a denial (HTTP routes)."""
        decision = await self.check(identity, order_id)
        if decision.authorized:
            return
        if decision.reason == ORDER_NOT_FOUND:
            raise OrderNotFound()
        raise Forbidden(decision.reason)
