"""Tracking coordinator: the write path for live order state.

Every mutation follows the same shape: load and validate inside one
database transaction, commit, then run a list of post-commit effects (cache
writes, audit entry, room broadcast). The commit is the operation; effects
are advisory and each one is isolated, so a Redis outage or a dead socket
can never fail or roll back a status change.

Calls for the same order are not serialized against each other. Two racing
location reports resolve last-write-wins in both stores, which is what a
"latest sample" signal wants; racing status changes resolve the same way.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_tracking.engine.room_manager import RoomManager
from order_tracking.engine.state_machine import (
    DEFAULT_DELIVERY_WINDOW,
    OrderStatus,
    parse_status,
    transition,
)
from order_tracking.errors import (
    CacheUnavailable,
    CourierAlreadyAssigned,
    CourierMismatch,
    CourierNotFound,
    CourierUnavailable,
    InvalidStatus,
    NoCourierAssigned,
    OrderNotFound,
)
from order_tracking.models._time import utcnow
from order_tracking.models.courier import Courier
from order_tracking.models.order import Order
from order_tracking.services.audit_service import AuditService
from order_tracking.services.location_cache import LocationCache

logger = logging.getLogger(__name__)

# States that only make sense once a courier holds the order.
COURIER_REQUIRED = frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED})


@dataclass
class PostCommitEffect:
    """A best-effort side effect run after the durable write commits."""

    name: str
    run: Callable[[], Awaitable[Any]]


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _release_courier(courier: Courier, order_id: int, *, completed: bool) -> None:
    courier.active_order_ids = [oid for oid in courier.active_order_ids if oid != order_id]
    courier.is_available = True
    if completed:
        courier.total_deliveries += 1


class TrackingCoordinator:
    """Applies status changes, courier assignment and location reports."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: LocationCache,
        rooms: RoomManager,
        audit: AuditService | None = None,
        delivery_window: timedelta = DEFAULT_DELIVERY_WINDOW,
    ) -> None:
        self._session_factory = session_factory
        self._cache = cache
        self._rooms = rooms
        self._audit = audit
        self._delivery_window = delivery_window

    @staticmethod
    async def _load_order(session: AsyncSession, order_id: int) -> Order:
        order = await session.get(Order, order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found")
        return order

    async def _run_effects(self, order_id: int, effects: list[PostCommitEffect]) -> None:
        """Run *effects* in order; a failure is logged and the next one still runs."""
        for effect in effects:
            try:
                await effect.run()
            except CacheUnavailable as e:
                logger.warning(
                    "Order %s: %s skipped, cache unavailable: %s", order_id, effect.name, e
                )
            except Exception:
                logger.exception("Order %s: post-commit effect %s failed", order_id, effect.name)

    def _audit_effect(
        self, message: str, order_id: int, courier_id: int | None, details: dict[str, Any]
    ) -> list[PostCommitEffect]:
        if self._audit is None:
            return []
        audit = self._audit
        return [
            PostCommitEffect(
                "audit",
                lambda: audit.info(
                    "tracking",
                    message,
                    order_id=order_id,
                    courier_id=courier_id,
                    details=details,
                ),
            )
        ]

    def _purge_effects(self, order_id: int) -> list[PostCommitEffect]:
        return [
            PostCommitEffect("purge_location", lambda: self._cache.delete_location(order_id)),
            PostCommitEffect("unindex_active", lambda: self._cache.remove_active_order(order_id)),
        ]

    def _broadcast_effect(
        self, order_id: int, event: str, payload: dict[str, Any]
    ) -> PostCommitEffect:
        return PostCommitEffect(
            f"broadcast:{event}", lambda: self._rooms.broadcast(order_id, event, payload)
        )

    async def update_status(
        self, order_id: int, status: str | OrderStatus, actor: str = "system"
    ) -> Order:
        """Move an order to *status* and notify its room.

        Entering a terminal state purges the cached location and frees the
        assigned courier.
        """
        target = parse_status(status)
        async with self._session_factory() as session:
            order = await self._load_order(session, order_id)
            previous = parse_status(order.status)
            if target in COURIER_REQUIRED and order.courier_id is None:
                raise NoCourierAssigned(
                    f"Order {order_id} cannot be {target.value} without a courier"
                )
            transition(order, target, actor, delivery_window=self._delivery_window)

            if target.is_terminal and previous is not target and order.courier_id is not None:
                courier = await session.get(Courier, order.courier_id)
                if courier is not None:
                    _release_courier(
                        courier, order.id, completed=target is OrderStatus.DELIVERED
                    )
            await session.commit()

        now = utcnow()
        effects: list[PostCommitEffect] = []
        if target.is_terminal:
            effects += self._purge_effects(order_id)
        elif order.courier_id is not None:
            courier_id = order.courier_id
            effects.append(
                PostCommitEffect(
                    "index_active",
                    lambda: self._cache.add_active_order(order_id, target.value, courier_id),
                )
            )
        effects += self._audit_effect(
            f"Status {previous.value} -> {target.value}",
            order_id,
            order.courier_id,
            {"actor": actor},
        )
        effects.append(
            self._broadcast_effect(
                order_id,
                "status_changed",
                {
                    "order_id": order_id,
                    "status": target.value,
                    "estimated_delivery_time": _iso(order.estimated_delivery_time),
                    "timestamp": now.isoformat(),
                },
            )
        )
        await self._run_effects(order_id, effects)
        return order

    async def assign_courier(self, order_id: int, courier_id: int) -> Order:
        """Hand an order to an available courier and start the delivery.

        An order keeps the courier it was first given: assigning a different
        one while the first is set fails with ``CourierAlreadyAssigned``.
        """
        actor = f"courier:{courier_id}"
        async with self._session_factory() as session:
            order = await self._load_order(session, order_id)
            courier = await session.get(Courier, courier_id)
            if courier is None:
                raise CourierNotFound(f"Courier {courier_id} not found")
            if not courier.is_available:
                raise CourierUnavailable(f"Courier {courier_id} is not available")
            if order.courier_id is not None and order.courier_id != courier_id:
                raise CourierAlreadyAssigned(
                    f"Order {order_id} is already assigned to courier {order.courier_id}"
                )

            now = utcnow()
            transition(
                order,
                OrderStatus.OUT_FOR_DELIVERY,
                actor,
                now=now,
                delivery_window=self._delivery_window,
            )
            order.courier_id = courier.id
            order.delivery_location = {
                "latitude": courier.current_latitude,
                "longitude": courier.current_longitude,
                "updated_at": now.isoformat(),
            }
            courier.active_order_ids = sorted({*courier.active_order_ids, order.id})
            courier.is_available = False
            await session.commit()

        latitude, longitude = courier.current_latitude, courier.current_longitude
        summary = courier.summary()
        effects = [
            PostCommitEffect(
                "seed_location",
                lambda: self._cache.set_location(
                    order_id, latitude, longitude, courier_id, sampled_at=now
                ),
            ),
            PostCommitEffect(
                "index_active",
                lambda: self._cache.add_active_order(
                    order_id, OrderStatus.OUT_FOR_DELIVERY.value, courier_id
                ),
            ),
            *self._audit_effect(
                f"Courier {courier_id} assigned", order_id, courier_id, {"courier": summary}
            ),
            self._broadcast_effect(
                order_id,
                "courier_assigned",
                {
                    "order_id": order_id,
                    "courier": summary,
                    "estimated_delivery_time": _iso(order.estimated_delivery_time),
                },
            ),
        ]
        await self._run_effects(order_id, effects)
        return order

    async def report_location(
        self, order_id: int, latitude: float, longitude: float
    ) -> dict[str, Any]:
        """Record a courier GPS sample.

        Called every few seconds per active delivery, so it reads only the
        status and assigned courier id and writes with two targeted UPDATEs
        instead of loading the full order. Delivered and cancelled orders no
        longer accept samples.
        """
        now = utcnow()
        async with self._session_factory() as session:
            result = await session.execute(
                select(Order.courier_id, Order.status).where(Order.id == order_id)
            )
            row = result.one_or_none()
            if row is None:
                raise OrderNotFound(f"Order {order_id} not found")
            status = parse_status(row.status)
            if status.is_terminal:
                raise InvalidStatus(
                    f"Order {order_id} is {status.value}; location updates are closed"
                )
            courier_id = row.courier_id
            if courier_id is None:
                raise NoCourierAssigned(f"No courier assigned to order {order_id}")

            location = {
                "latitude": latitude,
                "longitude": longitude,
                "updated_at": now.isoformat(),
            }
            await session.execute(
                update(Order).where(Order.id == order_id).values(delivery_location=location)
            )
            await session.execute(
                update(Courier)
                .where(Courier.id == courier_id)
                .values(
                    current_latitude=latitude,
                    current_longitude=longitude,
                    location_updated_at=now,
                )
            )
            await session.commit()

        effects = [
            PostCommitEffect(
                "cache_location",
                lambda: self._cache.set_location(
                    order_id, latitude, longitude, courier_id, sampled_at=now
                ),
            ),
            self._broadcast_effect(
                order_id,
                "location_updated",
                {
                    "order_id": order_id,
                    "latitude": latitude,
                    "longitude": longitude,
                    "timestamp": now.isoformat(),
                },
            ),
        ]
        await self._run_effects(order_id, effects)
        return {"order_id": order_id, "courier_id": courier_id, "location": location}

    async def mark_delivered(self, order_id: int, courier_id: int | None = None) -> Order:
        """Complete a delivery and free the courier.

        *courier_id* defaults to the assigned courier; naming a different one
        fails with ``CourierMismatch``.
        """
        async with self._session_factory() as session:
            order = await self._load_order(session, order_id)
            if order.courier_id is None:
                raise NoCourierAssigned(f"No courier assigned to order {order_id}")
            if courier_id is None:
                courier_id = order.courier_id
            elif courier_id != order.courier_id:
                raise CourierMismatch(
                    f"Order {order_id} is assigned to courier {order.courier_id}"
                )

            previous = parse_status(order.status)
            now = utcnow()
            transition(
                order,
                OrderStatus.DELIVERED,
                f"courier:{courier_id}",
                now=now,
                delivery_window=self._delivery_window,
            )
            if previous is not OrderStatus.DELIVERED:
                courier = await session.get(Courier, courier_id)
                if courier is not None:
                    _release_courier(courier, order.id, completed=True)
            await session.commit()

        effects = [
            *self._purge_effects(order_id),
            *self._audit_effect("Delivered", order_id, courier_id, {}),
            self._broadcast_effect(
                order_id,
                "delivered",
                {"order_id": order_id, "delivered_at": now.isoformat()},
            ),
        ]
        await self._run_effects(order_id, effects)
        return order

    async def _cached_location(self, order_id: int) -> dict[str, Any] | None:
        try:
            cached = await self._cache.get_location(order_id)
        except CacheUnavailable as e:
            logger.warning("Order %s: cache read failed, using store: %s", order_id, e)
            return None
        if cached is None:
            return None
        return {
            "latitude": cached.latitude,
            "longitude": cached.longitude,
            "updated_at": cached.sampled_at,
            "source": "cache",
        }

    async def get_snapshot(self, order_id: int) -> dict[str, Any]:
        """Current tracking state for an initial page load.

        Location prefers the cache and falls back to the durable record.
        """
        async with self._session_factory() as session:
            order = await self._load_order(session, order_id)
            courier = (
                await session.get(Courier, order.courier_id)
                if order.courier_id is not None
                else None
            )

        location = await self._cached_location(order_id)
        if location is None and order.delivery_location:
            location = {**order.delivery_location, "source": "store"}

        return {
            "order_id": order.id,
            "status": order.status,
            "items": order.items,
            "total_amount": order.total_amount,
            "status_history": order.status_history,
            "courier": courier.summary() if courier is not None else None,
            "delivery_location": location,
            "estimated_delivery_time": order.estimated_delivery_time,
            "created_at": order.created_at,
            "updated_at": order.updated_at,
        }

    async def list_active(self) -> list[dict[str, Any]]:
        """Orders currently out with a courier, from the cache index."""
        try:
            return await self._cache.list_active_orders()
        except CacheUnavailable as e:
            logger.warning("Active order index unavailable: %s", e)
            return []
