"""Redis-backed cache of the latest courier position per order.

The cache is the fast path for live location: writes happen on every
courier ping and reads serve snapshot requests. Entries expire after a short
TTL, and a missing entry only means "no recent sample", never "no such
order". Every Redis failure surfaces as :class:`CacheUnavailable` so the
caller can fall back to the durable store.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from order_tracking.errors import CacheUnavailable
from order_tracking.models._time import utcnow

logger = logging.getLogger(__name__)

LOCATION_KEY = "delivery:location:{order_id}"
ACTIVE_ORDERS_KEY = "active:orders"


@dataclass
class CachedLocation:
    latitude: float
    longitude: float
    sampled_at: str
    courier_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class LocationCache:
    """Thin adapter over an async Redis client."""

    def __init__(self, redis: Redis, ttl_seconds: int = 300) -> None:
        self._redis = redis
        self._ttl = ttl_seconds

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    @staticmethod
    def _key(order_id: int) -> str:
        return LOCATION_KEY.format(order_id=order_id)

    async def set_location(
        self,
        order_id: int,
        latitude: float,
        longitude: float,
        courier_id: int | None = None,
        sampled_at: datetime | None = None,
    ) -> CachedLocation:
        """Store the latest sample for *order_id*, replacing any previous one."""
        entry = CachedLocation(
            latitude=latitude,
            longitude=longitude,
            sampled_at=(sampled_at or utcnow()).isoformat(),
            courier_id=courier_id,
        )
        try:
            await self._redis.set(
                self._key(order_id), json.dumps(entry.to_dict()), ex=self._ttl
            )
        except (RedisError, OSError) as e:
            raise CacheUnavailable(f"set location for order {order_id}: {e}") from e
        return entry

    async def get_location(self, order_id: int) -> CachedLocation | None:
        """Return the cached sample, or None on a miss or expired entry."""
        try:
            raw = await self._redis.get(self._key(order_id))
        except (RedisError, OSError) as e:
            raise CacheUnavailable(f"get location for order {order_id}: {e}") from e
        if raw is None:
            return None
        try:
            return CachedLocation(**json.loads(raw))
        except (TypeError, ValueError):
            logger.warning("Discarding malformed cache entry for order %s", order_id)
            return None

    async def delete_location(self, order_id: int) -> None:
        try:
            await self._redis.delete(self._key(order_id))
        except (RedisError, OSError) as e:
            raise CacheUnavailable(f"delete location for order {order_id}: {e}") from e

    # Active order index for the admin live view.

    async def add_active_order(
        self, order_id: int, status: str, courier_id: int | None
    ) -> None:
        value = json.dumps(
            {"status": status, "courier_id": courier_id, "since": utcnow().isoformat()}
        )
        try:
            await self._redis.hset(ACTIVE_ORDERS_KEY, str(order_id), value)
        except (RedisError, OSError) as e:
            raise CacheUnavailable(f"index active order {order_id}: {e}") from e

    async def remove_active_order(self, order_id: int) -> None:
        try:
            await self._redis.hdel(ACTIVE_ORDERS_KEY, str(order_id))
        except (RedisError, OSError) as e:
            raise CacheUnavailable(f"unindex active order {order_id}: {e}") from e

    async def list_active_orders(self) -> list[dict[str, Any]]:
        """Return every indexed active order, oldest first."""
        try:
            raw = await self._redis.hgetall(ACTIVE_ORDERS_KEY)
        except (RedisError, OSError) as e:
            raise CacheUnavailable(f"list active orders: {e}") from e

        orders: list[dict[str, Any]] = []
        for key, value in raw.items():
            if isinstance(key, bytes):
                key = key.decode()
            entry = json.loads(value)
            entry["order_id"] = int(key)
            orders.append(entry)
        orders.sort(key=lambda e: e["since"])
        return orders

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except (RedisError, OSError):
            return False

    async def close(self) -> None:
        await self._redis.aclose()
