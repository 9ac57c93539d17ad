"""Per-order broadcast rooms.

Keeps the mapping order id → subscribed connections and fans events out to
them. Rooms exist only while they have members. Delivery is best effort: an
event sent to an empty room is dropped, and a viewer that missed it catches
up from the next snapshot read.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Hashable
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Anything that can receive a text frame (a FastAPI ``WebSocket`` does)."""

    async def send_text(self, data: str) -> None: ...


def encode_event(msg_type: str, data: dict[str, Any] | None = None) -> str:
    return json.dumps({"type": msg_type, "data": data or {}}, default=str)


class RoomManager:
    """Manage order rooms and broadcast events to their members."""

    def __init__(self) -> None:
        # order_id → members
        self._rooms: dict[Hashable, set[Connection]] = {}
        # connection → order ids it joined (for disconnect cleanup)
        self._memberships: dict[Connection, set[Hashable]] = {}
        self._running = False

    def init(self) -> None:
        self._running = True
        logger.info("Room manager started")

    def shutdown(self) -> None:
        """Drop every room. Connections themselves are closed by their handlers."""
        rooms = len(self._rooms)
        self._rooms.clear()
        self._memberships.clear()
        self._running = False
        logger.info("Room manager stopped (%d rooms dropped)", rooms)

    @property
    def is_running(self) -> bool:
        return self._running

    def join(self, conn: Connection, order_id: Hashable) -> None:
        """Add *conn* to the room for *order_id*. Joining twice is a no-op."""
        self._rooms.setdefault(order_id, set()).add(conn)
        self._memberships.setdefault(conn, set()).add(order_id)

    def leave(self, conn: Connection, order_id: Hashable) -> None:
        """Remove *conn* from the room if it is a member."""
        members = self._rooms.get(order_id)
        if members is not None:
            members.discard(conn)
            if not members:
                del self._rooms[order_id]
        joined = self._memberships.get(conn)
        if joined is not None:
            joined.discard(order_id)
            if not joined:
                del self._memberships[conn]

    def disconnect(self, conn: Connection) -> None:
        """Remove *conn* from every room it is in."""
        for order_id in list(self._memberships.get(conn, ())):
            self.leave(conn, order_id)

    def members(self, order_id: Hashable) -> frozenset[Connection]:
        return frozenset(self._rooms.get(order_id, ()))

    def rooms_of(self, conn: Connection) -> frozenset[Hashable]:
        return frozenset(self._memberships.get(conn, ()))

    async def broadcast(
        self, order_id: Hashable, msg_type: str, data: dict[str, Any] | None = None
    ) -> int:
        """Send an event to every member of the order's room.

        Returns the number of connections that received it. A failed send
        drops that connection and does not affect the other members.
        """
        members = list(self._rooms.get(order_id, ()))
        if not members:
            return 0

        message = encode_event(msg_type, data)
        delivered = 0
        dead: list[Connection] = []
        for conn in members:
            try:
                await conn.send_text(message)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "Dropping connection from order %s room after send failure: %s",
                    order_id,
                    e,
                )
                dead.append(conn)
        for conn in dead:
            self.disconnect(conn)
        return delivered

    async def send_to(
        self, conn: Connection, msg_type: str, data: dict[str, Any] | None = None
    ) -> None:
        """Send a message to a specific connection."""
        try:
            await conn.send_text(encode_event(msg_type, data))
        except Exception as e:
            logger.warning("Direct send failed: %s", e)
            self.disconnect(conn)

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    @property
    def connection_count(self) -> int:
        return len(self._memberships)
