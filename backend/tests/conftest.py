"""Shared fixtures: in-memory store, fake Redis, seeded entities, fake sockets."""

from __future__ import annotations

import asyncio
import itertools
import json
from typing import Any

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis, FakeServer
from fastapi import WebSocketDisconnect
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from order_tracking.database import create_tables, make_session_factory
from order_tracking.engine.room_manager import RoomManager
from order_tracking.engine.tracking_coordinator import TrackingCoordinator
from order_tracking.models import Courier, Order, Restaurant, User
from order_tracking.models._time import utcnow
from order_tracking.services.access_guard import RoomAccessGuard
from order_tracking.services.audit_service import AuditService
from order_tracking.services.auth import ConnectionAuthenticator
from order_tracking.services.location_cache import LocationCache

JWT_SECRET = "test-secret"


class FakeConnection:
    """Room member that records every frame it is sent."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.messages: list[dict[str, Any]] = []

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.messages.append(json.loads(data))

    def of_type(self, msg_type: str) -> list[dict[str, Any]]:
        return [m["data"] for m in self.messages if m["type"] == msg_type]


class FakeWebSocket:
    """Stand-in for ``fastapi.WebSocket`` driven by a queue of client frames."""

    def __init__(
        self, query: dict[str, str] | None = None, headers: dict[str, str] | None = None
    ) -> None:
        self.query_params = query or {}
        self.headers = headers or {}
        self.accepted = False
        self.closed: tuple[int, str | None] | None = None
        self.sent: list[dict[str, Any]] = []
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()

    async def accept(self) -> None:
        self.accepted = True

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = (code, reason)

    async def send_text(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def receive_text(self) -> str:
        frame = await self._incoming.get()
        if frame is None:
            raise WebSocketDisconnect(code=1000)
        return frame

    def push(self, msg_type: str, data: dict[str, Any] | None = None) -> None:
        self._incoming.put_nowait(json.dumps({"type": msg_type, "data": data or {}}))

    def push_raw(self, frame: str) -> None:
        self._incoming.put_nowait(frame)

    def hang_up(self) -> None:
        self._incoming.put_nowait(None)

    def of_type(self, msg_type: str) -> list[dict[str, Any]]:
        return [m["data"] for m in self.sent if m["type"] == msg_type]

    async def wait_for(self, msg_type: str, count: int = 1) -> list[dict[str, Any]]:
        for _ in range(500):
            found = self.of_type(msg_type)
            if len(found) >= count:
                return found
            await asyncio.sleep(0.01)
        raise AssertionError(f"no {msg_type!r} frame received; got {self.sent}")


class BrokenRedis:
    """Redis client whose every call fails like an unreachable server."""

    def __getattr__(self, name: str):
        async def fail(*args: Any, **kwargs: Any) -> Any:
            raise RedisConnectionError("Connection refused")

        return fail


class Seeder:
    """Creates rows the way the storefront's CRUD layer would."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory
        self._seq = itertools.count(1)

    async def _add(self, obj):
        async with self._session_factory() as session:
            session.add(obj)
            await session.commit()
            await session.refresh(obj)
        return obj

    async def user(self, name: str = "Asha", role: str = "customer") -> User:
        n = next(self._seq)
        return await self._add(User(name=name, email=f"user{n}@example.com", role=role))

    async def courier(
        self,
        name: str = "Ravi",
        latitude: float = 22.5726,
        longitude: float = 88.3639,
        is_available: bool = True,
    ) -> Courier:
        n = next(self._seq)
        return await self._add(
            Courier(
                name=name,
                phone=f"+91-90000-{n:05d}",
                email=f"courier{n}@example.com",
                vehicle_number=f"WB-{n:04d}",
                current_latitude=latitude,
                current_longitude=longitude,
                is_available=is_available,
                active_order_ids=[],
            )
        )

    async def restaurant(self, owner_id: int, name: str = "Kathi House") -> Restaurant:
        return await self._add(Restaurant(name=name, owner_id=owner_id))

    async def order(
        self,
        customer_id: int,
        restaurant_id: int = 5,
        status: str = "pending",
        courier_id: int | None = None,
    ) -> Order:
        return await self._add(
            Order(
                customer_id=customer_id,
                restaurant_id=restaurant_id,
                items=[{"menu_id": 1, "name": "Kathi Roll", "price": 120.0, "quantity": 2}],
                total_amount=240.0,
                status=status,
                status_history=[
                    {"status": status, "timestamp": utcnow().isoformat(), "actor": "customer"}
                ],
                courier_id=courier_id,
            )
        )

    async def get(self, model, pk):
        async with self._session_factory() as session:
            return await session.get(model, pk)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest_asyncio.fixture
async def redis():
    client = FakeAsyncRedis(server=FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def cache(redis) -> LocationCache:
    return LocationCache(redis, ttl_seconds=300)


@pytest.fixture
def broken_cache() -> LocationCache:
    return LocationCache(BrokenRedis(), ttl_seconds=300)


@pytest.fixture
def rooms():
    manager = RoomManager()
    manager.init()
    yield manager
    manager.shutdown()


@pytest.fixture
def audit(session_factory) -> AuditService:
    return AuditService(session_factory)


@pytest.fixture
def coordinator(session_factory, cache, rooms, audit) -> TrackingCoordinator:
    return TrackingCoordinator(session_factory, cache, rooms, audit)


@pytest.fixture
def authenticator(session_factory) -> ConnectionAuthenticator:
    return ConnectionAuthenticator(session_factory, JWT_SECRET)


@pytest.fixture
def connection():
    return FakeConnection


@pytest.fixture
def guard(session_factory) -> RoomAccessGuard:
    return RoomAccessGuard(session_factory)


@pytest.fixture
def fake_ws():
    return FakeWebSocket
