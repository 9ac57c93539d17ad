import asyncio

import pytest

from order_tracking.api import websocket


@pytest.fixture(autouse=True)
def wire(monkeypatch, rooms, coordinator, authenticator, guard):
    monkeypatch.setattr(websocket, "_get_rooms", lambda: rooms)
    monkeypatch.setattr(websocket, "_get_coordinator", lambda: coordinator)
    monkeypatch.setattr(websocket, "_get_authenticator", lambda: authenticator)
    monkeypatch.setattr(websocket, "_get_guard", lambda: guard)


@pytest.fixture
async def open_socket(authenticator, fake_ws):
    """Run the endpoint on a fake socket; hang up every socket at teardown."""
    sessions = []

    def start(principal_id, **query):
        if principal_id is not None:
            kind = "courier" if query.get("role") == "courier" else "user"
            query["token"] = authenticator.issue_token(principal_id, kind)
        ws = fake_ws(query=query)
        sessions.append((ws, asyncio.create_task(websocket.websocket_endpoint(ws))))
        return ws

    yield start

    for ws, task in sessions:
        ws.hang_up()
    await asyncio.gather(*(task for _, task in sessions))


@pytest.fixture
async def world(seed):
    customer = await seed.user()
    courier = await seed.courier()
    order = await seed.order(customer.id, status="preparing")
    return customer, courier, order


# ---- handshake ----


async def test_missing_token_closes_4401(open_socket):
    ws = open_socket(None)
    await ws.wait_for("error")
    await asyncio.sleep(0.01)
    assert ws.accepted
    assert ws.closed == (4401, "authentication_required")
    assert ws.of_type("error")[0]["code"] == "authentication_required"


async def test_forged_token_closes_4401(fake_ws):
    ws = fake_ws(query={"token": "forged"})
    await websocket.websocket_endpoint(ws)
    assert ws.closed == (4401, "invalid_token")


async def test_role_mismatch_closes_4403(open_socket, world):
    customer, *_ = world
    ws = open_socket(customer.id, role="admin")
    await ws.wait_for("error")
    await asyncio.sleep(0.01)
    assert ws.closed == (4403, "role_mismatch")


async def test_customer_token_as_courier_closes_4403(authenticator, fake_ws, world):
    customer, courier, _ = world
    assert customer.id == courier.id
    token = authenticator.issue_token(customer.id)
    ws = fake_ws(query={"token": token, "role": "courier"})
    await websocket.websocket_endpoint(ws)
    assert ws.closed == (4403, "role_mismatch")


async def test_restaurant_without_id_closes_4403(open_socket):
    ws = open_socket(9, role="restaurant")
    await ws.wait_for("error")
    await asyncio.sleep(0.01)
    assert ws.closed[0] == 4403


async def test_bearer_header_is_accepted(authenticator, fake_ws, world):
    customer, *_ = world
    token = authenticator.issue_token(customer.id)
    ws = fake_ws(headers={"authorization": f"Bearer {token}"})
    task = asyncio.create_task(websocket.websocket_endpoint(ws))
    [connected] = await ws.wait_for("connected")
    assert connected == {"role": "customer"}
    ws.hang_up()
    await task
    assert ws.closed is None


async def test_uninitialized_endpoint_refuses(monkeypatch, fake_ws):
    monkeypatch.setattr(websocket, "_get_rooms", None)
    ws = fake_ws()
    await websocket.websocket_endpoint(ws)
    assert ws.closed == (1011, "Server not initialized")
    assert not ws.accepted


# ---- rooms ----


async def test_owner_joins_and_receives_events(open_socket, coordinator, world):
    customer, courier, order = world
    ws = open_socket(customer.id)
    await ws.wait_for("connected")

    ws.push("join_order_room", {"order_id": order.id})
    [joined] = await ws.wait_for("joined")
    assert joined["order_id"] == order.id

    await coordinator.assign_courier(order.id, courier.id)
    [assigned] = await ws.wait_for("courier_assigned")
    assert assigned["courier"]["id"] == courier.id


async def test_stranger_is_denied(open_socket, rooms, seed, world):
    *_, order = world
    stranger = await seed.user(name="Stranger")
    ws = open_socket(stranger.id)
    await ws.wait_for("connected")

    ws.push("join_order_room", {"order_id": order.id})
    [error] = await ws.wait_for("error")
    assert error == {"message": "Cannot join order room: Not your order", "order_id": order.id}
    assert rooms.members(order.id) == frozenset()


async def test_join_missing_order_is_denied(open_socket, world):
    customer, *_ = world
    ws = open_socket(customer.id)
    await ws.wait_for("connected")

    ws.push("join_order_room", {"order_id": 999})
    [error] = await ws.wait_for("error")
    assert error["message"] == "Cannot join order room: Order not found"


async def test_leave_stops_delivery(open_socket, rooms, coordinator, world):
    customer, _, order = world
    ws = open_socket(customer.id)
    await ws.wait_for("connected")
    ws.push("join_order_room", {"order_id": order.id})
    await ws.wait_for("joined")

    ws.push("leave_order_room", {"order_id": order.id})
    for _ in range(100):
        if not rooms.members(order.id):
            break
        await asyncio.sleep(0.01)
    assert rooms.members(order.id) == frozenset()

    await coordinator.update_status(order.id, "cancelled", "admin")
    assert ws.of_type("status_changed") == []


async def test_disconnect_leaves_every_room(authenticator, fake_ws, rooms, seed, world):
    customer, _, order = world
    second = await seed.order(customer.id)
    ws = fake_ws(query={"token": authenticator.issue_token(customer.id)})
    task = asyncio.create_task(websocket.websocket_endpoint(ws))
    await ws.wait_for("connected")
    ws.push("join_order_room", {"order_id": order.id})
    ws.push("join_order_room", {"order_id": second.id})
    await ws.wait_for("joined", count=2)
    assert rooms.connection_count == 1

    ws.hang_up()
    await task

    assert rooms.connection_count == 0
    assert rooms.room_count == 0


# ---- client messages ----


async def test_invalid_frame_keeps_connection(open_socket, world):
    customer, _, order = world
    ws = open_socket(customer.id)
    await ws.wait_for("connected")

    ws.push_raw("{not json")
    [error] = await ws.wait_for("error")
    assert error == {"message": "Invalid message"}

    ws.push("join_order_room", {"order_id": order.id})
    await ws.wait_for("joined")


async def test_unknown_message_type(open_socket, world):
    customer, *_ = world
    ws = open_socket(customer.id)
    await ws.wait_for("connected")
    ws.push("dance")
    [error] = await ws.wait_for("error")
    assert error["message"] == "Unknown message type: dance"


async def test_bad_payload_is_reported(open_socket, world):
    customer, *_ = world
    ws = open_socket(customer.id)
    await ws.wait_for("connected")
    ws.push("join_order_room", {"order_id": "abc"})
    [error] = await ws.wait_for("error")
    assert error["message"] == "Invalid join_order_room payload"


async def test_courier_streams_location(open_socket, coordinator, cache, world):
    customer, courier, order = world
    await coordinator.assign_courier(order.id, courier.id)

    viewer = open_socket(customer.id)
    await viewer.wait_for("connected")
    viewer.push("join_order_room", {"order_id": order.id})
    await viewer.wait_for("joined")

    driver = open_socket(courier.id, role="courier")
    await driver.wait_for("connected")
    for lat in (22.60, 22.61):
        driver.push("report_location", {"order_id": order.id, "latitude": lat, "longitude": 88.4})

    updates = await viewer.wait_for("location_updated", count=2)
    assert [u["latitude"] for u in updates] == [22.60, 22.61]
    assert (await cache.get_location(order.id)).latitude == 22.61


async def test_customer_cannot_report_location(open_socket, world):
    customer, _, order = world
    ws = open_socket(customer.id)
    await ws.wait_for("connected")
    ws.push("report_location", {"order_id": order.id, "latitude": 1.0, "longitude": 2.0})
    [error] = await ws.wait_for("error")
    assert error["message"] == "Only couriers can update location"


async def test_unassigned_courier_cannot_report(open_socket, seed, world):
    *_, order = world
    other = await seed.courier(name="Mina")
    ws = open_socket(other.id, role="courier")
    await ws.wait_for("connected")
    ws.push("report_location", {"order_id": order.id, "latitude": 1.0, "longitude": 2.0})
    [error] = await ws.wait_for("error")
    assert error["message"] == "Cannot report location: Not assigned to you"

