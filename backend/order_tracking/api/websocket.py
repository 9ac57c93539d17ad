"""WebSocket endpoint for live order tracking.

The handshake carries the identity token (``?token=`` or a bearer header),
plus optional ``role`` and ``restaurant_id`` query parameters. After that the
client sends ``{"type", "data"}`` messages to join or leave order rooms, and
couriers may stream location samples.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from order_tracking.engine.room_manager import RoomManager, encode_event
from order_tracking.engine.tracking_coordinator import TrackingCoordinator
from order_tracking.errors import RoleMismatch, TrackingError
from order_tracking.schemas.ws import LocationMessage, RoomRequest, WSMessage
from order_tracking.services.access_guard import RoomAccessGuard
from order_tracking.services.auth import (
    ConnectionAuthenticator,
    CourierIdentity,
    Identity,
    extract_bearer,
)

router = APIRouter()
logger = logging.getLogger(__name__)

CLOSE_UNAUTHENTICATED = 4401
CLOSE_FORBIDDEN = 4403

# Injected at startup
_get_rooms: Callable[[], RoomManager] | None = None
_get_coordinator: Callable[[], TrackingCoordinator] | None = None
_get_authenticator: Callable[[], ConnectionAuthenticator] | None = None
_get_guard: Callable[[], RoomAccessGuard] | None = None


def set_ws_dependencies(
    rooms_getter: Callable[[], RoomManager],
    coordinator_getter: Callable[[], TrackingCoordinator],
    authenticator_getter: Callable[[], ConnectionAuthenticator],
    guard_getter: Callable[[], RoomAccessGuard],
) -> None:
    global _get_rooms, _get_coordinator, _get_authenticator, _get_guard
    _get_rooms = rooms_getter
    _get_coordinator = coordinator_getter
    _get_authenticator = authenticator_getter
    _get_guard = guard_getter


@dataclass(eq=False)
class ClientConnection:
    """A WebSocket with the identity bound to it at handshake."""

    ws: WebSocket
    identity: Identity

    async def send_text(self, data: str) -> None:
        await self.ws.send_text(data)


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    """Realtime tracking endpoint."""
    if _get_rooms is None or _get_authenticator is None:
        await ws.close(code=1011, reason="Server not initialized")
        return

    rooms = _get_rooms()
    token = ws.query_params.get("token") or extract_bearer(ws.headers.get("authorization"))

    await ws.accept()
    try:
        identity = await _get_authenticator().authenticate(
            token, ws.query_params.get("role"), ws.query_params.get("restaurant_id")
        )
    except TrackingError as e:
        logger.info("Rejected WebSocket connection: %s", e.message)
        await ws.send_text(_error_frame(e))
        code = CLOSE_FORBIDDEN if isinstance(e, RoleMismatch) else CLOSE_UNAUTHENTICATED
        await ws.close(code=code, reason=e.code)
        return

    conn = ClientConnection(ws, identity)
    logger.info("WebSocket %s %s connected", identity.role, identity.principal_id)
    await rooms.send_to(conn, "connected", {"role": identity.role})

    try:
        while True:
            data = await ws.receive_text()
            try:
                message = WSMessage.model_validate_json(data)
            except ValidationError:
                logger.warning("Invalid JSON from WebSocket client: %s", data[:100])
                await rooms.send_to(conn, "error", {"message": "Invalid message"})
                continue
            await _handle_client_message(conn, message)

    except WebSocketDisconnect:
        pass
    finally:
        rooms.disconnect(conn)
        logger.info(
            "WebSocket %s %s disconnected", identity.role, identity.principal_id
        )


def _error_frame(error: TrackingError) -> str:
    return encode_event("error", error.to_dict())


async def _handle_client_message(conn: ClientConnection, message: WSMessage) -> None:
    """Handle a message sent by a tracking client."""
    rooms = _get_rooms()
    order_id = message.data.get("order_id")
    try:
        if message.type == "join_order_room":
            await _join(conn, RoomRequest.model_validate(message.data).order_id)

        elif message.type == "leave_order_room":
            rooms.leave(conn, RoomRequest.model_validate(message.data).order_id)

        elif message.type == "report_location":
            await _report_location(conn, LocationMessage.model_validate(message.data))

        else:
            logger.warning("Unknown WebSocket message type: %s", message.type)
            await rooms.send_to(
                conn, "error", {"message": f"Unknown message type: {message.type}"}
            )

    except ValidationError as e:
        await rooms.send_to(
            conn,
            "error",
            {"message": f"Invalid {message.type} payload", "errors": e.errors(include_url=False)},
        )
    except TrackingError as e:
        await rooms.send_to(conn, "error", {**e.to_dict(), "order_id": order_id})
    except Exception as e:
        logger.error("Error handling WS message %s: %s", message.type, e)
        await rooms.send_to(
            conn, "error", {"message": "Internal error", "order_id": order_id}
        )


async def _join(conn: ClientConnection, order_id: int) -> None:
    rooms = _get_rooms()
    decision = await _get_guard().check(conn.identity, order_id)
    if not decision.authorized:
        logger.info(
            "%s %s denied access to order %s: %s",
            conn.identity.role,
            conn.identity.principal_id,
            order_id,
            decision.reason,
        )
        await rooms.send_to(
            conn,
            "error",
            {"message": f"Cannot join order room: {decision.reason}", "order_id": order_id},
        )
        return

    rooms.join(conn, order_id)
    logger.info(
        "%s %s joined order room %s",
        conn.identity.role,
        conn.identity.principal_id,
        order_id,
    )
    await rooms.send_to(
        conn,
        "joined",
        {"order_id": order_id, "message": "Successfully joined order tracking"},
    )


async def _report_location(conn: ClientConnection, msg: LocationMessage) -> None:
    rooms = _get_rooms()
    if not isinstance(conn.identity, CourierIdentity):
        await rooms.send_to(
            conn,
            "error",
            {"message": "Only couriers can update location", "order_id": msg.order_id},
        )
        return

    decision = await _get_guard().check(conn.identity, msg.order_id)
    if not decision.authorized:
        await rooms.send_to(
            conn,
            "error",
            {"message": f"Cannot report location: {decision.reason}", "order_id": msg.order_id},
        )
        return

    await _get_coordinator().report_location(msg.order_id, msg.latitude, msg.longitude)
