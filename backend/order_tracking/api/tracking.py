"""Order tracking routes (snapshot, status, assignment, location, delivery)."""

from __future__ import annotations

from collections.abc import Callable

from fastapi import APIRouter, Depends, HTTPException

from order_tracking.api.auth import admin_identity, current_identity, require_roles
from order_tracking.engine.tracking_coordinator import TrackingCoordinator
from order_tracking.models.order import Order
from order_tracking.schemas.tracking import (
    ActiveOrder,
    CourierAssignment,
    DeliveryConfirmation,
    LocationReport,
    LocationResponse,
    OrderStatusResponse,
    StatusUpdate,
    TrackingSnapshot,
)
from order_tracking.services.access_guard import RoomAccessGuard
from order_tracking.services.auth import CourierIdentity, Identity

router = APIRouter(prefix="/api", tags=["tracking"])

# Injected at startup
_get_coordinator: Callable[[], TrackingCoordinator] | None = None
_get_guard: Callable[[], RoomAccessGuard] | None = None


def set_tracking_dependencies(
    coordinator_getter: Callable[[], TrackingCoordinator],
    guard_getter: Callable[[], RoomAccessGuard],
) -> None:
    """Called at app startup to inject the coordinator and access guard."""
    global _get_coordinator, _get_guard
    _get_coordinator = coordinator_getter
    _get_guard = guard_getter


def _coordinator() -> TrackingCoordinator:
    if _get_coordinator is None:
        raise HTTPException(503, "Tracking not initialized")
    return _get_coordinator()


def _guard() -> RoomAccessGuard:
    if _get_guard is None:
        raise HTTPException(503, "Tracking not initialized")
    return _get_guard()


def _status_response(order: Order) -> OrderStatusResponse:
    return OrderStatusResponse(
        order_id=order.id,
        status=order.status,
        courier_id=order.courier_id,
        estimated_delivery_time=order.estimated_delivery_time,
        updated_at=order.updated_at,
    )


@router.get("/orders/{order_id}/track", response_model=TrackingSnapshot)
async def get_order_tracking(
    order_id: int, identity: Identity = Depends(current_identity)
):
    """Current tracking state, for the initial page load before live events."""
    await _guard().require(identity, order_id)
    return await _coordinator().get_snapshot(order_id)


@router.patch("/orders/{order_id}/status", response_model=OrderStatusResponse)
async def update_order_status(
    order_id: int,
    body: StatusUpdate,
    identity: Identity = Depends(current_identity),
):
    """Change an order's status (restaurant staff for their own orders, or admin)."""
    require_roles(identity, "restaurant", "admin")
    await _guard().require(identity, order_id)
    order = await _coordinator().update_status(order_id, body.status, identity.role)
    return _status_response(order)


@router.post("/orders/{order_id}/assign", response_model=OrderStatusResponse)
async def assign_courier(
    order_id: int,
    body: CourierAssignment,
    _admin: Identity = Depends(admin_identity),
):
    """Assign an available courier and start the delivery (admin)."""
    order = await _coordinator().assign_courier(order_id, body.courier_id)
    return _status_response(order)


@router.patch("/orders/{order_id}/location", response_model=LocationResponse)
async def report_location(
    order_id: int,
    body: LocationReport,
    identity: Identity = Depends(current_identity),
):
    """GPS sample from the assigned courier's app."""
    require_roles(identity, "courier")
    await _guard().require(identity, order_id)
    return await _coordinator().report_location(order_id, body.latitude, body.longitude)


@router.post("/orders/{order_id}/delivered", response_model=OrderStatusResponse)
async def mark_delivered(
    order_id: int,
    body: DeliveryConfirmation | None = None,
    identity: Identity = Depends(current_identity),
):
    """Complete a delivery (the assigned courier, or an admin)."""
    require_roles(identity, "courier", "admin")
    await _guard().require(identity, order_id)
    courier_id = body.courier_id if body is not None else None
    if isinstance(identity, CourierIdentity):
        courier_id = identity.courier_id
    order = await _coordinator().mark_delivered(order_id, courier_id)
    return _status_response(order)


@router.get("/tracking/active", response_model=list[ActiveOrder])
async def list_active_orders(_admin: Identity = Depends(admin_identity)):
    """Orders currently out for delivery (admin live map)."""
    return await _coordinator().list_active()
