"""Courier roster routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from order_tracking.api.auth import admin_identity, current_identity
from order_tracking.database import get_db
from order_tracking.errors import CourierNotFound
from order_tracking.models.courier import Courier
from order_tracking.schemas.couriers import CourierCreate, CourierResponse
from order_tracking.services.auth import Identity

router = APIRouter(prefix="/api/couriers", tags=["couriers"])


@router.get("", response_model=list[CourierResponse])
async def list_couriers(
    is_available: bool | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(current_identity),
):
    """List couriers, optionally only the available ones."""
    stmt = select(Courier).order_by(Courier.name)
    if is_available is not None:
        stmt = stmt.where(Courier.is_available == is_available)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.post("", response_model=CourierResponse, status_code=201)
async def create_courier(
    courier: CourierCreate,
    db: AsyncSession = Depends(get_db),
    _admin: Identity = Depends(admin_identity),
):
    """Register a new courier."""
    existing = await db.execute(
        select(Courier).where(
            or_(Courier.phone == courier.phone, Courier.email == courier.email)
        )
    )
    if existing.scalars().first():
        raise HTTPException(400, "Courier already exists with this phone/email")

    obj = Courier(**courier.model_dump())
    db.add(obj)
    await db.flush()
    await db.refresh(obj)
    return obj


@router.get("/{courier_id}", response_model=CourierResponse)
async def get_courier(
    courier_id: int,
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(current_identity),
):
    """Get a specific courier."""
    courier = await db.get(Courier, courier_id)
    if courier is None:
        raise CourierNotFound()
    return courier
