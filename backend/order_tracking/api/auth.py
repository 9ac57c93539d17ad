"""HTTP authentication dependencies.

HTTP callers present the same identity token as realtime connections, as a
bearer header. Role and restaurant scope travel in ``X-Role`` and
``X-Restaurant-Id``.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Header, HTTPException

from order_tracking.errors import Forbidden
from order_tracking.services.auth import (
    AdminIdentity,
    ConnectionAuthenticator,
    Identity,
    extract_bearer,
)

# Injected at startup
_get_authenticator: Callable[[], ConnectionAuthenticator] | None = None


def set_authenticator_getter(getter: Callable[[], ConnectionAuthenticator]) -> None:
    global _get_authenticator
    _get_authenticator = getter


def _authenticator() -> ConnectionAuthenticator:
    if _get_authenticator is None:
        raise HTTPException(503, "Authenticator not initialized")
    return _get_authenticator()


async def current_identity(
    authorization: str | None = Header(None),
    x_role: str | None = Header(None),
    x_restaurant_id: str | None = Header(None),
) -> Identity:
    """Resolve the caller's identity from request headers."""
    return await _authenticator().authenticate(
        extract_bearer(authorization), x_role, x_restaurant_id
    )


async def admin_identity(identity: Identity = Depends(current_identity)) -> Identity:
    if not isinstance(identity, AdminIdentity):
        raise Forbidden("Admin privilege required")
    return identity


def require_roles(identity: Identity, *roles: str) -> None:
    """Raise ``Forbidden`` unless the caller holds one of *roles*."""
    if identity.role not in roles:
        raise Forbidden(f"Role {identity.role} cannot perform this action")
