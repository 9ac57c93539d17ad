"""Connection authentication.

Verifies the identity token presented at connection time (WebSocket
handshake or HTTP bearer header) and binds a role-scoped identity to the
connection. The identity is immutable for the connection's lifetime.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_tracking.errors import (
    AuthenticationRequired,
    InvalidToken,
    RoleMismatch,
    TokenExpired,
)
from order_tracking.models._time import utcnow
from order_tracking.models.courier import Courier
from order_tracking.models.restaurant import Restaurant
from order_tracking.models.user import User

logger = logging.getLogger(__name__)

# Handshake role names, including the legacy aliases older clients send.
ROLE_ALIASES = {
    "customer": "customer",
    "user": "customer",
    "courier": "courier",
    "delivery_partner": "courier",
    "restaurant": "restaurant",
    "admin": "admin",
}

# Token principal kinds: which table the ``sub`` claim points into.
USER = "user"
COURIER = "courier"
PRINCIPAL_KINDS = (USER, COURIER)


@dataclass(frozen=True)
class TokenClaims:
    principal_id: int
    kind: str


@dataclass(frozen=True)
class CustomerIdentity:
    principal_id: int
    role = "customer"

    @property
    def role_scoped_id(self) -> int:
        return self.principal_id


@dataclass(frozen=True)
class CourierIdentity:
    principal_id: int
    courier_id: int
    role = "courier"

    @property
    def role_scoped_id(self) -> int:
        return self.courier_id


@dataclass(frozen=True)
class RestaurantIdentity:
    principal_id: int
    restaurant_id: int
    role = "restaurant"

    @property
    def role_scoped_id(self) -> int:
        return self.restaurant_id


@dataclass(frozen=True)
class AdminIdentity:
    principal_id: int
    role = "admin"

    @property
    def role_scoped_id(self) -> None:
        return None


Identity = CustomerIdentity | CourierIdentity | RestaurantIdentity | AdminIdentity


def extract_bearer(header: str | None) -> str | None:
    """Return the token part of an ``Authorization: Bearer <token>`` header."""
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class ConnectionAuthenticator:
    """Decode identity tokens and resolve them to a role-scoped identity."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        secret: str,
        algorithm: str = "HS256",
        token_ttl: timedelta = timedelta(hours=8),
    ) -> None:
        self._session_factory = session_factory
        self._secret = secret
        self._algorithm = algorithm
        self._token_ttl = token_ttl

    def issue_token(
        self, principal_id: int, kind: str = USER, ttl: timedelta | None = None
    ) -> str:
        """Sign a token for a user account or a courier (used by the login collaborator).

        Users and couriers are numbered independently, so the token names
        which table *principal_id* refers to.
        """
        if kind not in PRINCIPAL_KINDS:
            raise ValueError(f"Unknown principal kind: {kind!r}")
        now = utcnow()
        payload = {
            "sub": str(principal_id),
            "kind": kind,
            "iat": now,
            "exp": now + (ttl if ttl is not None else self._token_ttl),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode(self, token: str | None) -> TokenClaims:
        """Verify *token* and return who it was issued for."""
        if not token or not token.strip():
            raise AuthenticationRequired()
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            raise TokenExpired() from None
        except jwt.InvalidTokenError:
            raise InvalidToken() from None

        try:
            principal_id = int(payload["sub"])
        except (KeyError, TypeError, ValueError):
            raise InvalidToken("Token has no usable subject") from None
        kind = payload.get("kind")
        if kind not in PRINCIPAL_KINDS:
            raise InvalidToken("Token has no principal kind")
        return TokenClaims(principal_id, kind)

    async def authenticate(
        self,
        token: str | None,
        role: str | None = None,
        restaurant_id: str | int | None = None,
    ) -> Identity:
        """Resolve a handshake to an :data:`Identity`.

        *role* defaults to ``customer``. The courier role needs a courier
        token; every other role needs a user token. The restaurant role has
        no implicit binding, so *restaurant_id* must be supplied and the
        token's user must own that restaurant.
        """
        claims = self.decode(token)
        role_name = ROLE_ALIASES.get((role or "customer").strip().lower())
        if role_name is None:
            raise RoleMismatch(f"Invalid role: {role}")
        expected_kind = COURIER if role_name == "courier" else USER
        if claims.kind != expected_kind:
            raise RoleMismatch(f"A {claims.kind} token cannot act as {role_name}")

        principal_id = claims.principal_id
        if role_name == "restaurant":
            rid = _parse_restaurant_id(restaurant_id)
            async with self._session_factory() as session:
                restaurant = await session.get(Restaurant, rid)
            if restaurant is None or restaurant.owner_id != principal_id:
                raise RoleMismatch(f"Not an owner of restaurant {rid}")
            identity: Identity = RestaurantIdentity(principal_id, rid)
        else:
            async with self._session_factory() as session:
                if role_name == "courier":
                    courier = await session.get(Courier, principal_id)
                    if courier is None:
                        raise RoleMismatch("Courier not found")
                    identity = CourierIdentity(principal_id, courier.id)
                else:
                    user = await session.get(User, principal_id)
                    if user is None:
                        raise RoleMismatch("User not found")
                    if role_name == "admin":
                        if user.role != "admin":
                            raise RoleMismatch("Admin not found or unauthorized")
                        identity = AdminIdentity(principal_id)
                    else:
                        identity = CustomerIdentity(principal_id)

        logger.info("Authenticated %s principal %s", identity.role, principal_id)
        return identity


def _parse_restaurant_id(value: str | int | None) -> int:
    if value in (None, ""):
        raise RoleMismatch("Restaurant ID required for restaurant role")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise RoleMismatch("Restaurant ID must be an integer") from None
