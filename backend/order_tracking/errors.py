"""Error taxonomy for the tracking engine.

Every failure a caller can see is a :class:`TrackingError` carrying a stable
``code``, a client-safe ``message`` and the HTTP status it maps to. The
WebSocket layer sends the same code/message pair as an ``error`` event.
"""

from __future__ import annotations

from typing import Any


class TrackingError(Exception):
    """Base class for all client-visible tracking failures."""

    code = "tracking_error"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


# --- Connection establishment (fatal to that connection attempt) ---


class AuthenticationRequired(TrackingError):
    code = "authentication_required"
    status_code = 401
    default_message = "Authentication token required"


class InvalidToken(TrackingError):
    code = "invalid_token"
    status_code = 401
    default_message = "Invalid token"


class TokenExpired(TrackingError):
    code = "token_expired"
    status_code = 401
    default_message = "Token expired"


class RoleMismatch(TrackingError):
    code = "role_mismatch"
    status_code = 403
    default_message = "Role not permitted for this principal"


class Forbidden(TrackingError):
    code = "forbidden"
    status_code = 403
    default_message = "Not allowed"


# --- Operation level ---


class OrderNotFound(TrackingError):
    code = "order_not_found"
    status_code = 404
    default_message = "Order not found"


class CourierNotFound(TrackingError):
    code = "courier_not_found"
    status_code = 404
    default_message = "Courier not found"


class CourierUnavailable(TrackingError):
    code = "courier_unavailable"
    status_code = 409
    default_message = "Courier is not available"


class CourierAlreadyAssigned(TrackingError):
    code = "courier_already_assigned"
    status_code = 409
    default_message = "Order already has a courier assigned"


class CourierMismatch(TrackingError):
    code = "courier_mismatch"
    status_code = 403
    default_message = "Order is assigned to a different courier"


class NoCourierAssigned(TrackingError):
    code = "no_courier_assigned"
    status_code = 400
    default_message = "No courier assigned"


class InvalidStatus(TrackingError):
    code = "invalid_status"
    status_code = 400
    default_message = "Invalid order status"


# --- Cache adapter (never reaches clients) ---


class CacheUnavailable(Exception):
    """The location cache could not be reached; callers degrade to the store."""
