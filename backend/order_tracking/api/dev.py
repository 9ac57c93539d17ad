"""Developer / debug routes.

Provides the in-memory log buffer and a token issuer standing in for the
storefront's login flow.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Literal

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from order_tracking.services.auth import ConnectionAuthenticator
from order_tracking.services.log_buffer import log_buffer

router = APIRouter(prefix="/api/dev", tags=["dev"])

# Injected at startup
_get_authenticator: Callable[[], ConnectionAuthenticator] | None = None


def set_authenticator_getter(getter: Callable[[], ConnectionAuthenticator]) -> None:
    global _get_authenticator
    _get_authenticator = getter


class _TokenBody(BaseModel):
    principal_id: int = Field(gt=0)
    kind: Literal["user", "courier"] = "user"


@router.post("/token")
async def issue_token(body: _TokenBody):
    """Sign an identity token for a user or courier id."""
    if _get_authenticator is None:
        raise HTTPException(503, "Authenticator not initialized")
    token = _get_authenticator().issue_token(body.principal_id, body.kind)
    return {"access_token": token, "token_type": "bearer"}


@router.get("/logs")
async def get_logs(
    source: str | None = Query(None, description="Filter: 'app', 'access' or 'sql'"),
    since: int = Query(0, description="Return entries after this sequence number"),
    level: str | None = Query(None, description="Minimum level, e.g. WARNING"),
    limit: int = Query(500, ge=1, le=5000),
):
    """Return buffered log entries from the in-memory ring buffer."""
    entries = log_buffer.get_entries(
        source=source, since_seq=since, min_level=level, limit=limit
    )
    return {"entries": entries, "latest_seq": log_buffer.latest_seq}


@router.delete("/logs")
async def clear_logs():
    """Clear the in-memory log buffer."""
    log_buffer.clear()
    return {"status": "ok"}
