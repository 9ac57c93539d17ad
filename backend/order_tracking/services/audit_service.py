"""Structured audit logging service.

Writes audit entries for tracking mutations to the database for review and
debugging.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_tracking.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Writes structured audit log entries to the database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def log(
        self,
        level: str,
        category: str,
        message: str,
        *,
        order_id: int | None = None,
        courier_id: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Write an audit log entry."""
        try:
            async with self._session_factory() as session:
                entry = AuditLog(
                    level=level,
                    category=category,
                    order_id=order_id,
                    courier_id=courier_id,
                    message=message,
                    details=json.dumps(details, default=str) if details else None,
                )
                session.add(entry)
                await session.commit()
        except Exception as e:
            # Don't let audit failures break the app
            logger.error("Failed to write audit log: %s", e)

        # Also log to Python logger
        log_level = getattr(logging, level.upper(), logging.INFO)
        logger.log(log_level, "[%s] %s: %s", category, message, details or "")

    async def info(self, category: str, message: str, **kwargs: Any) -> None:
        await self.log("INFO", category, message, **kwargs)

    async def warn(self, category: str, message: str, **kwargs: Any) -> None:
        await self.log("WARNING", category, message, **kwargs)

    async def entries_for_order(self, order_id: int) -> list[AuditLog]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AuditLog)
                .where(AuditLog.order_id == order_id)
                .order_by(AuditLog.id)
            )
            return list(result.scalars())
