"""
CardLink Backend — Audit Log Service
======================================

What:  Appends audit entries and lists them.
Why:   The audit trail must never cost the caller its business operation.
How:   Each entry is written through its own short-lived session, after
       the triggering change has been committed. Any failure is logged and
       swallowed; record() then returns None.
Who:   ClientService after every state-changing operation; the logs and
       client-detail endpoints for reads.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardlink.database import async_session_factory
from cardlink.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

SYSTEM_ACTORS = {"public", "system"}


def actor_role(actor: str) -> str:
    """'public' and 'system' are their own roles; any named actor is an admin."""
    return actor if actor in SYSTEM_ACTORS else "admin"


class AuditService:
    """
    Args:
        session_factory: Factory for the independent write sessions
                         (tests pass one bound to their temporary database)
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory or async_session_factory

    async def record(
        self,
        actor: str,
        action: str,
        target_client_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """Write one entry. Never raises."""
        try:
            async with self.session_factory() as session:
                entry = AuditLog(
                    actor=actor,
                    actor_role=actor_role(actor),
                    action=action,
                    target_client_id=target_client_id,
                    notes=notes,
                    payload=jsonable_encoder(payload) if payload is not None else None,
                )
                session.add(entry)
                await session.commit()
                logger.debug("Audit %s by %s on %s", action, actor, target_client_id)
                return entry
        except Exception as e:
            logger.error(
                "Audit write failed (action=%s, target=%s): %s",
                action, target_client_id, str(e),
            )
            return None

    async def list_logs(
        self,
        db: AsyncSession,
        client_id: Optional[uuid.UUID] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[AuditLog], int]:
        """Newest first, optionally for one client, with the total match count."""
        query = select(AuditLog)
        count_query = select(func.count()).select_from(AuditLog)
        if client_id is not None:
            query = query.where(AuditLog.target_client_id == client_id)
            count_query = count_query.where(AuditLog.target_client_id == client_id)

        total = (await db.execute(count_query)).scalar_one()
        result = await db.execute(
            query.order_by(AuditLog.timestamp.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total

    async def recent_for_client(
        self, db: AsyncSession, client_id: uuid.UUID, limit: int = 10
    ) -> List[AuditLog]:
        items, _ = await self.list_logs(db, client_id=client_id, limit=limit)
        return items


# ── Singleton Instance ────────────────────────────────────────────────────
audit_service = AuditService()
