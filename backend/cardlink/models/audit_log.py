"""
CardLink Backend — Audit Log SQLAlchemy Model
===============================================

What:  System-wide, append-only record of every state-changing action.
Why:   Independent of the client row, so it survives and can be queried
       without loading clients; the embedded client history is per-record.
How:   Write-once rows; nothing in the codebase updates or deletes them.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from cardlink.database import Base
from cardlink.models.client import JSONType, utcnow


class AuditLog(Base):
    """One audited action: who did what to which client, with an optional payload snapshot."""

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    actor: Mapped[str] = mapped_column(String(255), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(50), nullable=False, default="admin")
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    target_client_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        Index("idx_audit_logs_target_client_id", "target_client_id"),
        Index("idx_audit_logs_timestamp", timestamp.desc()),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(action='{self.action}', target={self.target_client_id})>"
