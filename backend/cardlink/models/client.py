"""
CardLink Backend — Client SQLAlchemy Model
============================================

What:  ORM model for the `clients` table: one business-card profile per row.
Why:   The client record owns the lifecycle status and its embedded history.
How:   Inherits from the shared DeclarativeBase; Alembic reads this for migrations.
Who:   Used by ClientService for every lifecycle operation.

Table Design Rationale:
    - UUID primary key: opaque, non-sequential identifier
    - slug: unique, derived from the display name, never regenerated once set
    - social_links / working_hours: fixed-schema sub-objects stored as JSON,
      merged key-by-key on update
    - history: append-only JSON array of {action, notes, actor, timestamp}
    - status: lowercase enum string; legal moves live in ALLOWED_TRANSITIONS
    - Never hard-deleted: deletion is status='deleted'
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, List, Optional

from sqlalchemy import JSON, DateTime, Index, String, Text, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from cardlink.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClientStatus(str, enum.Enum):
    """Lifecycle states of a client record."""

    PENDING = "pending"
    PROCESSED = "processed"
    ACTIVE = "active"
    REJECTED = "rejected"
    DISABLED = "disabled"
    DELETED = "deleted"


# from-status → statuses it may move to; 'deleted' is terminal
ALLOWED_TRANSITIONS: Dict[ClientStatus, FrozenSet[ClientStatus]] = {
    ClientStatus.PENDING: frozenset({
        ClientStatus.PROCESSED,
        ClientStatus.ACTIVE,
        ClientStatus.REJECTED,
        ClientStatus.DISABLED,
        ClientStatus.DELETED,
    }),
    ClientStatus.PROCESSED: frozenset({
        ClientStatus.PROCESSED,
        ClientStatus.ACTIVE,
        ClientStatus.REJECTED,
        ClientStatus.DISABLED,
        ClientStatus.DELETED,
    }),
    ClientStatus.ACTIVE: frozenset({
        ClientStatus.PROCESSED,
        ClientStatus.ACTIVE,
        ClientStatus.DISABLED,
        ClientStatus.DELETED,
    }),
    ClientStatus.REJECTED: frozenset({
        ClientStatus.PENDING,
        ClientStatus.PROCESSED,
        ClientStatus.DELETED,
    }),
    ClientStatus.DISABLED: frozenset({
        ClientStatus.PROCESSED,
        ClientStatus.ACTIVE,
        ClientStatus.DELETED,
    }),
    ClientStatus.DELETED: frozenset(),
}

# Statuses hidden from every public endpoint
HIDDEN_STATUSES: FrozenSet[ClientStatus] = frozenset({ClientStatus.DISABLED, ClientStatus.DELETED})


def can_transition(current: str, requested: str) -> bool:
    try:
        return ClientStatus(requested) in ALLOWED_TRANSITIONS[ClientStatus(current)]
    except ValueError:
        return False


class HistoryAction:
    """Action tags shared by the embedded history and the audit log."""

    CREATED = "CLIENT_CREATED"
    UPDATED = "CLIENT_UPDATED"
    VCARD_CREATED = "VCARD_CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    DELETED = "CLIENT_DELETED"
    PDF_GENERATED_ON_DEMAND = "PDF_GENERATED_ON_DEMAND"
    PHOTO_UPLOADED = "PHOTO_UPLOADED"
    EMAIL_SENT = "EMAIL_SENT"
    EMAIL_FAILED = "EMAIL_FAILED"
    DATA_EXPORTED = "DATA_EXPORTED"


class Client(Base):
    """
    A business-card profile owned by one end customer.

    Lifecycle:
        1. Created from the public form (status = 'pending')
        2. Admin saves confirmed info (pending → 'processed')
        3. vCard + QR generated (→ 'active')
        4. Admin may disable, reject, reactivate or soft-delete
    """

    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    # ── Contact fields ────────────────────────────────────────────────────
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(255))
    phone1: Mapped[Optional[str]] = mapped_column(String(50))
    phone2: Mapped[Optional[str]] = mapped_column(String(50))
    phone3: Mapped[Optional[str]] = mapped_column(String(50))
    email1: Mapped[Optional[str]] = mapped_column(String(255))
    email2: Mapped[Optional[str]] = mapped_column(String(255))
    email3: Mapped[Optional[str]] = mapped_column(String(255))
    company: Mapped[Optional[str]] = mapped_column(String(255))
    bio: Mapped[Optional[str]] = mapped_column(Text)
    address: Mapped[Optional[str]] = mapped_column(Text)

    # ── Links ─────────────────────────────────────────────────────────────
    business_website: Mapped[Optional[str]] = mapped_column(String(500))
    portfolio_website: Mapped[Optional[str]] = mapped_column(String(500))
    location_map: Mapped[Optional[str]] = mapped_column(String(1000))
    social_links: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    working_hours: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    # ── Generated artifacts ───────────────────────────────────────────────
    photo_url: Mapped[Optional[str]] = mapped_column(String(1000))
    pdf_url: Mapped[Optional[str]] = mapped_column(String(1000))
    vcard_url: Mapped[Optional[str]] = mapped_column(String(1000))
    qr_code_url: Mapped[Optional[str]] = mapped_column(String(1000))

    # ── Lifecycle ─────────────────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ClientStatus.PENDING.value,
        server_default=text("'pending'"),
    )
    history: Mapped[List[Dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        Index("idx_clients_created_at", created_at.desc()),
        Index("idx_clients_status", "status"),
    )

    def append_history(self, action: str, actor: str, notes: Optional[str] = None) -> Dict[str, Any]:
        """
        Append one entry to the embedded history.

        The list is rebuilt rather than mutated in place so the ORM sees a
        new value and persists it; existing entries are never touched.
        """
        entry = {
            "action": action,
            "notes": notes,
            "actor": actor,
            "timestamp": utcnow().isoformat(),
        }
        self.history = [*(self.history or []), entry]
        return entry

    @property
    def has_contact_channel(self) -> bool:
        return any(
            (value or "").strip()
            for value in (self.phone1, self.phone2, self.phone3, self.email1, self.email2, self.email3)
        )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, slug='{self.slug}', status='{self.status}')>"
