"""
CardLink Backend — Client Lifecycle Service (Business Logic Orchestrator)
==========================================================================

What:  Owns the client status state machine and every operation that moves
       a record through it.
Why:   All lifecycle rules live in one place, independent of HTTP concerns:
       validation, the transition table, history, audit and the side effects.
How:   Composes MediaService, PdfService, EmailService and AuditService.
Who:   Called by route handlers through the get_client_service dependency.

Lifecycle:
    Create ──▶ pending ──Update──▶ processed ──GenerateVCard──▶ active
                  │                    │                           │
                  └────── ChangeStatus / SoftDelete (transition table) ─▶ rejected / disabled / deleted

Operation Contract:
    1. Validate input (ValidationError, 400), then resolve the record
       (NotFoundError, 404), then check status preconditions.
    2. Perform every fallible external step (uploads) BEFORE touching the
       record: a failed upload leaves the record exactly as it was.
    3. Mutate, append exactly one history entry, commit.
    4. Write exactly one audit entry for the operation (best effort, after
       commit, so an audit failure cannot roll back the change).
    5. Run side effects (email) last; their failures become warnings.
"""

import csv
import io
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardlink.config import settings
from cardlink.exceptions import (
    CardLinkError,
    DatabaseError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from cardlink.models.audit_log import AuditLog
from cardlink.models.client import (
    HIDDEN_STATUSES,
    Client,
    ClientStatus,
    HistoryAction,
    can_transition,
)
from cardlink.schemas.client import CONTACT_FIELDS, ClientCreate, ClientUpdate, VCardResult
from cardlink.services.audit_service import AuditService, audit_service
from cardlink.services.email_service import EmailService, email_service
from cardlink.services.media_service import ArtifactKind, MediaService, media_service
from cardlink.services.pdf_service import PdfService, pdf_service
from cardlink.services.qr_service import render_qr_png
from cardlink.services.slug_service import generate_unique_slug, random_suffix_slug
from cardlink.services.vcard_encoder import encode_vcard

logger = logging.getLogger(__name__)

SEARCH_FIELDS = (
    "full_name", "company",
    "email1", "email2", "email3",
    "phone1", "phone2", "phone3",
)

EXPORT_FIELDS = (
    "id", "slug", "full_name", "title", "company",
    "email1", "email2", "email3", "phone1", "phone2", "phone3",
    "address", "business_website", "portfolio_website",
    "status", "photo_url", "vcard_url", "qr_code_url", "pdf_url",
    "created_at", "updated_at",
)

STRUCTURED_FIELDS = ("social_links", "working_hours")


@dataclass
class UploadedPhoto:
    """A photo file received with a multipart request."""

    filename: str
    content: bytes
    content_length: Optional[int] = None


def escape_like(term: str) -> str:
    """Makes `%`, `_` and the escape char match literally in a LIKE pattern."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def parse_status(value: str) -> ClientStatus:
    try:
        return ClientStatus((value or "").strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in ClientStatus)
        raise ValidationError(
            message=f"Invalid status '{value}'. Allowed values: {allowed}",
            field="status",
            context={"status": value},
        )


def validate_notes(notes: Optional[str]) -> str:
    cleaned = (notes or "").strip()
    if len(cleaned) < settings.notes_min_length:
        raise ValidationError(
            message=f"Notes are required and must be at least {settings.notes_min_length} characters.",
            field="notes",
            context={"min_length": settings.notes_min_length, "length": len(cleaned)},
        )
    return cleaned


class ClientService:
    """
    Business logic layer for the client lifecycle.

    Collaborators are injected so tests can swap storage, PDF, email and
    audit for fakes without patching module globals.
    """

    def __init__(
        self,
        media: Optional[MediaService] = None,
        pdf: Optional[PdfService] = None,
        email: Optional[EmailService] = None,
        audit: Optional[AuditService] = None,
    ):
        self.media = media or media_service
        self.pdf = pdf or pdf_service
        self.email = email or email_service
        self.audit = audit or audit_service

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _commit(self, db: AsyncSession, client: Client, operation: str) -> None:
        try:
            await db.commit()
            await db.refresh(client)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error during %s of client %s: %s", operation, client.id, str(e))
            raise DatabaseError(context={"operation": operation, "error": str(e)})

    async def _get(self, db: AsyncSession, client_id: uuid.UUID) -> Client:
        client = await db.get(Client, client_id)
        if client is None:
            raise NotFoundError(resource="Client", resource_id=str(client_id))
        return client

    def _check_not_deleted(self, client: Client) -> None:
        if client.status == ClientStatus.DELETED.value:
            raise ValidationError(
                message="Client has been deleted and can no longer be modified.",
                field="status",
                context={"client_id": str(client.id)},
            )

    def _check_required_fields(self, data: ClientCreate) -> None:
        required = list(dict.fromkeys(["full_name", *settings.required_client_fields_list]))
        missing = [name for name in required if not getattr(data, name, None)]
        if missing:
            raise ValidationError(
                message=f"Missing required fields: {', '.join(missing)}",
                field=missing[0],
                context={"missing": missing},
            )
        if not any(getattr(data, name) for name in CONTACT_FIELDS):
            raise ValidationError(
                message="At least one phone number or email address is required.",
                field="phone1",
            )

    # ── Create ────────────────────────────────────────────────────────────

    async def create(
        self,
        db: AsyncSession,
        data: ClientCreate,
        actor: str = "public",
    ) -> Tuple[Client, List[str]]:
        """
        Persist a new pending client.

        Returns the client and a list of non-fatal warnings (a failed
        initial PDF render lands there, never in an error).
        """
        self._check_required_fields(data)

        fields = data.model_dump(exclude={"social_links", "working_hours"}, exclude_none=True)
        client = Client(
            **fields,
            slug=await generate_unique_slug(db, data.full_name),
            status=ClientStatus.PENDING.value,
            social_links=data.social_links.model_dump(exclude_none=True) if data.social_links else {},
            working_hours=data.working_hours.model_dump(exclude_none=True) if data.working_hours else {},
        )
        client.append_history(HistoryAction.CREATED, actor, "Client submitted")

        db.add(client)
        try:
            await db.commit()
        except IntegrityError:
            # A concurrent create claimed the same slug between check and insert
            await db.rollback()
            client.slug = random_suffix_slug(client.slug)
            logger.warning("Slug collision on insert; retrying with '%s'", client.slug)
            db.add(client)
            await self._commit(db, client, "create")
        else:
            await db.refresh(client)

        logger.info("Client created: %s (slug=%s)", client.id, client.slug)
        await self.audit.record(
            actor,
            HistoryAction.CREATED,
            target_client_id=client.id,
            payload={"slug": client.slug, "full_name": client.full_name},
        )

        warnings: List[str] = []
        if settings.generate_pdf_on_create:
            try:
                async with self.pdf.gate.admit():
                    _, url = await self.pdf.render_and_upload(client)
                client.pdf_url = url
                await self._commit(db, client, "create")
            except CardLinkError as e:
                logger.warning("Initial PDF for client %s skipped: %s", client.id, e.message)
                warnings.append(f"Initial PDF not generated: {e.message}")

        return client, warnings

    async def notify_new_submission(self, client: Client) -> None:
        """Admin email after Create; runs as a background task."""
        result = await self.email.send_new_submission(client)
        if not result.sent:
            logger.warning("New-submission email for %s not sent (%s)", client.id, result.status)

    # ── Update ────────────────────────────────────────────────────────────

    async def update(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        data: ClientUpdate,
        actor: str = "admin",
        photo: Optional[UploadedPhoto] = None,
    ) -> Client:
        """
        Apply the fields present in `data`.

        Structured sub-objects are merged key by key. The first update of a
        pending client moves it to processed; other statuses are kept.
        A replacement photo is uploaded before anything is changed.
        """
        changes = data.model_dump(exclude_unset=True, exclude=set(STRUCTURED_FIELDS))
        if "full_name" in changes and not changes["full_name"]:
            raise ValidationError(message="Full name cannot be empty.", field="full_name")

        client = await self._get(db, client_id)
        self._check_not_deleted(client)

        if photo is not None:
            changes["photo_url"] = await self.media.upload_photo(
                photo.filename, photo.content, photo.content_length
            )

        changed: List[str] = []
        for name, value in changes.items():
            if getattr(client, name) != value:
                setattr(client, name, value)
                changed.append(name)

        for name in STRUCTURED_FIELDS:
            if name not in data.model_fields_set or getattr(data, name) is None:
                continue
            incoming = getattr(data, name).model_dump(exclude_unset=True)
            merged = {**(getattr(client, name) or {}), **incoming}
            if merged != (getattr(client, name) or {}):
                setattr(client, name, merged)
                changed.append(name)

        if not client.slug and client.full_name:
            client.slug = await generate_unique_slug(db, client.full_name, exclude_id=client.id)

        previous_status = client.status
        if client.status == ClientStatus.PENDING.value:
            client.status = ClientStatus.PROCESSED.value

        notes = f"Updated: {', '.join(changed)}" if changed else "Saved without field changes"
        client.append_history(HistoryAction.UPDATED, actor, notes)
        await self._commit(db, client, "update")

        logger.info("Client %s updated (%d fields)", client.id, len(changed))
        await self.audit.record(
            actor,
            HistoryAction.UPDATED,
            target_client_id=client.id,
            notes=notes,
            payload={"fields": changed, "previous_status": previous_status, "status": client.status},
        )
        return client

    async def upload_photo(
        self,
        photo: UploadedPhoto,
        actor: str = "public",
    ) -> str:
        """Standalone photo upload; the URL is attached to a client by a later create/update."""
        url = await self.media.upload_photo(photo.filename, photo.content, photo.content_length)
        await self.audit.record(actor, HistoryAction.PHOTO_UPLOADED, payload={"photo_url": url})
        return url

    # ── vCard artifacts ───────────────────────────────────────────────────

    async def generate_vcard_artifacts(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        actor: str = "admin",
    ) -> VCardResult:
        """
        Encode and upload the vCard and QR code, then activate the client.

        Raises:
            NotFoundError:          unknown id
            ValidationError:        no name or no contact channel
            InvalidTransitionError: status cannot become active
            MediaUploadError:       either upload failed (record untouched)
        """
        client = await self._get(db, client_id)
        if not can_transition(client.status, ClientStatus.ACTIVE.value):
            raise InvalidTransitionError(client.status, ClientStatus.ACTIVE.value)
        if not (client.full_name or "").strip():
            raise ValidationError(message="Client has no name.", field="full_name")
        if not client.has_contact_channel:
            raise ValidationError(
                message="Client needs at least one phone number or email address.",
                field="phone1",
            )

        slug = client.slug or await generate_unique_slug(db, client.full_name, exclude_id=client.id)
        profile_url = settings.public_profile_url(slug, str(client.id))

        vcard_text = encode_vcard(client)
        vcard_url = await self.media.upload(vcard_text.encode("utf-8"), f"{slug}.vcf", ArtifactKind.VCARD)
        qr_code_url = await self.media.upload(render_qr_png(profile_url), slug, ArtifactKind.QR)

        previous_status = client.status
        client.slug = slug
        client.vcard_url = vcard_url
        client.qr_code_url = qr_code_url
        client.status = ClientStatus.ACTIVE.value
        client.append_history(HistoryAction.VCARD_CREATED, actor, "vCard and QR code generated")
        await self._commit(db, client, "vcard generation")

        logger.info("vCard artifacts generated for client %s", client.id)
        await self.audit.record(
            actor,
            HistoryAction.VCARD_CREATED,
            target_client_id=client.id,
            payload={
                "previous_status": previous_status,
                "vcard_url": vcard_url,
                "qr_code_url": qr_code_url,
            },
        )

        warnings: List[str] = []
        email_result = await self.email.send_vcard_ready(client)
        if email_result.status == "sent":
            await self.audit.record(
                "system",
                HistoryAction.EMAIL_SENT,
                target_client_id=client.id,
                payload={"to": email_result.recipient},
            )
        elif email_result.status == "failed":
            warnings.append("vCard created but the notification email could not be sent.")
            await self.audit.record(
                "system",
                HistoryAction.EMAIL_FAILED,
                target_client_id=client.id,
                notes=email_result.error,
                payload={"to": email_result.recipient},
            )
        else:
            warnings.append(f"Notification email skipped: {email_result.error}")

        return VCardResult(
            vcard_url=vcard_url,
            qr_code_url=qr_code_url,
            status=client.status,
            email_status=email_result.status,
            warnings=warnings,
        )

    # ── PDF ───────────────────────────────────────────────────────────────

    async def get_pdf(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        actor: str = "admin",
    ) -> Tuple[bytes, str]:
        """
        PDF bytes and a download filename, under the render gate.

        Raises RenderBusyError when the slot is not granted in time and
        PdfRenderError when neither the stored copy nor a fresh render works.
        """
        client = await self._get(db, client_id)
        self._check_not_deleted(client)

        async with self.pdf.gate.admit():
            outcome = await self.pdf.fetch_or_regenerate(client)
            if outcome.regenerated:
                client.pdf_url = outcome.url
                client.append_history(
                    HistoryAction.PDF_GENERATED_ON_DEMAND, actor, "PDF regenerated on request"
                )
                await self._commit(db, client, "pdf generation")
                await self.audit.record(
                    actor,
                    HistoryAction.PDF_GENERATED_ON_DEMAND,
                    target_client_id=client.id,
                    payload={"pdf_url": outcome.url},
                )

        return outcome.content, f"{client.slug}.pdf"

    # ── Status changes ────────────────────────────────────────────────────

    async def _transition(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        requested: ClientStatus,
        notes: str,
        actor: str,
        action: str,
    ) -> Client:
        client = await self._get(db, client_id)
        if client.status == requested.value:
            raise ValidationError(
                message=f"Client is already '{requested.value}'.",
                field="status",
                context={"current_status": client.status},
            )
        if not can_transition(client.status, requested.value):
            raise InvalidTransitionError(client.status, requested.value)

        previous_status = client.status
        client.status = requested.value
        client.append_history(action, actor, notes)
        await self._commit(db, client, "status change")

        logger.info("Client %s: %s → %s by %s", client.id, previous_status, requested.value, actor)
        await self.audit.record(
            actor,
            action,
            target_client_id=client.id,
            notes=notes,
            payload={"previous_status": previous_status, "new_status": requested.value},
        )
        return client

    async def change_status(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        status: str,
        notes: Optional[str],
        actor: str = "admin",
    ) -> Client:
        """Move a client to `status`; notes are mandatory and the move must be in the table."""
        requested = parse_status(status)
        cleaned = validate_notes(notes)
        return await self._transition(
            db, client_id, requested, cleaned, actor, HistoryAction.STATUS_CHANGED
        )

    async def soft_delete(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        notes: Optional[str],
        actor: str = "admin",
    ) -> Client:
        """Mark a client deleted. The row is kept; deleted is terminal."""
        cleaned = validate_notes(notes)
        return await self._transition(
            db, client_id, ClientStatus.DELETED, cleaned, actor, HistoryAction.DELETED
        )

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        include_logs: bool = False,
        log_limit: int = 10,
    ) -> Tuple[Client, List[AuditLog]]:
        client = await self._get(db, client_id)
        logs: List[AuditLog] = []
        if include_logs:
            logs = await self.audit.recent_for_client(db, client.id, limit=log_limit)
        return client, logs

    async def list_clients(
        self,
        db: AsyncSession,
        q: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Client], int]:
        """
        Admin listing, newest first.

        `q` is a case-insensitive substring match over name, company, emails
        and phones. Deleted clients only appear when asked for by status.
        """
        conditions = []
        if status:
            conditions.append(Client.status == parse_status(status).value)
        else:
            conditions.append(Client.status != ClientStatus.DELETED.value)

        term = (q or "").strip()
        if term:
            pattern = f"%{escape_like(term)}%"
            conditions.append(
                or_(*(getattr(Client, f).ilike(pattern, escape="\\") for f in SEARCH_FIELDS))
            )

        total = (
            await db.execute(select(func.count()).select_from(Client).where(*conditions))
        ).scalar_one()
        result = await db.execute(
            select(Client)
            .where(*conditions)
            .order_by(Client.created_at.desc(), Client.id)
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_public(self, db: AsyncSession, skip: int = 0, limit: int = 100) -> List[Client]:
        result = await db.execute(
            select(Client)
            .where(Client.status.not_in([s.value for s in HIDDEN_STATUSES]))
            .order_by(Client.created_at.desc(), Client.id)
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def public_profile(self, db: AsyncSession, slug_or_id: str) -> Client:
        """Resolve by slug, or by id when the value parses as a UUID; hidden statuses 404."""
        try:
            lookup = Client.id == uuid.UUID(slug_or_id)
        except ValueError:
            lookup = Client.slug == slug_or_id

        result = await db.execute(select(Client).where(lookup))
        client = result.scalar_one_or_none()
        if client is None or ClientStatus(client.status) in HIDDEN_STATUSES:
            raise NotFoundError(resource="Profile", resource_id=slug_or_id)
        return client

    async def vcard_redirect_url(self, db: AsyncSession, client_id: uuid.UUID) -> str:
        """Stored vCard URL of an active client."""
        client = await db.get(Client, client_id)
        if client is None or client.status != ClientStatus.ACTIVE.value or not client.vcard_url:
            raise NotFoundError(resource="vCard", resource_id=str(client_id))
        return client.vcard_url

    # ── Export ────────────────────────────────────────────────────────────

    async def export_csv(self, db: AsyncSession, actor: str = "admin") -> str:
        result = await db.execute(
            select(Client)
            .where(Client.status != ClientStatus.DELETED.value)
            .order_by(Client.created_at.desc(), Client.id)
        )
        clients = result.scalars().all()

        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=EXPORT_FIELDS)
        writer.writeheader()
        for client in clients:
            row: Dict[str, Any] = {}
            for name in EXPORT_FIELDS:
                value = getattr(client, name)
                row[name] = value.isoformat() if hasattr(value, "isoformat") else ("" if value is None else value)
            writer.writerow(row)

        logger.info("Exported %d clients to CSV", len(clients))
        await self.audit.record(actor, HistoryAction.DATA_EXPORTED, payload={"count": len(clients)})
        return buffer.getvalue()


# ── Singleton Instance ────────────────────────────────────────────────────
client_service = ClientService()


def get_client_service() -> ClientService:
    """FastAPI dependency; tests override it with a service wired to fakes."""
    return client_service
