"""
CardLink Backend — Client Route Handlers
==========================================

What:  The /api/clients resource: public submission and listing, and the
       admin lifecycle actions (update, vCard, PDF, status, delete, export).
How:   Extracts path/query/body data, delegates to ClientService, wraps
       the result in the standard envelope.
Who:   The public submission form and the admin dashboard.

Actor Attribution:
    Admin actions are attributed to the X-Actor-Email header (default
    "admin"); the public endpoints always act as "public".
"""

import logging
from typing import List, Optional
from uuid import UUID

import pydantic
from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    Header,
    Query,
    Response,
    UploadFile,
)
from sqlalchemy.ext.asyncio import AsyncSession

from cardlink.database import get_db_session
from cardlink.exceptions import ValidationError
from cardlink.models.client import Client
from cardlink.schemas.audit import AuditLogResponse
from cardlink.schemas.client import (
    ClientCreate,
    ClientCreated,
    ClientDetail,
    ClientListItem,
    ClientPublicListItem,
    ClientResponse,
    ClientUpdate,
    StatusChangeRequest,
    VCardResult,
)
from cardlink.schemas.common import ApiResponse, PageMeta
from cardlink.services.client_service import ClientService, UploadedPhoto, get_client_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/clients", tags=["Clients"])


def get_actor(x_actor_email: Optional[str] = Header(default=None)) -> str:
    """Acting admin identity from X-Actor-Email; 'admin' when absent."""
    return (x_actor_email or "").strip() or "admin"


def _public_item(client: Client) -> ClientPublicListItem:
    return ClientPublicListItem(
        id=client.id,
        full_name=client.full_name,
        company=client.company,
        email1=client.email1,
        phone1=client.phone1,
        status=client.status,
        photo_url=client.photo_url,
        created_at=client.created_at,
        vcard_created_date=client.created_at.date().isoformat(),
    )


# ── Public ────────────────────────────────────────────────────────────────


@router.post(
    "",
    status_code=201,
    response_model=ApiResponse[ClientCreated],
    summary="Submit a new client (public form)",
)
async def create_client(
    payload: ClientCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    service: ClientService = Depends(get_client_service),
) -> ApiResponse[ClientCreated]:
    """
    Create a pending client from the public form.

    The admin notification email runs after the response is sent; a failed
    initial PDF render is reported in `warnings`.
    """
    client, warnings = await service.create(db, payload, actor="public")
    background_tasks.add_task(service.notify_new_submission, client)
    return ApiResponse(
        data=ClientCreated(id=client.id, slug=client.slug, status=client.status, warnings=warnings),
        message="Client created successfully",
    )


@router.get(
    "/all",
    response_model=ApiResponse[List[ClientPublicListItem]],
    summary="Lightweight public listing",
)
async def list_all_clients(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db_session),
    service: ClientService = Depends(get_client_service),
) -> ApiResponse[List[ClientPublicListItem]]:
    clients = await service.list_public(db, skip=skip, limit=limit)
    return ApiResponse(
        data=[_public_item(c) for c in clients],
        message=f"{len(clients)} clients",
    )


# ── Admin ─────────────────────────────────────────────────────────────────


@router.get(
    "",
    response_model=ApiResponse[List[ClientListItem]],
    summary="Admin listing with search, status filter and pagination",
)
async def list_clients(
    response: Response,
    q: Optional[str] = Query(default=None, description="Substring match on name, company, email, phone"),
    status: Optional[str] = Query(default=None, description="Exact status filter"),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
    service: ClientService = Depends(get_client_service),
) -> ApiResponse[List[ClientListItem]]:
    clients, total = await service.list_clients(db, q=q, status=status, skip=skip, limit=limit)
    response.headers["X-Total-Count"] = str(total)
    return ApiResponse(
        data=[ClientListItem.model_validate(c) for c in clients],
        message=f"{len(clients)} of {total} clients",
        meta=PageMeta(total=total, skip=skip, limit=limit).model_dump(),
    )


@router.get(
    "/export",
    summary="Export clients as CSV",
    response_class=Response,
    responses={200: {"content": {"text/csv": {}}}},
)
async def export_clients(
    actor: str = Depends(get_actor),
    db: AsyncSession = Depends(get_db_session),
    service: ClientService = Depends(get_client_service),
) -> Response:
    content = await service.export_csv(db, actor=actor)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="clients.csv"'},
    )


@router.get(
    "/{client_id}",
    response_model=ApiResponse[ClientDetail],
    summary="Get one client, optionally with recent audit entries",
)
async def get_client(
    client_id: UUID,
    include_logs: bool = Query(default=False),
    db: AsyncSession = Depends(get_db_session),
    service: ClientService = Depends(get_client_service),
) -> ApiResponse[ClientDetail]:
    client, logs = await service.get(db, client_id, include_logs=include_logs)
    detail = ClientDetail(
        **ClientResponse.model_validate(client).model_dump(),
        logs=[AuditLogResponse.model_validate(entry) for entry in logs],
    )
    return ApiResponse(data=detail, message="Client retrieved")


@router.put(
    "/{client_id}",
    response_model=ApiResponse[ClientResponse],
    summary="Update client fields (JSON)",
)
async def update_client(
    client_id: UUID,
    payload: ClientUpdate,
    actor: str = Depends(get_actor),
    db: AsyncSession = Depends(get_db_session),
    service: ClientService = Depends(get_client_service),
) -> ApiResponse[ClientResponse]:
    client = await service.update(db, client_id, payload, actor=actor)
    return ApiResponse(data=ClientResponse.model_validate(client), message="Client updated successfully")


@router.put(
    "/{client_id}/form",
    response_model=ApiResponse[ClientResponse],
    summary="Update client fields with an optional photo (multipart)",
)
async def update_client_form(
    client_id: UUID,
    data: str = Form(default="{}", description="JSON object with the fields to update"),
    photo: Optional[UploadFile] = File(default=None, description="Replacement photo (PNG/JPEG)"),
    actor: str = Depends(get_actor),
    db: AsyncSession = Depends(get_db_session),
    service: ClientService = Depends(get_client_service),
) -> ApiResponse[ClientResponse]:
    try:
        payload = ClientUpdate.model_validate_json(data or "{}")
    except pydantic.ValidationError as e:
        raise ValidationError(
            message="Invalid client data.",
            field="data",
            context={"errors": e.errors(include_url=False, include_context=False)},
        )

    uploaded = None
    if photo is not None and photo.filename:
        try:
            uploaded = UploadedPhoto(
                filename=photo.filename,
                content=await photo.read(),
                content_length=photo.size,
            )
        finally:
            await photo.close()

    client = await service.update(db, client_id, payload, actor=actor, photo=uploaded)
    return ApiResponse(data=ClientResponse.model_validate(client), message="Client updated successfully")


@router.post(
    "/{client_id}/vcard",
    response_model=ApiResponse[VCardResult],
    summary="Generate vCard and QR code, activate the client",
)
async def generate_vcard(
    client_id: UUID,
    actor: str = Depends(get_actor),
    db: AsyncSession = Depends(get_db_session),
    service: ClientService = Depends(get_client_service),
) -> ApiResponse[VCardResult]:
    result = await service.generate_vcard_artifacts(db, client_id, actor=actor)
    message = "vCard generated successfully"
    if result.email_status != "sent":
        message = "vCard generated; notification email not sent"
    return ApiResponse(data=result, message=message)


@router.get(
    "/{client_id}/pdf",
    summary="Stream the client PDF (regenerated when unavailable)",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}, 503: {"description": "Render slot busy"}},
)
async def get_client_pdf(
    client_id: UUID,
    actor: str = Depends(get_actor),
    db: AsyncSession = Depends(get_db_session),
    service: ClientService = Depends(get_client_service),
) -> Response:
    content, filename = await service.get_pdf(db, client_id, actor=actor)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


@router.put(
    "/{client_id}/status/{status}",
    response_model=ApiResponse[ClientResponse],
    summary="Change client status (notes required)",
)
async def change_client_status(
    client_id: UUID,
    status: str,
    body: Optional[StatusChangeRequest] = None,
    actor: str = Depends(get_actor),
    db: AsyncSession = Depends(get_db_session),
    service: ClientService = Depends(get_client_service),
) -> ApiResponse[ClientResponse]:
    notes = body.notes if body else None
    client = await service.change_status(db, client_id, status, notes, actor=actor)
    return ApiResponse(
        data=ClientResponse.model_validate(client),
        message=f"Client status changed to '{client.status}'",
    )


@router.delete(
    "/{client_id}",
    response_model=ApiResponse[ClientResponse],
    summary="Soft-delete a client (notes required)",
)
async def delete_client(
    client_id: UUID,
    body: Optional[StatusChangeRequest] = None,
    actor: str = Depends(get_actor),
    db: AsyncSession = Depends(get_db_session),
    service: ClientService = Depends(get_client_service),
) -> ApiResponse[ClientResponse]:
    notes = body.notes if body else None
    client = await service.soft_delete(db, client_id, notes, actor=actor)
    return ApiResponse(data=ClientResponse.model_validate(client), message="Client deleted")
