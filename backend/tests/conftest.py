"""
CardLink Backend — Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets its own temporary SQLite database (aiosqlite), an
       AuditService bound to it, fakes for object storage and email, and a
       ClientService wired to all of them.

Fixture Hierarchy (all function-scoped):
    db_engine ── session_factory ─┬─ db_session
                                  └─ audit
    fake_media, fake_email, render_gate ── pdf
    service (ClientService with the fakes)
    test_client (HTTPX AsyncClient over a fresh app with overrides)
"""

import os
import tempfile
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

# Override settings BEFORE any cardlink import
os.environ["DATABASE_URL"] = (
    f"sqlite+aiosqlite:///{tempfile.mkdtemp(prefix='cardlink_test_')}/health.db"
)
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["GENERATE_PDF_ON_CREATE"] = "false"
os.environ["PDF_GATE_TIMEOUT_MS"] = "200"
os.environ["FETCH_BACKOFF_MIN"] = "0"
os.environ["FETCH_BACKOFF_MAX"] = "0"
os.environ["APP_BASE_URL"] = "https://cards.test"
os.environ["CLOUDINARY_CLOUD_NAME"] = ""
os.environ["SMTP_HOST"] = ""
os.environ["ADMIN_EMAIL"] = ""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cardlink.database import Base, get_db_session
from cardlink.models import AuditLog, Client  # noqa: F401
from cardlink.schemas.client import ClientCreate
from cardlink.services.audit_service import AuditService
from cardlink.services.client_service import ClientService, get_client_service
from cardlink.services.email_service import EmailResult, EmailService
from cardlink.services.media_service import ArtifactKind, MediaService
from cardlink.services.pdf_service import PdfRenderGate, PdfService


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def audit(session_factory):
    return AuditService(session_factory=session_factory)


# ══════════════════════════════════════════════════════════════════════════
# External collaborators
# ══════════════════════════════════════════════════════════════════════════


def fake_upload_url(content: bytes, public_id: str, kind: ArtifactKind) -> str:
    return f"https://cdn.test/{kind.folder}/{public_id}"


@pytest.fixture
def fake_media():
    """
    Object storage stand-in.

    upload() answers with a deterministic URL per folder and public id;
    set `fake_media.upload.side_effect` to an exception to simulate failure.
    """
    media = MagicMock(spec=MediaService)
    media.is_configured = True
    media.upload = AsyncMock(side_effect=fake_upload_url)
    media.upload_photo = AsyncMock(return_value="https://cdn.test/photos/photo.jpg")
    media.fetch = AsyncMock(return_value=b"%PDF-1.4 stored")
    return media


@pytest.fixture
def fake_email():
    email = MagicMock(spec=EmailService)
    email.send_vcard_ready = AsyncMock(
        return_value=EmailResult(status="sent", recipient="jane@x.com")
    )
    email.send_new_submission = AsyncMock(return_value=EmailResult(status="skipped"))
    return email


@pytest.fixture
def render_gate():
    return PdfRenderGate(timeout_ms=200)


@pytest.fixture
def pdf(render_gate, fake_media):
    return PdfService(gate=render_gate, media=fake_media)


@pytest.fixture
def service(fake_media, pdf, fake_email, audit):
    return ClientService(media=fake_media, pdf=pdf, email=fake_email, audit=audit)


# ══════════════════════════════════════════════════════════════════════════
# Sample data
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def jane_data():
    return {
        "full_name": "Jane Doe",
        "phone1": "555-1000",
        "email1": "jane@x.com",
        "company": "Acme",
    }


@pytest_asyncio.fixture
async def jane(service, db_session, jane_data) -> Client:
    """A freshly created pending client."""
    client, _ = await service.create(db_session, ClientCreate(**jane_data))
    return client


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════


@pytest_asyncio.fixture
async def test_client(session_factory, service):
    """
    HTTPX AsyncClient talking to a fresh app instance.

    The request session and the ClientService are overridden to use this
    test's database and fakes. App exceptions are turned into responses
    (the 500 handler) instead of propagating into the test.
    """
    from cardlink.main import create_app

    app = create_app()

    async def override_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_client_service] = lambda: service

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
