"""
CardLink Backend — API Route Integration Tests
================================================

What we test:
    ✅ Every response uses the {success, data, message, meta} envelope
    ✅ Create → 201; bad input → 400; unknown id → 404
    ✅ Upload failure → 502; busy render slot → 503 with Retry-After
    ✅ Status change and delete take notes in the body
    ✅ PDF streaming, vCard redirect, CSV export, audit listing
    ✅ Submission rate limit → 429 in the envelope
    ✅ Health check
"""

import asyncio
import json
import uuid
from unittest.mock import MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from cardlink.config import settings
from cardlink.database import get_db_session
from cardlink.exceptions import MediaUploadError
from cardlink.services.client_service import get_client_service


async def create_jane(test_client, jane_data):
    response = await test_client.post("/api/clients", json=jane_data)
    assert response.status_code == 201
    return response.json()["data"]


class TestCreateEndpoint:

    @pytest.mark.asyncio
    async def test_created(self, test_client, jane_data, fake_email):
        response = await test_client.post("/api/clients", json=jane_data)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["slug"] == "jane-doe"
        assert body["data"]["status"] == "pending"
        assert body["data"]["warnings"] == []
        fake_email.send_new_submission.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_keys_ignored(self, test_client, jane_data):
        response = await test_client.post(
            "/api/clients", json={**jane_data, "status": "active", "is_admin": True}
        )

        assert response.status_code == 201
        assert response.json()["data"]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_missing_contact_is_400(self, test_client):
        response = await test_client.post(
            "/api/clients", json={"full_name": "Jane Doe", "company": "Acme"}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["data"] is None
        assert body["meta"]["error"] == "validation_error"
        assert body["meta"]["request_id"]

    @pytest.mark.asyncio
    async def test_bad_email_is_400(self, test_client, jane_data):
        response = await test_client.post("/api/clients", json={**jane_data, "email1": "not-an-email"})

        assert response.status_code == 400
        errors = response.json()["meta"]["details"]["errors"]
        assert errors[0]["field"] == "email1"


class TestListEndpoints:

    @pytest.mark.asyncio
    async def test_admin_listing_with_total(self, test_client, jane_data):
        await create_jane(test_client, jane_data)
        await create_jane(test_client, {**jane_data, "full_name": "John Roe"})

        response = await test_client.get("/api/clients", params={"q": "john", "limit": 10})

        assert response.status_code == 200
        assert response.headers["X-Total-Count"] == "1"
        body = response.json()
        assert body["meta"] == {"total": 1, "skip": 0, "limit": 10}
        assert body["data"][0]["full_name"] == "John Roe"

    @pytest.mark.asyncio
    async def test_invalid_status_filter(self, test_client):
        response = await test_client.get("/api/clients", params={"status": "archived"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_public_listing(self, test_client, jane_data):
        created = await create_jane(test_client, jane_data)

        response = await test_client.get("/api/clients/all")

        item = response.json()["data"][0]
        assert item["id"] == created["id"]
        assert len(item["vcard_created_date"]) == 10
        assert "history" not in item


class TestDetailAndUpdate:

    @pytest.mark.asyncio
    async def test_get_unknown_is_404(self, test_client):
        response = await test_client.get(f"/api/clients/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["meta"]["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_malformed_id_is_400(self, test_client):
        response = await test_client.get("/api/clients/not-a-uuid")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_get_with_logs(self, test_client, jane_data):
        created = await create_jane(test_client, jane_data)

        response = await test_client.get(
            f"/api/clients/{created['id']}", params={"include_logs": "true"}
        )

        data = response.json()["data"]
        assert data["history"][0]["action"] == "CLIENT_CREATED"
        assert data["logs"][0]["action"] == "CLIENT_CREATED"

    @pytest.mark.asyncio
    async def test_update_json(self, test_client, jane_data):
        created = await create_jane(test_client, jane_data)

        response = await test_client.put(
            f"/api/clients/{created['id']}",
            json={"title": "CTO", "working_hours": {"mon_fri_start": "09:00"}},
            headers={"X-Actor-Email": "ops@cards.test"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "processed"
        assert data["title"] == "CTO"
        assert data["working_hours"] == {"mon_fri_start": "09:00"}
        assert data["history"][-1]["actor"] == "ops@cards.test"

    @pytest.mark.asyncio
    async def test_update_multipart_with_photo(self, test_client, jane_data, fake_media):
        created = await create_jane(test_client, jane_data)

        response = await test_client.put(
            f"/api/clients/{created['id']}/form",
            data={"data": json.dumps({"bio": "Hello"})},
            files={"photo": ("me.png", b"png-bytes", "image/png")},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["bio"] == "Hello"
        assert data["photo_url"] == "https://cdn.test/photos/photo.jpg"
        assert fake_media.upload_photo.await_args.args[0] == "me.png"

    @pytest.mark.asyncio
    async def test_update_multipart_bad_json(self, test_client, jane_data):
        created = await create_jane(test_client, jane_data)

        response = await test_client.put(
            f"/api/clients/{created['id']}/form", data={"data": "{not json"}
        )

        assert response.status_code == 400
        assert response.json()["meta"]["details"]["field"] == "data"


class TestVCardEndpoint:

    @pytest.mark.asyncio
    async def test_generate_and_redirect(self, test_client, jane_data):
        created = await create_jane(test_client, jane_data)

        response = await test_client.post(f"/api/clients/{created['id']}/vcard")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "active"
        assert data["email_status"] == "sent"

        redirect = await test_client.get(f"/vcard/{created['id']}")
        assert redirect.status_code == 302
        assert redirect.headers["location"] == data["vcard_url"]

    @pytest.mark.asyncio
    async def test_upload_failure_is_502(self, test_client, jane_data, fake_media):
        created = await create_jane(test_client, jane_data)
        fake_media.upload.side_effect = MediaUploadError()

        response = await test_client.post(f"/api/clients/{created['id']}/vcard")

        assert response.status_code == 502
        assert response.json()["meta"]["error"] == "upload_failed"

        detail = await test_client.get(f"/api/clients/{created['id']}")
        assert detail.json()["data"]["status"] == "pending"
        assert detail.json()["data"]["vcard_url"] is None

    @pytest.mark.asyncio
    async def test_redirect_for_pending_is_404(self, test_client, jane_data):
        created = await create_jane(test_client, jane_data)

        response = await test_client.get(f"/vcard/{created['id']}")

        assert response.status_code == 404


class TestPdfEndpoint:

    @pytest.mark.asyncio
    async def test_streams_pdf(self, test_client, jane_data):
        created = await create_jane(test_client, jane_data)

        response = await test_client.get(f"/api/clients/{created['id']}/pdf")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert 'filename="jane-doe.pdf"' in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_busy_is_503(self, test_client, jane_data, render_gate):
        created = await create_jane(test_client, jane_data)
        release = asyncio.Event()
        entered = asyncio.Event()

        async def holder():
            async with render_gate.admit():
                entered.set()
                await release.wait()

        task = asyncio.create_task(holder())
        await entered.wait()
        try:
            response = await test_client.get(f"/api/clients/{created['id']}/pdf")
        finally:
            release.set()
            await task

        assert response.status_code == 503
        assert int(response.headers["Retry-After"]) > 0
        assert response.json()["meta"]["error"] == "service_busy"


class TestStatusAndDelete:

    @pytest.mark.asyncio
    async def test_change_status(self, test_client, jane_data):
        created = await create_jane(test_client, jane_data)

        response = await test_client.put(
            f"/api/clients/{created['id']}/status/disabled",
            json={"notes": "client requested"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "disabled"

        profile = await test_client.get("/api/public/profiles/jane-doe")
        assert profile.status_code == 404

    @pytest.mark.asyncio
    async def test_change_status_without_notes(self, test_client, jane_data):
        created = await create_jane(test_client, jane_data)

        response = await test_client.put(f"/api/clients/{created['id']}/status/disabled")

        assert response.status_code == 400
        assert response.json()["meta"]["details"]["field"] == "notes"

    @pytest.mark.asyncio
    async def test_illegal_transition_is_400(self, test_client, jane_data):
        created = await create_jane(test_client, jane_data)
        await test_client.post(f"/api/clients/{created['id']}/vcard")

        response = await test_client.put(
            f"/api/clients/{created['id']}/status/rejected",
            json={"notes": "changed my mind"},
        )

        assert response.status_code == 400
        assert response.json()["meta"]["details"]["current_status"] == "active"

    @pytest.mark.asyncio
    async def test_soft_delete(self, test_client, jane_data):
        created = await create_jane(test_client, jane_data)

        response = await test_client.request(
            "DELETE", f"/api/clients/{created['id']}", json={"notes": "duplicate entry"}
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "deleted"

        listing = await test_client.get("/api/clients")
        assert listing.json()["meta"]["total"] == 0


class TestPublicEndpoints:

    @pytest.mark.asyncio
    async def test_profile_by_slug(self, test_client, jane_data):
        await create_jane(test_client, jane_data)

        response = await test_client.get("/api/public/profiles/jane-doe")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["full_name"] == "Jane Doe"
        assert "history" not in data
        assert "status" not in data

    @pytest.mark.asyncio
    async def test_upload_photo(self, test_client):
        response = await test_client.post(
            "/api/upload-photo",
            files={"photo": ("me.jpg", b"jpeg-bytes", "image/jpeg")},
        )

        assert response.status_code == 201
        assert response.json()["data"]["photo_url"] == "https://cdn.test/photos/photo.jpg"


class TestExportAndLogs:

    @pytest.mark.asyncio
    async def test_csv_export(self, test_client, jane_data):
        await create_jane(test_client, jane_data)

        response = await test_client.get("/api/clients/export")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("id,slug,full_name")
        assert len(lines) == 2

    @pytest.mark.asyncio
    async def test_logs_listing(self, test_client, jane_data):
        created = await create_jane(test_client, jane_data)
        await test_client.put(f"/api/clients/{created['id']}", json={"title": "CTO"})

        response = await test_client.get("/api/logs", params={"client_id": created["id"]})

        body = response.json()
        assert body["meta"]["total"] == 2
        assert [e["action"] for e in body["data"]] == ["CLIENT_UPDATED", "CLIENT_CREATED"]


class TestRateLimit:

    @pytest.mark.asyncio
    async def test_submission_limit(self, session_factory, service, jane_data, monkeypatch):
        from cardlink.main import create_app

        monkeypatch.setattr(settings, "rate_limit_requests", 2)
        app = create_app()

        async def override_db_session():
            async with session_factory() as session:
                yield session

        app.dependency_overrides[get_db_session] = override_db_session
        app.dependency_overrides[get_client_service] = lambda: service

        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            statuses = [
                (await client.post("/api/clients", json=jane_data)).status_code
                for _ in range(3)
            ]
            limited = await client.post("/api/clients", json=jane_data)
            reads = await client.get("/api/clients")

        assert statuses == [201, 201, 429]
        assert limited.status_code == 429
        assert limited.json()["success"] is False
        assert limited.json()["meta"]["error"] == "rate_limit_exceeded"
        assert "Retry-After" in limited.headers
        assert reads.status_code == 200


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["database"] == "connected"
        assert body["data"]["storage"] == "unconfigured"
        assert body["data"]["status"] == "degraded"
        assert body["data"]["pdf_gate"] == "idle"

    @pytest.mark.asyncio
    async def test_unreachable_database_is_503(self, test_client):
        engine = MagicMock()
        engine.connect.side_effect = OSError("connection refused")

        with patch("cardlink.routes.health.engine", engine):
            response = await test_client.get("/health")

        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["data"]["status"] == "unhealthy"
        assert body["data"]["database"] == "disconnected"

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"

    @pytest.mark.asyncio
    async def test_unsafe_request_id_replaced(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "bad id\twith spaces"})

        assert response.headers["X-Request-ID"] != "bad id\twith spaces"
        assert len(response.headers["X-Request-ID"]) == 8
