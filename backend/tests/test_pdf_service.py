"""
CardLink Backend — PDF Service Tests
======================================

What we test:
    ✅ reportlab produces a PDF with user text safely escaped
    ✅ render_and_upload stores under <slug>.pdf in the PDF folder
    ✅ Stored PDF is served when it can be fetched
    ✅ Fetch failure falls back to regeneration
    ✅ Render or upload failure becomes PdfRenderError
"""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from cardlink.exceptions import MediaFetchError, MediaUploadError, PdfRenderError
from cardlink.services.media_service import ArtifactKind
from cardlink.services.pdf_service import render_client_pdf


def make_client(**overrides):
    fields = {
        "id": uuid.uuid4(),
        "slug": "jane-doe",
        "full_name": "Jane <Doe> & Co",
        "title": "Engineer",
        "company": "Acme",
        "phone1": "555-1000", "phone2": None, "phone3": None,
        "email1": "jane@x.com", "email2": None, "email3": None,
        "business_website": None, "portfolio_website": None,
        "address": "1 Main St\nSpringfield",
        "bio": "Builds <b>things</b>",
        "working_hours": {"mon_fri_start": "09:00", "mon_fri_end": "17:00"},
        "social_links": {"linkedin": "https://l.in/jane"},
        "pdf_url": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestRenderClientPdf:

    def test_produces_pdf_bytes(self):
        content = render_client_pdf(make_client(), profile_url="https://cards.test/profile/jane-doe")

        assert content.startswith(b"%PDF")
        assert len(content) > 1000

    def test_minimal_client(self):
        client = make_client(
            title=None, company=None, address=None, bio=None,
            working_hours={}, social_links={},
        )
        assert render_client_pdf(client).startswith(b"%PDF")


class TestRenderAndUpload:

    @pytest.mark.asyncio
    async def test_uploads_under_slug(self, pdf, fake_media):
        content, url = await pdf.render_and_upload(make_client())

        assert content.startswith(b"%PDF")
        assert url.endswith("/jane-doe.pdf")
        args = fake_media.upload.await_args.args
        assert args[1] == "jane-doe.pdf"
        assert args[2] is ArtifactKind.PDF

    @pytest.mark.asyncio
    async def test_upload_failure_is_render_error(self, pdf, fake_media):
        fake_media.upload.side_effect = MediaUploadError()

        with pytest.raises(PdfRenderError):
            await pdf.render_and_upload(make_client())

    @pytest.mark.asyncio
    async def test_render_failure_is_render_error(self, pdf, fake_media):
        with patch("cardlink.services.pdf_service.render_client_pdf", side_effect=RuntimeError("font")):
            with pytest.raises(PdfRenderError):
                await pdf.render_and_upload(make_client())

        fake_media.upload.assert_not_awaited()


class TestFetchOrRegenerate:

    @pytest.mark.asyncio
    async def test_stored_pdf_served(self, pdf, fake_media):
        client = make_client(pdf_url="https://cdn.test/pdfs/jane-doe.pdf")

        outcome = await pdf.fetch_or_regenerate(client)

        assert outcome.content == b"%PDF-1.4 stored"
        assert outcome.regenerated is False
        assert outcome.url == client.pdf_url
        fake_media.upload.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_failure_regenerates(self, pdf, fake_media):
        fake_media.fetch.side_effect = MediaFetchError()
        client = make_client(pdf_url="https://cdn.test/pdfs/gone.pdf")

        outcome = await pdf.fetch_or_regenerate(client)

        assert outcome.regenerated is True
        assert outcome.content.startswith(b"%PDF")
        fake_media.upload.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_url_regenerates_without_fetch(self, pdf, fake_media):
        outcome = await pdf.fetch_or_regenerate(make_client())

        assert outcome.regenerated is True
        fake_media.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_regeneration_failure_propagates(self, pdf, fake_media):
        fake_media.fetch.side_effect = MediaFetchError()
        fake_media.upload = AsyncMock(side_effect=MediaUploadError())

        with pytest.raises(PdfRenderError):
            await pdf.fetch_or_regenerate(make_client(pdf_url="https://cdn.test/pdfs/gone.pdf"))
