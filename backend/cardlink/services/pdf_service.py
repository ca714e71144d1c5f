"""
CardLink Backend — PDF Render Gate and Client PDF Rendering
=============================================================

What:  Renders a client's business-card PDF and serializes all PDF work
       through a single process-wide admission slot.
Why:   Rendering is CPU and memory heavy. Unbounded concurrency on a small
       host starves every other request, so at most one render (or stream
       of a stored PDF) runs at any instant, and a caller that cannot get
       the slot in time is told to retry instead of queuing forever.
How:   PdfRenderGate wraps an asyncio.Lock acquired under asyncio.wait_for;
       admission is an async context manager that releases on every exit
       path. The document itself is built with reportlab in a worker thread.
Who:   ClientService (Create best-effort render, GET /api/clients/{id}/pdf).

Regeneration Policy:
    A stored PDF URL is fetched first (with retry). Only when that fails is
    the PDF rendered again and re-uploaded; the caller records the new URL
    and a PDF_GENERATED_ON_DEMAND history entry.
"""

import asyncio
import io
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, List, Optional, Tuple
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer

from cardlink.config import settings
from cardlink.exceptions import CardLinkError, PdfRenderError, RenderBusyError
from cardlink.services.media_service import ArtifactKind, MediaService, media_service
from cardlink.services.qr_service import render_qr_png

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Admission Gate
# ══════════════════════════════════════════════════════════════════════════


class PdfRenderGate:
    """
    Capacity-1 admission gate with bounded wait.

    Usage:
        async with gate.admit():
            ...render or stream...

    Raises RenderBusyError when the slot is not granted within timeout_ms.
    `in_flight` never exceeds 1; `peak_in_flight` records the high-water mark.
    """

    def __init__(self, timeout_ms: Optional[int] = None):
        self.timeout_ms = timeout_ms if timeout_ms is not None else settings.pdf_gate_timeout_ms
        self._lock = asyncio.Lock()
        self.in_flight = 0
        self.peak_in_flight = 0

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def admit(self) -> AsyncIterator[None]:
        started = time.perf_counter()
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout_ms / 1000)
        except asyncio.TimeoutError:
            waited_ms = int((time.perf_counter() - started) * 1000)
            logger.warning("PDF render slot busy; rejected after %dms", waited_ms)
            raise RenderBusyError(waited_ms=waited_ms)

        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            yield
        finally:
            self.in_flight -= 1
            self._lock.release()


# ══════════════════════════════════════════════════════════════════════════
# Rendering
# ══════════════════════════════════════════════════════════════════════════


def _text(value: Optional[str]) -> str:
    # Paragraph parses a mini-markup; user text must not be read as tags
    return escape(value or "").replace("\n", "<br/>")


def render_client_pdf(client: Any, profile_url: Optional[str] = None) -> bytes:
    """
    Build the business-card PDF for a client and return its bytes.

    Synchronous and CPU bound; call through asyncio.to_thread.
    """
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        title=client.full_name or "Business Card",
        author=settings.mail_sender_name,
    )
    styles = getSampleStyleSheet()
    elements: List[Any] = []

    elements.append(Paragraph(_text(client.full_name), styles["Title"]))
    headline = " · ".join(v for v in (client.title, client.company) if v)
    if headline:
        elements.append(Paragraph(_text(headline), styles["Heading3"]))
    elements.append(Spacer(1, 12))

    contact_rows = [
        ("Phone", client.phone1), ("Phone", client.phone2), ("Phone", client.phone3),
        ("Email", client.email1), ("Email", client.email2), ("Email", client.email3),
        ("Website", client.business_website), ("Portfolio", client.portfolio_website),
        ("Address", client.address),
    ]
    for label, value in contact_rows:
        if value:
            elements.append(Paragraph(f"<b>{label}:</b> {_text(value)}", styles["Normal"]))

    if client.bio:
        elements.append(Spacer(1, 12))
        elements.append(Paragraph("About", styles["Heading2"]))
        elements.append(Paragraph(_text(client.bio), styles["Normal"]))

    hours = client.working_hours or {}
    day_ranges = [
        ("Mon - Fri", hours.get("mon_fri_start"), hours.get("mon_fri_end")),
        ("Saturday", hours.get("sat_start"), hours.get("sat_end")),
        ("Sunday", hours.get("sun_start"), hours.get("sun_end")),
    ]
    if any(start or end for _, start, end in day_ranges):
        elements.append(Spacer(1, 12))
        elements.append(Paragraph("Working Hours", styles["Heading2"]))
        for label, start, end in day_ranges:
            if start or end:
                elements.append(
                    Paragraph(f"<b>{label}:</b> {_text(start)} - {_text(end)}", styles["Normal"])
                )

    links = client.social_links or {}
    populated = [(name, url) for name, url in links.items() if url]
    if populated:
        elements.append(Spacer(1, 12))
        elements.append(Paragraph("Social", styles["Heading2"]))
        for name, url in populated:
            elements.append(Paragraph(f"<b>{_text(name.title())}:</b> {_text(url)}", styles["Normal"]))

    if profile_url:
        elements.append(Spacer(1, 18))
        elements.append(Image(io.BytesIO(render_qr_png(profile_url)), width=40 * mm, height=40 * mm))
        elements.append(Paragraph(_text(profile_url), styles["Normal"]))

    doc.build(elements)
    return buffer.getvalue()


@dataclass
class PdfOutcome:
    """Bytes to stream, the URL they live at, and whether they were just rendered."""

    content: bytes
    url: str
    regenerated: bool


class PdfService:
    """
    Renders, uploads and retrieves client PDFs.

    The gate is NOT acquired here: callers hold `gate.admit()` around the
    whole render+upload or fetch+stream so persistence of the new URL
    happens under the same admission.
    """

    def __init__(self, gate: Optional[PdfRenderGate] = None, media: Optional[MediaService] = None):
        self.gate = gate or PdfRenderGate()
        self.media = media or media_service

    async def render_and_upload(self, client: Any) -> Tuple[bytes, str]:
        """
        Render the client's PDF and store it under `<slug>.pdf`.

        Raises:
            PdfRenderError if rendering or the upload fails.
        """
        profile_url = settings.public_profile_url(client.slug, str(client.id))
        started = time.perf_counter()
        try:
            content = await asyncio.to_thread(render_client_pdf, client, profile_url)
        except Exception as e:
            logger.error("PDF render failed for client %s: %s", client.id, str(e), exc_info=True)
            raise PdfRenderError(context={"client_id": str(client.id), "error": str(e)})

        try:
            url = await self.media.upload(content, f"{client.slug}.pdf", ArtifactKind.PDF)
        except CardLinkError as e:
            raise PdfRenderError(context={"client_id": str(client.id), "error": e.message})

        logger.info(
            "PDF rendered for client %s (%d bytes, %.0fms)",
            client.id, len(content), (time.perf_counter() - started) * 1000,
        )
        return content, url

    async def fetch_or_regenerate(self, client: Any) -> PdfOutcome:
        """
        Stored PDF if it can be fetched, otherwise a freshly rendered one.

        Raises:
            PdfRenderError when regeneration also fails.
        """
        if client.pdf_url:
            try:
                content = await self.media.fetch(client.pdf_url)
                return PdfOutcome(content=content, url=client.pdf_url, regenerated=False)
            except CardLinkError as e:
                logger.warning(
                    "Stored PDF for client %s unavailable (%s); regenerating",
                    client.id, e.message,
                )

        content, url = await self.render_and_upload(client)
        return PdfOutcome(content=content, url=url, regenerated=True)


# ── Singleton Instance ────────────────────────────────────────────────────
# One gate per process: it is the only mutually exclusive state in the service
pdf_service = PdfService()
