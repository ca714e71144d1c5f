"""
CardLink Backend — Media Pipeline
===================================

What:  Uploads artifacts (photo, PDF, vCard file, QR image) to object storage
       and fetches stored artifacts back with retry.
Why:   Every lifecycle operation that touches storage needs the same two
       guarantees: an upload either yields a public URL or raises
       MediaUploadError, and a fetch either yields bytes or raises
       MediaFetchError after a bounded number of attempts.
How:   Cloudinary's SDK is synchronous, so uploads run in a worker thread
       via asyncio.to_thread. Fetches use httpx with a per-attempt timeout
       and tenacity exponential backoff.
Who:   ClientService (vCard generation, photo replacement) and PdfService.

Photo Upload Security:
    1. Extension check:  jpg / jpeg / png only
    2. Size check:       Content-Length first, then the actual byte count
    3. MIME type check:  libmagic inspects the header bytes, so a renamed
                         file is rejected even with an allowed extension
    4. Storage name:     random UUID, no user input in the public id
"""

import asyncio
import enum
import io
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

import cloudinary
import cloudinary.uploader
import httpx
import magic
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cardlink.config import settings
from cardlink.exceptions import MediaFetchError, MediaUploadError, ValidationError

logger = logging.getLogger(__name__)

# ── Allowed Photo Types ───────────────────────────────────────────────────
ALLOWED_PHOTO_MIME_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
}
ALLOWED_PHOTO_EXTENSIONS = {".png", ".jpg", ".jpeg"}


class ArtifactKind(str, enum.Enum):
    """The four artifact kinds, each with its own storage folder."""

    PHOTO = "photo"
    PDF = "pdf"
    VCARD = "vcard"
    QR = "qr"

    @property
    def folder(self) -> str:
        return {
            ArtifactKind.PHOTO: settings.photo_folder,
            ArtifactKind.PDF: settings.pdf_folder,
            ArtifactKind.VCARD: settings.vcard_folder,
            ArtifactKind.QR: settings.qr_folder,
        }[self]

    @property
    def resource_type(self) -> str:
        # Images get transformations and format detection; documents are stored as-is
        if self in (ArtifactKind.PHOTO, ArtifactKind.QR):
            return "image"
        return "raw"


class MediaService:
    """
    Object-storage boundary.

    Args:
        transport:     httpx transport override for fetches (tests use MockTransport)
        max_attempts:  Fetch retry budget (default FETCH_MAX_ATTEMPTS)
        timeout:       Per-attempt fetch timeout in seconds
        backoff_min / backoff_max: exponential backoff bounds in seconds
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
        backoff_min: Optional[float] = None,
        backoff_max: Optional[float] = None,
    ):
        self.transport = transport
        self.max_attempts = max_attempts or settings.fetch_max_attempts
        self.timeout = timeout or settings.fetch_timeout_seconds
        self.backoff_min = settings.fetch_backoff_min if backoff_min is None else backoff_min
        self.backoff_max = settings.fetch_backoff_max if backoff_max is None else backoff_max

        if self.is_configured:
            cloudinary.config(
                cloud_name=settings.cloudinary_cloud_name,
                api_key=settings.cloudinary_api_key,
                api_secret=settings.cloudinary_api_secret,
                secure=True,
            )
            logger.info("MediaService initialized for cloud '%s'", settings.cloudinary_cloud_name)
        else:
            logger.warning("Cloudinary credentials not configured; uploads will fail")

    @property
    def is_configured(self) -> bool:
        return bool(
            settings.cloudinary_cloud_name
            and settings.cloudinary_api_key
            and settings.cloudinary_api_secret
        )

    # ── Upload ────────────────────────────────────────────────────────────

    async def upload(self, content: bytes, public_id: str, kind: ArtifactKind) -> str:
        """
        Upload `content` under `<kind folder>/<public_id>` and return its HTTPS URL.

        Re-uploading the same public id overwrites the stored object, so
        regenerated artifacts keep a stable address.

        Raises:
            MediaUploadError on any storage failure, including a response
            without a URL.
        """
        options: Dict[str, Any] = {
            "folder": kind.folder,
            "public_id": public_id,
            "resource_type": kind.resource_type,
            "overwrite": True,
            "invalidate": True,
        }
        try:
            result = await asyncio.to_thread(
                cloudinary.uploader.upload, io.BytesIO(content), **options
            )
        except Exception as e:
            logger.error(
                "Upload of %s '%s' to folder '%s' failed: %s",
                kind.value, public_id, kind.folder, str(e),
            )
            raise MediaUploadError(
                message=f"Failed to upload {kind.value} to storage.",
                context={"kind": kind.value, "public_id": public_id, "error": str(e)},
            )

        url = (result or {}).get("secure_url")
        if not url:
            logger.error("Upload of %s '%s' returned no URL: %r", kind.value, public_id, result)
            raise MediaUploadError(
                message=f"Failed to upload {kind.value} to storage.",
                context={"kind": kind.value, "public_id": public_id},
            )

        logger.info("Uploaded %s '%s' (%d bytes)", kind.value, public_id, len(content))
        return url

    # ── Fetch with retry ──────────────────────────────────────────────────

    async def fetch(self, url: str) -> bytes:
        """
        Download a stored artifact.

        Each attempt is bounded by `timeout`; transport errors, timeouts and
        non-2xx responses are retried with exponential backoff until the
        attempt budget is spent.

        Raises:
            MediaFetchError once every attempt has failed.
        """
        attempts = 0
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self.transport,
                follow_redirects=True,
            ) as client:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.max_attempts),
                    wait=wait_exponential(min=self.backoff_min, max=self.backoff_max),
                    retry=retry_if_exception_type((httpx.HTTPError, asyncio.TimeoutError)),
                    before_sleep=before_sleep_log(logger, logging.WARNING),
                ):
                    with attempt:
                        attempts = attempt.retry_state.attempt_number
                        # httpx timeouts are per phase; this caps the whole attempt
                        response = await asyncio.wait_for(client.get(url), timeout=self.timeout)
                        response.raise_for_status()
                        return response.content
        except RetryError as e:
            cause = e.last_attempt.exception()
            logger.error("Fetch of %s failed after %d attempts: %s", url, attempts, cause)
            raise MediaFetchError(
                context={"url": url, "attempts": attempts, "error": str(cause)},
            )
        # AsyncRetrying always returns or raises inside the loop
        raise MediaFetchError(context={"url": url, "attempts": attempts})

    # ── Photo validation ──────────────────────────────────────────────────

    def validate_photo_extension(self, filename: str) -> str:
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_PHOTO_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_PHOTO_EXTENSIONS))}"
                ),
                field="photo",
                context={"extension": ext},
            )
        return ext

    def validate_photo_size(self, content_length: Optional[int], actual_size: int) -> None:
        """Checks the declared Content-Length first, then the bytes actually received."""
        max_mb = settings.max_photo_size / (1024 * 1024)

        if content_length and content_length > settings.max_photo_size:
            raise ValidationError(
                message=f"Photo exceeds maximum size of {max_mb:.0f}MB.",
                field="photo",
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )
        if actual_size == 0:
            raise ValidationError(message="Photo file is empty.", field="photo")
        if actual_size > settings.max_photo_size:
            raise ValidationError(
                message=f"Photo ({actual_size / (1024 * 1024):.1f}MB) exceeds maximum size of {max_mb:.0f}MB.",
                field="photo",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def validate_photo_mime_type(self, content: bytes) -> str:
        """Detects the real type from the header bytes with libmagic."""
        mime_type = magic.from_buffer(content[:2048], mime=True)
        if mime_type not in ALLOWED_PHOTO_MIME_TYPES:
            raise ValidationError(
                message=(
                    f"File content type '{mime_type}' is not supported. "
                    "The photo must be a valid PNG or JPEG image."
                ),
                field="photo",
                context={"detected_mime": mime_type},
            )
        return mime_type

    async def upload_photo(
        self,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> str:
        """Validate (cheapest check first) and upload a profile photo; returns its URL."""
        self.validate_photo_extension(filename)
        self.validate_photo_size(content_length, len(content))
        self.validate_photo_mime_type(content)
        return await self.upload(content, uuid.uuid4().hex, ArtifactKind.PHOTO)


# ── Singleton Instance ────────────────────────────────────────────────────
media_service = MediaService()
