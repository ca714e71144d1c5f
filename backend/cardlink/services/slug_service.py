"""
CardLink Backend — Slug Generation
====================================

What:  Derives a URL-safe, unique slug from a client's display name.
How:   python-slugify for the base; collisions get "-1", "-2", ... and,
       once the numeric budget is spent, a random hex suffix.
Who:   ClientService on Create, and on Update/vCard generation when a
       record somehow has no slug yet. An existing slug is never replaced.
"""

import logging
import secrets
import uuid
from typing import Optional

from slugify import slugify
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardlink.config import settings
from cardlink.models.client import Client

logger = logging.getLogger(__name__)

FALLBACK_SLUG = "client"


def base_slug(name: str) -> str:
    """'Jane Doe' → 'jane-doe'. Names with no ASCII-mappable characters fall back to 'client'."""
    return slugify(name or "", max_length=200, word_boundary=True) or FALLBACK_SLUG


def random_suffix_slug(base: str) -> str:
    return f"{base}-{secrets.token_hex(3)}"


async def _slug_taken(db: AsyncSession, slug: str, exclude_id: Optional[uuid.UUID]) -> bool:
    query = select(Client.id).where(Client.slug == slug)
    if exclude_id is not None:
        query = query.where(Client.id != exclude_id)
    result = await db.execute(query.limit(1))
    return result.first() is not None


async def generate_unique_slug(
    db: AsyncSession,
    name: str,
    exclude_id: Optional[uuid.UUID] = None,
) -> str:
    """
    Return the first free slug for `name`.

    Candidate order: base, base-1, base-2, ... base-N (N = SLUG_MAX_NUMERIC_SUFFIX),
    then base-<6 hex chars>. The unique index on clients.slug still guards
    against two requests picking the same candidate concurrently.
    """
    base = base_slug(name)
    if not await _slug_taken(db, base, exclude_id):
        return base

    for counter in range(1, settings.slug_max_numeric_suffix + 1):
        candidate = f"{base}-{counter}"
        if not await _slug_taken(db, candidate, exclude_id):
            return candidate

    logger.info("Numeric slug suffixes exhausted for '%s'; using random suffix", base)
    while True:
        candidate = random_suffix_slug(base)
        if not await _slug_taken(db, candidate, exclude_id):
            return candidate
