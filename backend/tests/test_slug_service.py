"""
CardLink Backend — Slug Service Tests
=======================================

What we test:
    ✅ Base slug from a display name
    ✅ Numeric suffixes on collision, then a random suffix
    ✅ A record's own slug is not a collision (exclude_id)
"""

import re

import pytest

from cardlink.models.client import Client
from cardlink.services.slug_service import base_slug, generate_unique_slug


async def add_client(db, slug: str) -> Client:
    client = Client(full_name="Jane Doe", slug=slug, phone1="1")
    db.add(client)
    await db.commit()
    return client


class TestBaseSlug:

    def test_simple_name(self):
        assert base_slug("Jane Doe") == "jane-doe"

    def test_accents_and_punctuation(self):
        assert base_slug("  José  O'Brien! ") == "jose-o-brien"

    def test_unmappable_name_falls_back(self):
        assert base_slug("!!!") == "client"


class TestGenerateUniqueSlug:

    @pytest.mark.asyncio
    async def test_free_base_returned(self, db_session):
        assert await generate_unique_slug(db_session, "Jane Doe") == "jane-doe"

    @pytest.mark.asyncio
    async def test_numeric_suffix_on_collision(self, db_session):
        await add_client(db_session, "jane-doe")
        await add_client(db_session, "jane-doe-1")

        assert await generate_unique_slug(db_session, "Jane Doe") == "jane-doe-2"

    @pytest.mark.asyncio
    async def test_random_suffix_after_numeric_budget(self, db_session, monkeypatch):
        from cardlink.config import settings
        monkeypatch.setattr(settings, "slug_max_numeric_suffix", 2)
        for slug in ("jane-doe", "jane-doe-1", "jane-doe-2"):
            await add_client(db_session, slug)

        slug = await generate_unique_slug(db_session, "Jane Doe")

        assert re.fullmatch(r"jane-doe-[0-9a-f]{6}", slug)

    @pytest.mark.asyncio
    async def test_own_slug_excluded(self, db_session):
        client = await add_client(db_session, "jane-doe")

        assert await generate_unique_slug(db_session, "Jane Doe", exclude_id=client.id) == "jane-doe"
