"""Tests for engine setup and the record store schema."""
from sqlalchemy import func, select

from listing_ingest.db import normalize_database_url
from listing_ingest.models import ListingImage


def test_normalize_database_url():
    assert normalize_database_url("postgres://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
    assert normalize_database_url("postgresql://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
    assert normalize_database_url("postgresql+asyncpg://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
    assert normalize_database_url("sqlite+aiosqlite:///./x.db") == "sqlite+aiosqlite:///./x.db"


async def test_deleting_listing_cascades_to_images(services, make_payload):
    listing = await services.coordinator.submit("owner-1", make_payload(image_count=3))

    assert await services.store.delete_listing(listing.id) is True
    assert await services.store.delete_listing(listing.id) is False

    async with services.session_factory() as db:
        assert await db.scalar(select(func.count()).select_from(ListingImage)) == 0
