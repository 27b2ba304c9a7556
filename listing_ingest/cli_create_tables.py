"""CLI script to create database tables."""
import asyncio

from listing_ingest.db import Base, create_engine
from listing_ingest.models import AuditLog, Listing, ListingImage, PendingObjectDeletion  # noqa: F401
from listing_ingest.settings import settings


async def create_tables():
    """Create all database tables."""
    engine = create_engine(settings.DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print("Tables created successfully!")


if __name__ == "__main__":
    asyncio.run(create_tables())
