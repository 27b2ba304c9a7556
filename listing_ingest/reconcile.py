"""Orphan cleanup sweep.

Retries object deletes queued by failed compensation, and removes listing
rows that never received images (phase 2 failed and the compensating
delete failed too).

Run once with: python -m listing_ingest.reconcile
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Tuple

from loguru import logger

from listing_ingest.records import ListingStore
from listing_ingest.storage import ObjectStoreGateway


async def sweep_pending_deletions(store: ListingStore, gateway: ObjectStoreGateway, limit: int = 100) -> Tuple[int, int]:
    """Retry queued deletes; return (completed, still_failing)."""
    completed = failing = 0
    for pending in await store.pending_deletions(limit):
        try:
            await gateway.delete(pending.object_key)
        except Exception as e:
            failing += 1
            await store.mark_deletion(pending.id, error=str(e))
            continue
        completed += 1
        await store.mark_deletion(pending.id)

    if completed or failing:
        logger.info(f"Deletion sweep: {completed} completed, {failing} still failing")
    return completed, failing


async def sweep_orphan_listings(store: ListingStore, created_before: datetime) -> int:
    """Delete image-less listing rows older than the cutoff."""
    removed = await store.delete_orphan_listings(created_before)
    if removed:
        logger.warning(f"Removed {len(removed)} orphan listings: {removed}")
    return len(removed)


async def main() -> None:
    from listing_ingest.services import build_services
    from listing_ingest.settings import settings

    services = build_services(settings)
    try:
        await sweep_pending_deletions(services.store, services.gateway)
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=settings.ORPHAN_LISTING_GRACE_SECONDS)
        await sweep_orphan_listings(services.store, cutoff)
    finally:
        await services.close()


if __name__ == "__main__":
    asyncio.run(main())
