"""Record store access for listings, images, audit rows and the deletion outbox."""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload
from sqlalchemy.sql import func

from listing_ingest.models import AuditLog, Listing, ListingImage, PendingObjectDeletion


class ListingStore(ABC):
    """Record-store operations the coordinator depends on."""

    @abstractmethod
    async def insert_listing(self, owner_id: str, columns: Dict[str, Any]) -> str:
        """Insert and commit a listing row; return its assigned id."""

    @abstractmethod
    async def insert_images(self, listing_id: str, rows: List[Dict[str, Any]]) -> None:
        """Insert and commit all image rows of a listing in one transaction."""

    @abstractmethod
    async def delete_listing(self, listing_id: str) -> bool:
        """Delete a listing and its image rows; False if it did not exist."""

    @abstractmethod
    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        """Listing joined with its ordered images; None unless it has images."""

    @abstractmethod
    async def list_owner_listings(self, owner_id: str, status: Optional[str] = None) -> List[Listing]:
        pass

    @abstractmethod
    async def add_audit(
        self,
        *,
        owner_id: Optional[str],
        action: str,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        detail: Optional[dict] = None,
    ) -> None:
        pass

    @abstractmethod
    async def enqueue_deletions(self, keys: Iterable[str], reason: str) -> None:
        pass

    @abstractmethod
    async def pending_deletions(self, limit: int) -> List[PendingObjectDeletion]:
        pass

    @abstractmethod
    async def mark_deletion(self, deletion_id: int, error: Optional[str] = None) -> None:
        """Record a sweep attempt: completed when ``error`` is None."""

    @abstractmethod
    async def delete_orphan_listings(self, created_before: datetime) -> List[str]:
        """Delete image-less listings created before the cutoff; return their ids."""


class SqlListingStore(ListingStore):
    """SQLAlchemy implementation; every call runs in its own session."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def insert_listing(self, owner_id: str, columns: Dict[str, Any]) -> str:
        async with self.session_factory() as db:
            listing = Listing(owner_id=owner_id, **columns)
            db.add(listing)
            await db.commit()
            return listing.id

    async def insert_images(self, listing_id: str, rows: List[Dict[str, Any]]) -> None:
        async with self.session_factory() as db:
            db.add_all([ListingImage(listing_id=listing_id, **row) for row in rows])
            await db.commit()

    async def delete_listing(self, listing_id: str) -> bool:
        async with self.session_factory() as db:
            # Image rows go with it through ON DELETE CASCADE
            result = await db.execute(delete(Listing).where(Listing.id == listing_id))
            await db.commit()
            return result.rowcount > 0

    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Listing)
                .options(selectinload(Listing.images))
                .where(Listing.id == listing_id, Listing.images.any())
            )
            return result.scalar_one_or_none()

    async def list_owner_listings(self, owner_id: str, status: Optional[str] = None) -> List[Listing]:
        query = (
            select(Listing)
            .options(selectinload(Listing.images))
            .where(Listing.owner_id == owner_id, Listing.images.any())
            .order_by(Listing.created_at.desc(), Listing.id)
        )
        if status:
            query = query.where(Listing.status == status)
        async with self.session_factory() as db:
            result = await db.execute(query)
            return list(result.scalars().all())

    async def add_audit(
        self,
        *,
        owner_id: Optional[str],
        action: str,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        detail: Optional[dict] = None,
    ) -> None:
        async with self.session_factory() as db:
            db.add(AuditLog(
                owner_id=owner_id,
                action=action,
                target_type=target_type,
                target_id=target_id,
                detail=detail or {},
            ))
            await db.commit()

    async def enqueue_deletions(self, keys: Iterable[str], reason: str) -> None:
        async with self.session_factory() as db:
            db.add_all([PendingObjectDeletion(object_key=key, reason=reason) for key in keys])
            await db.commit()

    async def pending_deletions(self, limit: int) -> List[PendingObjectDeletion]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(PendingObjectDeletion)
                .where(PendingObjectDeletion.completed_at.is_(None))
                .order_by(PendingObjectDeletion.id)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def mark_deletion(self, deletion_id: int, error: Optional[str] = None) -> None:
        values = {"attempts": PendingObjectDeletion.attempts + 1, "last_error": error}
        if error is None:
            values["completed_at"] = func.now()
        async with self.session_factory() as db:
            await db.execute(
                update(PendingObjectDeletion)
                .where(PendingObjectDeletion.id == deletion_id)
                .values(**values)
            )
            await db.commit()

    async def delete_orphan_listings(self, created_before: datetime) -> List[str]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Listing.id).where(~Listing.images.any(), Listing.created_at < created_before)
            )
            ids = list(result.scalars().all())
            if ids:
                await db.execute(delete(Listing).where(Listing.id.in_(ids)))
                await db.commit()
            return ids
