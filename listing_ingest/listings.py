"""Listing record coordinator: validation, two-phase write and compensation.

A listing is persisted in two phases because the image rows need the
listing id: phase 1 inserts the listing row, phase 2 inserts one row per
pre-uploaded image. The image bytes already live in the object store, so
there is no transaction spanning both stores. When phase 2 fails the
coordinator compensates by deleting the listing row and then every object
the submission referenced. Deletes that fail are queued in the
pending-deletion outbox for ``listing_ingest.reconcile`` to retry.
"""
import asyncio
from typing import Any, Dict, Iterable, List, Optional, Set

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from listing_ingest.errors import (
    CompensationPartialFailure, FieldViolation, ListingNotFound, RateLimited,
    RecordWriteFailed, ValidationFailed
)
from listing_ingest.gate import SubmissionGate
from listing_ingest.keys import rendition_keys
from listing_ingest.models import LISTING_STATUSES
from listing_ingest.records import ListingStore
from listing_ingest.schemas import ImageAssetIn, ListingOut, ListingSubmission
from listing_ingest.storage import ObjectStoreGateway


def _field_path(loc: tuple) -> str:
    return ".".join(str(part) for part in loc) or "body"


def parse_submission(payload: Any) -> ListingSubmission:
    """Validate a raw submission, reporting every violated field at once."""
    try:
        return ListingSubmission.model_validate(payload)
    except PydanticValidationError as e:
        violations = []
        for err in e.errors():
            if err["type"] == "value_error":
                message = str(err["ctx"]["error"])
            else:
                message = err["msg"]
            violations.append(FieldViolation(_field_path(err["loc"]), message))
        raise ValidationFailed(violations) from None


def normalize_primary(images: List[ImageAssetIn]) -> List[ImageAssetIn]:
    """Ensure exactly one asset is primary.

    A single client-marked primary is kept. Otherwise the asset with the
    lowest display order wins, ties going to submission order.
    """
    marked = [i for i, image in enumerate(images) if image.is_primary]
    if len(marked) == 1:
        chosen = marked[0]
    else:
        chosen = min(range(len(images)), key=lambda i: (images[i].display_order, i))
    return [image.model_copy(update={"is_primary": i == chosen}) for i, image in enumerate(images)]


def image_columns(image: ImageAssetIn) -> Dict[str, Any]:
    return {
        "object_key": image.key,
        "url": image.url,
        "thumbnail_small_url": image.thumbnail_small_url,
        "thumbnail_medium_url": image.thumbnail_medium_url,
        "thumbnail_large_url": image.thumbnail_large_url,
        "display_order": image.display_order,
        "is_primary": image.is_primary,
        "width": image.width,
        "height": image.height,
        "byte_size": image.byte_size,
        "mime_type": image.mime_type,
        "caption": image.caption,
    }


class ListingCoordinator:
    def __init__(self, store: ListingStore, gateway: ObjectStoreGateway, gate: SubmissionGate):
        self.store = store
        self.gateway = gateway
        self.gate = gate
        self._background: Set[asyncio.Task] = set()

    async def submit(self, owner_id: str, payload: Any) -> ListingOut:
        """
        Persist a listing and its pre-uploaded images.

        Raises:
            RateLimited: The submission gate refused the owner
            ValidationFailed: With every violated field; nothing was written
            RecordWriteFailed: Either phase failed; compensation has run
        """
        decision = await self.gate.check_and_consume(owner_id)
        if not decision.allowed:
            raise RateLimited(decision.remaining, decision.reset_at)

        submission = parse_submission(payload)
        images = normalize_primary(submission.images)
        object_keys = [key for image in images for key in rendition_keys(image.key)]

        # Phase 1
        try:
            listing_id = await self.store.insert_listing(owner_id, submission.listing_columns())
        except Exception as e:
            logger.opt(exception=e).error(f"Listing insert failed for owner {owner_id}")
            await self._delete_objects(object_keys, reason="listing_insert_failed")
            raise RecordWriteFailed("Failed to create listing") from e

        # Phase 2
        try:
            await self.store.insert_images(listing_id, [image_columns(image) for image in images])
        except Exception as e:
            logger.opt(exception=e).error(f"Image insert failed for listing {listing_id}, compensating")
            await self._compensate(listing_id, object_keys)
            raise RecordWriteFailed("Failed to save images") from e

        try:
            listing = await self.store.get_listing(listing_id)
        except Exception as e:
            logger.opt(exception=e).error(f"Re-read of committed listing {listing_id} failed")
            raise RecordWriteFailed(detail=f"listing {listing_id} unreadable after write") from e
        if listing is None:
            raise RecordWriteFailed(detail=f"listing {listing_id} missing after write")

        logger.info(f"Listing {listing_id} created for owner {owner_id} with {len(images)} images")
        self._fire_and_forget(self._audit(
            owner_id, "listing_created", listing_id,
            {"status": listing.status, "image_count": len(images)},
        ))
        return ListingOut.model_validate(listing)

    async def get_listing(self, listing_id: str, viewer_id: Optional[str] = None) -> ListingOut:
        """Approved listings are public; anything else only to its owner."""
        listing = await self.store.get_listing(listing_id)
        if listing is None:
            raise ListingNotFound()
        if listing.status != "approved" and listing.owner_id != viewer_id:
            raise ListingNotFound()
        return ListingOut.model_validate(listing)

    async def list_owner_listings(self, owner_id: str, status: Optional[str] = None) -> List[ListingOut]:
        if status is not None and status not in LISTING_STATUSES:
            raise ValidationFailed([
                FieldViolation("status", f"status must be one of: {', '.join(LISTING_STATUSES)}")
            ])
        listings = await self.store.list_owner_listings(owner_id, status)
        return [ListingOut.model_validate(listing) for listing in listings]

    async def delete_listing(self, owner_id: str, listing_id: str) -> None:
        listing = await self.store.get_listing(listing_id)
        if listing is None or listing.owner_id != owner_id:
            raise ListingNotFound()

        object_keys = [key for image in listing.images for key in rendition_keys(image.object_key)]
        try:
            await self.store.delete_listing(listing_id)
        except Exception as e:
            logger.opt(exception=e).error(f"Failed to delete listing {listing_id}")
            raise RecordWriteFailed("Failed to delete listing") from e

        await self._delete_objects(object_keys, reason="listing_deleted")
        logger.info(f"Listing {listing_id} deleted by owner {owner_id}")
        self._fire_and_forget(self._audit(
            owner_id, "listing_deleted", listing_id, {"image_count": len(listing.images)},
        ))

    async def wait_for_background(self) -> None:
        """Await outstanding audit writes (used on shutdown and in tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _compensate(self, listing_id: str, object_keys: List[str]) -> None:
        listing_deleted = True
        try:
            await self.store.delete_listing(listing_id)
        except Exception as e:
            listing_deleted = False
            logger.opt(exception=e).error(f"Compensation could not delete listing {listing_id}")

        failed_keys = await self._delete_objects(object_keys, reason="compensation")
        if not listing_deleted or failed_keys:
            logger.error(str(CompensationPartialFailure(listing_id, listing_deleted, failed_keys)))
        else:
            logger.info(f"Compensated listing {listing_id}: row and {len(object_keys)} objects removed")

    async def _delete_objects(self, keys: Iterable[str], reason: str) -> List[str]:
        failed = await self.gateway.delete_many(keys)
        if failed:
            try:
                await self.store.enqueue_deletions(failed, reason)
            except Exception as e:
                logger.opt(exception=e).error(f"Could not queue {len(failed)} keys for deletion: {failed}")
        return failed

    async def _audit(self, owner_id: str, action: str, listing_id: str, detail: dict) -> None:
        try:
            await self.store.add_audit(
                owner_id=owner_id,
                action=action,
                target_type="listing",
                target_id=listing_id,
                detail=detail,
            )
        except Exception as e:
            logger.opt(exception=e).warning(f"Audit write {action} for {listing_id} failed")

    def _fire_and_forget(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
