"""Per-image upload sequence: validate, derive renditions, store."""
import asyncio
from dataclasses import dataclass
from typing import List, Sequence

from loguru import logger

from listing_ingest.errors import ObjectStoreError
from listing_ingest.image_utils import generate_derivatives, validate_image
from listing_ingest.keys import generate_object_key, rendition_keys, thumbnail_key
from listing_ingest.schemas import UploadedImage
from listing_ingest.settings import settings
from listing_ingest.storage import ObjectStoreGateway


@dataclass(frozen=True)
class ImageUpload:
    data: bytes
    filename: str
    mime_type: str


async def _discard(gateway: ObjectStoreGateway, primary_key: str) -> None:
    """Delete every rendition of a half-stored image."""
    failed = await gateway.delete_many(rendition_keys(primary_key))
    if failed:
        logger.error(f"Upload cleanup left {len(failed)} objects behind for {primary_key}")


async def upload_property_image(
    gateway: ObjectStoreGateway,
    data: bytes,
    owner_id: str,
    original_filename: str,
    mime_type: str,
) -> UploadedImage:
    """
    Validate one image, generate its renditions and store all four objects.

    All derivatives are generated before the first put, so image-stage
    failures never leave objects behind. The primary is stored first, the
    three thumbnails concurrently after it.
    """
    validate_image(data, mime_type)
    derivatives = await asyncio.to_thread(generate_derivatives, data)

    content_type = settings.OUTPUT_MIME_TYPE
    primary_key = generate_object_key(owner_id, original_filename)
    try:
        await gateway.put(primary_key, derivatives.primary.data, content_type)
    except ObjectStoreError:
        # A timed-out write may still land after we give up
        await _discard(gateway, primary_key)
        raise

    thumb_keys = {}
    puts = []
    for name, (_width, _height, suffix) in settings.THUMBNAIL_PRESETS.items():
        thumb_keys[name] = thumbnail_key(primary_key, suffix)
        puts.append(gateway.put(thumb_keys[name], derivatives.thumbnails[name].data, content_type))

    results = await asyncio.gather(*puts, return_exceptions=True)
    errors = [r for r in results if isinstance(r, BaseException)]
    if errors:
        await _discard(gateway, primary_key)
        raise errors[0] if isinstance(errors[0], ObjectStoreError) else ObjectStoreError(detail=str(errors[0]))

    logger.info(f"Stored image {primary_key} ({len(derivatives.primary.data)} bytes)")
    return UploadedImage(
        key=primary_key,
        url=gateway.resolve_public_url(primary_key),
        thumbnail_small_url=gateway.resolve_public_url(thumb_keys["small"]),
        thumbnail_medium_url=gateway.resolve_public_url(thumb_keys["medium"]),
        thumbnail_large_url=gateway.resolve_public_url(thumb_keys["large"]),
        width=derivatives.primary.width,
        height=derivatives.primary.height,
        byte_size=len(derivatives.primary.data),
        mime_type=content_type,
    )


async def upload_property_images(
    gateway: ObjectStoreGateway,
    owner_id: str,
    uploads: Sequence[ImageUpload],
) -> List[UploadedImage]:
    """
    Upload a batch of images concurrently.

    The first image becomes primary and display order follows input order.
    If any image fails, the images already stored for this batch are deleted
    and the first failure is raised.
    """
    results = await asyncio.gather(
        *(
            upload_property_image(gateway, u.data, owner_id, u.filename, u.mime_type)
            for u in uploads
        ),
        return_exceptions=True,
    )

    errors = [r for r in results if isinstance(r, BaseException)]
    if errors:
        stored = [r for r in results if not isinstance(r, BaseException)]
        keys = [key for image in stored for key in rendition_keys(image.key)]
        if keys:
            failed = await gateway.delete_many(keys)
            if failed:
                logger.error(f"Batch cleanup left {len(failed)} objects behind for owner {owner_id}")
        raise errors[0]

    images = []
    for index, (upload, result) in enumerate(zip(uploads, results)):
        images.append(result.model_copy(update={
            "display_order": index,
            "is_primary": index == 0,
            "original_name": upload.filename,
        }))
    return images
