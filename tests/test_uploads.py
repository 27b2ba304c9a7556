"""Tests for the image upload sequence."""
from io import BytesIO

import pytest
from PIL import Image

from listing_ingest.errors import CorruptImage, DerivativeGenerationFailed, InvalidFormat, ObjectStoreError
from listing_ingest.keys import rendition_keys
from listing_ingest.uploads import ImageUpload, upload_property_image, upload_property_images

OWNER = "user-123"


async def test_upload_stores_primary_and_three_thumbnails(gateway, storage, make_image):
    image = await upload_property_image(gateway, make_image(3000, 2000), OWNER, "front.jpg", "image/jpeg")

    keys = rendition_keys(image.key)
    assert set(storage.objects) == set(keys)
    assert all(storage.content_types[k] == "image/webp" for k in keys)
    assert image.key.startswith(f"property-listings/{OWNER}/")
    assert image.key.endswith("-front.jpg.webp")
    assert image.url == f"https://objects.test/{keys[0]}"
    assert image.thumbnail_small_url == f"https://objects.test/{keys[1]}"
    assert image.thumbnail_medium_url == f"https://objects.test/{keys[2]}"
    assert image.thumbnail_large_url == f"https://objects.test/{keys[3]}"
    assert (image.width, image.height) == (2048, 1365)
    assert image.byte_size == len(storage.objects[image.key])
    assert image.mime_type == "image/webp"


async def test_invalid_upload_stores_nothing(gateway, storage):
    with pytest.raises(CorruptImage):
        await upload_property_image(gateway, b"garbage", OWNER, "x.jpg", "image/jpeg")
    with pytest.raises(InvalidFormat):
        await upload_property_image(gateway, b"garbage", OWNER, "x.pdf", "application/pdf")
    assert storage.objects == {}


async def test_failed_thumbnail_put_removes_other_renditions(gateway, storage, make_image):
    storage.fail_put_containing.add("-thumb-md")

    with pytest.raises(ObjectStoreError):
        await upload_property_image(gateway, make_image(), OWNER, "x.jpg", "image/jpeg")

    assert storage.objects == {}


async def test_batch_assigns_order_and_primary(gateway, make_image):
    uploads = [ImageUpload(make_image(), f"photo{i}.jpg", "image/jpeg") for i in range(3)]

    images = await upload_property_images(gateway, OWNER, uploads)

    assert [i.display_order for i in images] == [0, 1, 2]
    assert [i.is_primary for i in images] == [True, False, False]
    assert [i.original_name for i in images] == ["photo0.jpg", "photo1.jpg", "photo2.jpg"]
    assert len({i.key for i in images}) == 3


async def test_batch_failure_removes_stored_images(gateway, storage, make_image):
    uploads = [
        ImageUpload(make_image(), "good1.jpg", "image/jpeg"),
        ImageUpload(b"broken", "bad.jpg", "image/jpeg"),
        ImageUpload(make_image(), "good2.jpg", "image/jpeg"),
    ]

    with pytest.raises(CorruptImage):
        await upload_property_images(gateway, OWNER, uploads)

    assert storage.objects == {}


async def test_undecodable_pixels_store_nothing(gateway, storage):
    """Header decodes but the pixel data is cut short."""
    noisy = Image.effect_noise((400, 300), 64).convert("RGB")
    output = BytesIO()
    noisy.save(output, format="JPEG", quality=95)
    truncated = output.getvalue()[: len(output.getvalue()) // 2]

    with pytest.raises(DerivativeGenerationFailed):
        await upload_property_image(gateway, truncated, OWNER, "x.jpg", "image/jpeg")

    assert storage.objects == {}


async def test_failed_primary_put_is_cleaned_up(gateway, storage, make_image):
    """A primary write that lands but reports failure is deleted again."""
    original_save = storage.save

    async def save_then_fail(key, data, content_type):
        await original_save(key, data, content_type)
        raise RuntimeError("connection reset after write")

    storage.save = save_then_fail

    with pytest.raises(ObjectStoreError):
        await upload_property_image(gateway, make_image(), OWNER, "x.jpg", "image/jpeg")

    assert storage.objects == {}
