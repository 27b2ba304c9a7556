"""Shared fixtures: SQLite record store, in-memory object store, fake gate."""
from datetime import datetime, timedelta, timezone
from io import BytesIO

import httpx
import pytest
from PIL import Image

from listing_ingest.app import create_app
from listing_ingest.db import Base, create_engine
from listing_ingest.gate import GateDecision, SubmissionGate
from listing_ingest.models import AuditLog, Listing, ListingImage, PendingObjectDeletion  # noqa: F401
from listing_ingest.services import build_services
from listing_ingest.settings import settings
from listing_ingest.storage import ObjectStoreGateway, StorageAdapter

OWNER = "user-123"


class MemoryStorageAdapter(StorageAdapter):
    """Object store double with per-key failure injection."""

    def __init__(self):
        self.objects = {}
        self.content_types = {}
        self.fail_put_containing = set()
        self.fail_delete = set()

    async def save(self, key, data, content_type):
        if any(fragment in key for fragment in self.fail_put_containing):
            raise RuntimeError(f"put refused for {key}")
        self.objects[key] = data
        self.content_types[key] = content_type

    async def get(self, key):
        if key not in self.objects:
            raise FileNotFoundError(key)
        return self.objects[key]

    async def delete(self, key):
        if key in self.fail_delete:
            raise RuntimeError(f"delete refused for {key}")
        return self.objects.pop(key, None) is not None

    async def exists(self, key):
        return key in self.objects

    def direct_url(self, key):
        return f"https://objects.test/{key}"


class FakeGate(SubmissionGate):
    def __init__(self, allowed=True, remaining=19):
        self.allowed = allowed
        self.remaining = remaining
        self.calls = []

    async def check_and_consume(self, identifier):
        self.calls.append(identifier)
        return GateDecision(
            allowed=self.allowed,
            remaining=self.remaining,
            reset_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )


def _make_image_bytes(width=100, height=100, fmt="JPEG", color=(200, 30, 30), mode="RGB"):
    img = Image.new(mode, (width, height), color=color)
    output = BytesIO()
    img.save(output, format=fmt)
    return output.getvalue()


@pytest.fixture
def make_image():
    """Factory for encoded test images."""
    return _make_image_bytes


@pytest.fixture
def make_descriptor():
    def _make(index=0, **overrides):
        descriptor = {
            "key": f"property-listings/{OWNER}/1700000000000-{index:016x}-photo{index}.jpg.webp",
            "url": f"https://objects.test/photo{index}.webp",
            "thumbnailSmallUrl": f"https://objects.test/photo{index}-thumb-sm.webp",
            "thumbnailMediumUrl": f"https://objects.test/photo{index}-thumb-md.webp",
            "thumbnailLargeUrl": f"https://objects.test/photo{index}-thumb-lg.webp",
            "displayOrder": index,
            "isPrimary": index == 0,
            "width": 2048,
            "height": 1536,
            "byteSize": 345678,
            "mimeType": "image/webp",
        }
        descriptor.update(overrides)
        return descriptor
    return _make


@pytest.fixture
def make_payload(make_descriptor):
    """Factory for a valid submission; title and description at their minimums."""
    def _make(image_count=1, **overrides):
        payload = {
            "title": "Cozy home!",
            "description": "D" * 50,
            "street_address": "12 Elm St",
            "city": "Burlington",
            "state": "VT",
            "zipcode": "05401",
            "property_type": "single_family",
            "listing_type": "sale",
            "list_price": 350000,
            "bedrooms": 3,
            "bathrooms": 1.5,
            "square_feet": 1450,
            "lot_size": 0.25,
            "year_built": 1978,
            "contact_name": "Pat Owner",
            "contact_email": "pat@example.com",
            "contact_phone": "802-555-0100",
            "features": {"garage": True},
            "images": [make_descriptor(i) for i in range(image_count)],
        }
        payload.update(overrides)
        return payload
    return _make


@pytest.fixture
def storage():
    return MemoryStorageAdapter()


@pytest.fixture
def gateway(storage):
    return ObjectStoreGateway(storage, timeout=5)


@pytest.fixture
async def services(tmp_path, storage):
    """Services wired to a throwaway SQLite database and the memory store."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test_listings.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    services = build_services(settings, engine=engine, adapter=storage, gate=FakeGate())
    yield services
    await services.close()


@pytest.fixture
async def client(services):
    """HTTP client bound to an app using the test services."""
    app = create_app(services)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
