"""Explicitly constructed service handles shared by the API and CLI tools."""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from listing_ingest.db import create_engine, create_session_factory
from listing_ingest.gate import AllowAllGate, RedisSubmissionGate, SubmissionGate
from listing_ingest.listings import ListingCoordinator
from listing_ingest.records import ListingStore, SqlListingStore
from listing_ingest.settings import Settings, settings as default_settings
from listing_ingest.storage import ObjectStoreGateway, StorageAdapter, get_storage_adapter


@dataclass
class Services:
    engine: AsyncEngine
    session_factory: async_sessionmaker
    store: ListingStore
    gateway: ObjectStoreGateway
    gate: SubmissionGate
    coordinator: ListingCoordinator

    async def close(self) -> None:
        await self.coordinator.wait_for_background()
        await self.gate.close()
        await self.engine.dispose()


def build_gate(config: Settings) -> SubmissionGate:
    if not config.REDIS_URL:
        return AllowAllGate(config.LISTING_RATE_LIMIT)
    return RedisSubmissionGate(
        config.REDIS_URL,
        limit=config.LISTING_RATE_LIMIT,
        window_seconds=config.LISTING_RATE_WINDOW_SECONDS,
    )


def build_services(
    config: Settings = None,
    *,
    engine: Optional[AsyncEngine] = None,
    adapter: Optional[StorageAdapter] = None,
    gate: Optional[SubmissionGate] = None,
) -> Services:
    """Wire the pipeline from settings; any handle can be supplied instead."""
    config = config or default_settings
    engine = engine or create_engine(config.DATABASE_URL)
    session_factory = create_session_factory(engine)
    store = SqlListingStore(session_factory)
    gateway = ObjectStoreGateway(
        adapter or get_storage_adapter(config),
        cdn_base_url=config.CDN_BASE_URL,
        timeout=config.OBJECT_STORE_TIMEOUT_SECONDS,
    )
    gate = gate or build_gate(config)
    return Services(
        engine=engine,
        session_factory=session_factory,
        store=store,
        gateway=gateway,
        gate=gate,
        coordinator=ListingCoordinator(store, gateway, gate),
    )
