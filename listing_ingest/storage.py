"""Storage adapter interface, implementations and the object store gateway."""
import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional

from loguru import logger

from listing_ingest.errors import ObjectStoreError
from listing_ingest.settings import Settings, settings as default_settings

CACHE_CONTROL = "public, max-age=31536000, immutable"


class StorageAdapter(ABC):
    """Abstract storage adapter interface (S3-style)."""

    @abstractmethod
    async def save(self, key: str, data: bytes, content_type: str) -> None:
        """
        Save data to storage under ``key``.

        Args:
            key: Storage key (e.g. "property-listings/u1/...-photo.jpg.webp")
            data: Binary data to save
            content_type: MIME type stored alongside the object
        """
        pass

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """
        Retrieve data from storage.

        Raises:
            FileNotFoundError: If the key does not exist
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete data from storage.

        Returns:
            True if deleted, False if not found
        """
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def direct_url(self, key: str) -> str:
        """Backend-native public URL for a key."""
        pass


class LocalStorageAdapter(StorageAdapter):
    """Local filesystem storage adapter (for development)."""

    def __init__(self, base_path: str = None, public_base_url: str = None):
        self.base_path = Path(base_path or default_settings.STORAGE_BASE_PATH)
        self.public_base_url = (public_base_url or default_settings.LOCAL_PUBLIC_BASE_URL).rstrip("/")

    def _get_full_path(self, key: str) -> Path:
        """Get full filesystem path for a key."""
        key = key.lstrip("/")
        full_path = (self.base_path / key).resolve()
        # Keys must stay inside the storage root
        if self.base_path.resolve() not in full_path.parents:
            raise ValueError(f"Key escapes storage root: {key}")
        return full_path

    async def save(self, key: str, data: bytes, content_type: str) -> None:
        full_path = self._get_full_path(key)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_bytes(data)

    async def get(self, key: str) -> bytes:
        full_path = self._get_full_path(key)
        if not full_path.exists():
            raise FileNotFoundError(f"Key not found: {key}")
        return full_path.read_bytes()

    async def delete(self, key: str) -> bool:
        full_path = self._get_full_path(key)
        if not full_path.exists():
            return False
        full_path.unlink()
        return True

    async def exists(self, key: str) -> bool:
        return self._get_full_path(key).exists()

    def direct_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"


class S3StorageAdapter(StorageAdapter):
    """S3 storage adapter (for production).

    boto3 is synchronous, so calls run in a worker thread. Credentials are
    resolved by boto3 from the environment (AWS_ACCESS_KEY_ID etc.).
    """

    def __init__(self, bucket: str, region: str, client=None):
        if not bucket:
            raise ValueError("S3_BUCKET must be set when STORAGE_TYPE=s3")
        self.bucket = bucket
        self.region = region
        if client is None:
            import boto3
            client = boto3.client("s3", region_name=region)
        self.client = client

    async def save(self, key: str, data: bytes, content_type: str) -> None:
        await asyncio.to_thread(
            self.client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            ACL="public-read",
            CacheControl=CACHE_CONTROL,
        )

    async def get(self, key: str) -> bytes:
        from botocore.exceptions import ClientError

        try:
            response = await asyncio.to_thread(self.client.get_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise FileNotFoundError(f"Key not found: {key}")
            raise
        return await asyncio.to_thread(response["Body"].read)

    async def delete(self, key: str) -> bool:
        # S3 DeleteObject succeeds for missing keys
        await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
        return True

    async def exists(self, key: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise

    def direct_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"


class VercelBlobStorageAdapter(StorageAdapter):
    """Vercel Blob Storage adapter (for Vercel deployment).

    Uses Vercel Blob REST API directly. Writes go to the API host; reads,
    deletes and public URLs use the store's own public host
    (``https://<store>.public.blob.vercel-storage.com``), which the PUT
    response echoes back for every blob.
    BLOB_READ_WRITE_TOKEN is automatically available in Vercel environment.
    """

    base_url = "https://blob.vercel-storage.com"

    def __init__(self, token: str = None, public_base_url: str = None):
        import os
        self.token = token or os.getenv("BLOB_READ_WRITE_TOKEN")
        if not self.token:
            raise ValueError(
                "BLOB_READ_WRITE_TOKEN not found. "
                "This is automatically set in Vercel environment."
            )
        public_base_url = public_base_url or default_settings.VERCEL_BLOB_PUBLIC_BASE_URL
        if not public_base_url:
            raise ValueError("VERCEL_BLOB_PUBLIC_BASE_URL must be set when STORAGE_TYPE=vercel_blob")
        self.public_base_url = public_base_url.rstrip("/")

    async def save(self, key: str, data: bytes, content_type: str) -> None:
        import aiohttp

        headers = {
            "Authorization": f"Bearer {self.token}",
            "x-content-type": content_type,
            "x-add-random-suffix": "0",
            "x-cache-control-max-age": "31536000",
        }
        async with aiohttp.ClientSession() as session:
            async with session.put(f"{self.base_url}/{key}", data=data, headers=headers) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise RuntimeError(f"Failed to upload to Vercel Blob: {error_text}")
                result = await response.json()

        # The URL handed to clients must be the one the store actually serves
        stored_url = result.get("url")
        if stored_url and stored_url != self.direct_url(key):
            raise RuntimeError(
                f"Vercel Blob stored {key} at {stored_url}, expected {self.direct_url(key)}"
            )

    async def get(self, key: str) -> bytes:
        import aiohttp

        async with aiohttp.ClientSession() as session:
            async with session.get(self.direct_url(key)) as response:
                if response.status == 404:
                    raise FileNotFoundError(f"Blob not found: {key}")
                response.raise_for_status()
                return await response.read()

    async def delete(self, key: str) -> bool:
        import aiohttp

        headers = {"Authorization": f"Bearer {self.token}"}
        async with aiohttp.ClientSession() as session:
            async with session.post(
                f"{self.base_url}/delete", json={"urls": [self.direct_url(key)]}, headers=headers
            ) as response:
                if response.status == 404:
                    return False
                response.raise_for_status()
                return True

    async def exists(self, key: str) -> bool:
        try:
            await self.get(key)
            return True
        except FileNotFoundError:
            return False

    def direct_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"


class ObjectStoreGateway:
    """Durable binary storage with CDN-or-direct public URL resolution.

    Callers only ever see ``resolve_public_url`` output, so a CDN can be
    switched on or off without touching them. Each backend call is bounded
    by ``timeout`` seconds and a timeout is retried once.
    """

    def __init__(self, adapter: StorageAdapter, cdn_base_url: Optional[str] = None, timeout: float = 10.0):
        self.adapter = adapter
        self.cdn_base_url = cdn_base_url.rstrip("/") if cdn_base_url else None
        self.timeout = timeout

    async def _call(self, operation: str, key: str, factory: Callable[[], Awaitable]):
        for attempt in (1, 2):
            try:
                return await asyncio.wait_for(factory(), timeout=self.timeout)
            except asyncio.TimeoutError:
                if attempt == 1:
                    logger.warning(f"Object store {operation} timed out for {key}, retrying")
                    continue
                raise ObjectStoreError(detail=f"{operation} timed out twice for {key}")
            except Exception as e:
                raise ObjectStoreError(detail=f"{operation} failed for {key}: {e}") from e

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        await self._call("put", key, lambda: self.adapter.save(key, data, content_type))

    async def delete(self, key: str) -> None:
        """Idempotent delete: a missing key is not an error."""
        deleted = await self._call("delete", key, lambda: self.adapter.delete(key))
        if not deleted:
            logger.debug(f"Delete of missing key {key} ignored")

    async def delete_many(self, keys: Iterable[str]) -> List[str]:
        """Fan out independent deletes; return the keys that failed."""
        keys = list(keys)
        results = await asyncio.gather(*(self.delete(key) for key in keys), return_exceptions=True)
        failed = []
        for key, result in zip(keys, results):
            if isinstance(result, BaseException):
                logger.error(f"Failed to delete {key}: {result}")
                failed.append(key)
        return failed

    def resolve_public_url(self, key: str) -> str:
        if self.cdn_base_url:
            return f"{self.cdn_base_url}/{key}"
        return self.adapter.direct_url(key)


def get_storage_adapter(config: Settings = None) -> StorageAdapter:
    """Factory function to get storage adapter based on settings."""
    config = config or default_settings
    if config.STORAGE_TYPE == "local":
        return LocalStorageAdapter(config.STORAGE_BASE_PATH, config.LOCAL_PUBLIC_BASE_URL)
    elif config.STORAGE_TYPE == "s3":
        return S3StorageAdapter(config.S3_BUCKET, config.S3_REGION)
    elif config.STORAGE_TYPE == "vercel_blob":
        return VercelBlobStorageAdapter(public_base_url=config.VERCEL_BLOB_PUBLIC_BASE_URL)
    else:
        raise ValueError(f"Unknown storage type: {config.STORAGE_TYPE}")
