"""Object-store key generation."""
import re
import secrets
import time
from typing import Callable, List

from listing_ingest.settings import settings

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9.-]")
MAX_NAME_LENGTH = 50
MAX_OWNER_LENGTH = 64
ENTROPY_BYTES = 8  # 64 bits


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


def sanitize_component(value: str, max_length: int) -> str:
    """Strip everything outside [A-Za-z0-9.-] and bound the length."""
    return _UNSAFE_CHARS.sub("", value or "")[:max_length]


def generate_object_key(
    owner_id: str,
    original_filename: str,
    suffix: str = "",
    *,
    namespace: str = None,
    extension: str = None,
    clock: Callable[[], int] = _now_millis,
    entropy: Callable[[], str] = None,
) -> str:
    """
    Build a collision-resistant storage key for an uploaded image.

    Format: {namespace}/{owner}/{millis}-{random hex}-{safe name}{suffix}.{ext}

    Args:
        owner_id: Submitting account, used as the key's second segment
        original_filename: Uploader's filename, sanitized into the key
        suffix: Optional rendition suffix (e.g. "-thumb-sm")
        clock: Millisecond clock; injectable for tests
        entropy: Random hex source; defaults to 64 bits from ``secrets``

    Returns:
        Storage key string
    """
    if namespace is None:
        namespace = settings.KEY_NAMESPACE
    if extension is None:
        extension = settings.OUTPUT_EXTENSION
    random_part = entropy() if entropy else secrets.token_hex(ENTROPY_BYTES)

    # The owner is a whole path segment, so "." and ".." must never survive
    owner = sanitize_component(str(owner_id), MAX_OWNER_LENGTH).strip(".") or "anonymous"
    safe_name = sanitize_component(original_filename, MAX_NAME_LENGTH) or "image"
    safe_suffix = sanitize_component(suffix, MAX_NAME_LENGTH)

    return f"{namespace}/{owner}/{clock()}-{random_part}-{safe_name}{safe_suffix}.{extension}"


def thumbnail_key(primary_key: str, suffix: str) -> str:
    """Derive a thumbnail key from its primary rendition key."""
    base, dot, ext = primary_key.rpartition(".")
    if not dot:
        return f"{primary_key}{suffix}"
    return f"{base}{suffix}.{ext}"


def rendition_keys(primary_key: str) -> List[str]:
    """All object keys belonging to one image asset, primary first."""
    keys = [primary_key]
    for _width, _height, suffix in settings.THUMBNAIL_PRESETS.values():
        keys.append(thumbnail_key(primary_key, suffix))
    return keys
