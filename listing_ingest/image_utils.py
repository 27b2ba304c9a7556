"""Image processing utilities: validation and derivative rendition generation."""
from dataclasses import dataclass
from io import BytesIO
from typing import Dict, Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from listing_ingest.errors import (
    CorruptImage, DerivativeGenerationFailed, InvalidFormat, TooLarge
)
from listing_ingest.settings import settings

# Decoded formats accepted for each declared MIME type family
ALLOWED_DECODED_FORMATS = {"JPEG", "PNG", "WEBP", "MPO"}


@dataclass(frozen=True)
class SourceInfo:
    width: int
    height: int
    format: str


@dataclass(frozen=True)
class Rendition:
    data: bytes
    width: int
    height: int


@dataclass(frozen=True)
class Derivatives:
    primary: Rendition
    thumbnails: Dict[str, Rendition]  # preset name -> rendition


def open_image_from_bytes(data: bytes) -> Image.Image:
    """
    Open PIL Image from bytes.

    Raises:
        CorruptImage: If the bytes are not a decodable image
        TooLarge: If the decoder flags a decompression bomb
    """
    try:
        return Image.open(BytesIO(data))
    except Image.DecompressionBombError as e:
        raise TooLarge("Image dimensions exceed limit", detail=str(e))
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise CorruptImage(detail=str(e))


def validate_image(data: bytes, mime_type: str, max_bytes: int = None) -> SourceInfo:
    """
    Validate an upload before any resize work is attempted.

    Checks, in order: declared MIME type, byte size, decodability.

    Args:
        data: Raw upload bytes
        mime_type: Content type declared by the uploader
        max_bytes: Size ceiling (default from settings)

    Returns:
        SourceInfo with the decoded width, height and format
    """
    if max_bytes is None:
        max_bytes = settings.MAX_UPLOAD_BYTES

    allowed = settings.ALLOWED_MIME_TYPES
    if mime_type not in allowed:
        raise InvalidFormat(f"Invalid file type. Allowed types: {', '.join(allowed)}")

    if len(data) > max_bytes:
        raise TooLarge(f"File size exceeds {max_bytes // (1024 * 1024)}MB limit")

    image = open_image_from_bytes(data)
    try:
        width, height = image.size
        image_format = image.format
    except Exception as e:
        raise CorruptImage(detail=str(e))

    # Content sniffing guards against a spoofed Content-Type
    if image_format not in ALLOWED_DECODED_FORMATS:
        raise InvalidFormat("Unsupported image content", detail=f"decoded format {image_format}")
    if not width or not height:
        raise CorruptImage(detail="image has no pixel dimensions")

    return SourceInfo(width=width, height=height, format=image_format)


def _prepare(image: Image.Image) -> Image.Image:
    """Apply EXIF orientation and normalize the colour mode for encoding."""
    image = ImageOps.exif_transpose(image)
    if image.mode in ("RGB", "RGBA"):
        return image
    has_alpha = image.mode in ("LA", "PA") or "transparency" in image.info
    return image.convert("RGBA" if has_alpha else "RGB")


def _encode(image: Image.Image, quality: int) -> bytes:
    output = BytesIO()
    image.save(output, format=settings.OUTPUT_FORMAT, quality=quality, method=6)
    return output.getvalue()


def generate_primary(
    image: Image.Image,
    max_size: Optional[Tuple[int, int]] = None,
    quality: int = None,
) -> Rendition:
    """Fit inside ``max_size`` preserving aspect ratio; never upscales."""
    if max_size is None:
        max_size = settings.PRIMARY_MAX_SIZE
    if quality is None:
        quality = settings.PRIMARY_QUALITY

    img_copy = image.copy()
    # thumbnail() only ever shrinks
    img_copy.thumbnail(max_size, Image.Resampling.LANCZOS)
    return Rendition(_encode(img_copy, quality), *img_copy.size)


def generate_thumbnail(image: Image.Image, width: int, height: int, quality: int = None) -> Rendition:
    """Cover the target box exactly, cropping around the centre."""
    if quality is None:
        quality = settings.THUMBNAIL_QUALITY

    fitted = ImageOps.fit(
        image, (width, height), Image.Resampling.LANCZOS, centering=(0.5, 0.5)
    )
    return Rendition(_encode(fitted, quality), *fitted.size)


def generate_derivatives(data: bytes) -> Derivatives:
    """
    Produce the primary rendition and every thumbnail preset.

    Each rendition is cut from the decoded original, never from another
    rendition.

    Raises:
        DerivativeGenerationFailed: On any decode or encode failure
    """
    try:
        with Image.open(BytesIO(data)) as source:
            source.load()
            original = _prepare(source)

        primary = generate_primary(original)
        thumbnails = {
            name: generate_thumbnail(original, width, height)
            for name, (width, height, _suffix) in settings.THUMBNAIL_PRESETS.items()
        }
    except Exception as e:
        raise DerivativeGenerationFailed(detail=str(e)) from e

    return Derivatives(primary=primary, thumbnails=thumbnails)
