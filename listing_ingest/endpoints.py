"""API endpoints for image upload and listing persistence."""
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, File, Header, HTTPException, Query, Request, UploadFile, status

from listing_ingest.errors import FieldViolation, ValidationFailed
from listing_ingest.schemas import ListingResponse, ListingsResponse, UploadResponse
from listing_ingest.services import Services
from listing_ingest.settings import settings
from listing_ingest.uploads import ImageUpload, upload_property_images

router = APIRouter(prefix=settings.API_V1_PREFIX)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_owner_id(x_owner_id: Optional[str] = Header(None)) -> str:
    """Owner identity set by the upstream authentication layer."""
    if not x_owner_id or not x_owner_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return x_owner_id.strip()


@router.post("/images", response_model=UploadResponse)
async def upload_images(
    images: Optional[List[UploadFile]] = File(None),
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    """
    Upload property images and generate their renditions.

    Returns one asset descriptor per file, ready to be submitted with a
    listing. The first file becomes the primary image.
    """
    if not images:
        raise ValidationFailed([FieldViolation("images", "No images provided")])
    if len(images) > settings.MAX_IMAGES_PER_LISTING:
        raise ValidationFailed([
            FieldViolation("images", f"Maximum {settings.MAX_IMAGES_PER_LISTING} images allowed")
        ])

    uploads = []
    for file in images:
        uploads.append(ImageUpload(
            data=await file.read(),
            filename=file.filename or "image",
            mime_type=file.content_type or "",
        ))

    uploaded = await upload_property_images(services.gateway, owner_id, uploads)
    return UploadResponse(images=uploaded, count=len(uploaded))


@router.post("/listings", response_model=ListingResponse, status_code=status.HTTP_201_CREATED)
async def create_listing(
    payload: Any = Body(...),
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    """Create a listing from scalar fields plus pre-uploaded image descriptors."""
    listing = await services.coordinator.submit(owner_id, payload)
    return ListingResponse(listing=listing)


@router.get("/listings", response_model=ListingsResponse)
async def list_my_listings(
    status_filter: Optional[str] = Query(None, alias="status"),
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    listings = await services.coordinator.list_owner_listings(owner_id, status_filter)
    return ListingsResponse(listings=listings, count=len(listings))


@router.get("/listings/{listing_id}", response_model=ListingResponse)
async def get_listing(
    listing_id: str,
    x_owner_id: Optional[str] = Header(None),
    services: Services = Depends(get_services),
):
    listing = await services.coordinator.get_listing(listing_id, viewer_id=x_owner_id)
    return ListingResponse(listing=listing)


@router.delete("/listings/{listing_id}")
async def delete_listing(
    listing_id: str,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    await services.coordinator.delete_listing(owner_id, listing_id)
    return {"success": True}
