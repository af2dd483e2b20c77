"""Promotional ad endpoints."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status

from marketplace.api.dependencies import require_admin
from marketplace.api.uploads import ImagePayload, image_payload
from marketplace.errors import NotFound, ValidationError
from marketplace.models.ad import AdCreate, AdPosition, AdUpdate, check_window
from marketplace.models.user import User
from marketplace.services.ad_service import AdService
from marketplace.services.media_service import MediaService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/ads", tags=["Ads"])

ad_body = image_payload("image")


@router.get("/position/{position}")
async def ads_for_position(position: AdPosition) -> dict:
    """Ads currently showing in a page slot (public)."""
    ads = await AdService().live_for_position(position)
    return {"success": True, "count": len(ads), "ads": ads}


@router.post("/track/impression/{ad_id}")
async def track_impression(ad_id: UUID) -> dict:
    if not await AdService().track(ad_id, "impression"):
        raise NotFound("Ad not found")
    return {"success": True}


@router.post("/track/click/{ad_id}")
async def track_click(ad_id: UUID) -> dict:
    if not await AdService().track(ad_id, "click"):
        raise NotFound("Ad not found")
    return {"success": True}


@router.get("")
async def list_ads(admin: User = Depends(require_admin)) -> dict:
    ads = await AdService().list_all()
    return {"success": True, "count": len(ads), "ads": ads}


@router.get("/stats")
async def ad_stats(admin: User = Depends(require_admin)) -> dict:
    """Impression and click totals over the caller's ads."""
    stats = await AdService().stats(created_by=admin.id)
    return {"success": True, "stats": stats}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_ad(
    admin: User = Depends(require_admin),
    payload: ImagePayload = Depends(ad_body),
) -> dict:
    """Create an ad from an image URL or an uploaded image file."""
    request = payload.validate(AdCreate)
    request = await payload.upload(request, MediaService(), "ads")
    ad = await AdService().create(request, created_by=admin.id)
    return {"success": True, "message": "Ad created successfully", "ad": ad}


@router.put("/{ad_id}")
async def update_ad(
    ad_id: UUID,
    admin: User = Depends(require_admin),
    payload: ImagePayload = Depends(ad_body),
) -> dict:
    """Update an ad; a replaced image is removed from the media service."""
    request = payload.validate(AdUpdate)
    service = AdService()
    existing = await service.get(ad_id)

    if existing is None:
        raise NotFound("Ad not found")

    fields = request.model_fields_set
    start = request.start_date if "start_date" in fields else existing.start_date
    end = request.end_date if "end_date" in fields else existing.end_date
    try:
        check_window(start, end)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    request = await payload.upload(request, MediaService(), "ads")

    updated = await service.update(ad_id, request)
    if updated is None:
        raise NotFound("Ad not found")

    if request.image and request.image != existing.image:
        await MediaService().delete_image(existing.image)

    return {"success": True, "message": "Ad updated successfully", "ad": updated}


@router.delete("/{ad_id}")
async def delete_ad(
    ad_id: UUID,
    admin: User = Depends(require_admin),
) -> dict:
    service = AdService()
    ad = await service.get(ad_id)

    if ad is None:
        raise NotFound("Ad not found")

    await MediaService().delete_image(ad.image)
    await service.delete(ad_id)

    logger.info("admin_deleted_ad", admin_id=str(admin.id), ad_id=str(ad_id))
    return {"success": True, "message": "Ad deleted successfully"}
