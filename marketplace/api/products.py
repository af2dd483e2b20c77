"""Listing endpoints: browse, search, publish, edit and withdraw."""

import math
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status

from marketplace.api.dependencies import get_current_user, require_owner_or_role
from marketplace.api.uploads import MAX_IMAGE_FILES, ImagePayload, image_payload
from marketplace.errors import NotFound, ValidationError
from marketplace.models.product import (
    Condition,
    ProductCreate,
    ProductFilters,
    ProductSort,
    ProductUpdate,
)
from marketplace.models.user import Role, User
from marketplace.services.category_service import CategoryService
from marketplace.services.media_service import MediaService
from marketplace.services.product_service import ProductService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/products", tags=["Products"])

product_body = image_payload("images", max_files=MAX_IMAGE_FILES, list_fields=("images",))


async def _ensure_category(category_id: UUID) -> None:
    if await CategoryService().get_by_id(category_id) is None:
        raise ValidationError("Invalid category")


@router.get("")
async def list_products(
    keyword: Optional[str] = None,
    category: Optional[UUID] = None,
    min_price: Optional[float] = Query(default=None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(default=None, alias="maxPrice", ge=0),
    condition: Optional[Condition] = None,
    min_year: Optional[int] = Query(default=None, alias="minYear"),
    max_year: Optional[int] = Query(default=None, alias="maxYear"),
    sort: ProductSort = ProductSort.NEWEST,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> dict:
    """Active listings with filters, sorting and pagination."""
    filters = ProductFilters(
        keyword=keyword,
        category=category,
        min_price=min_price,
        max_price=max_price,
        condition=condition,
        min_year=min_year,
        max_year=max_year,
        sort=sort,
    )
    products, total = await ProductService().list_products(filters, page=page, limit=limit)

    return {
        "success": True,
        "count": len(products),
        "total": total,
        "totalPages": math.ceil(total / limit),
        "currentPage": page,
        "products": products,
    }


@router.get("/latest")
async def latest_products(limit: int = Query(default=6, ge=1, le=50)) -> dict:
    products = await ProductService().latest(limit)
    return {"success": True, "count": len(products), "products": products}


@router.get("/search")
async def search_products(q: Optional[str] = None) -> dict:
    """Full-text search over listing titles and descriptions."""
    if not q or not q.strip():
        raise ValidationError("Search query is required")

    products = await ProductService().search(q.strip())
    return {"success": True, "count": len(products), "products": products}


@router.get("/{product_id}")
async def get_product(product_id: UUID) -> dict:
    product = await ProductService().get(product_id)

    if product is None:
        raise NotFound("Product not found")

    return {"success": True, "product": product}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    current_user: User = Depends(get_current_user),
    payload: ImagePayload = Depends(product_body),
) -> dict:
    """Publish a listing as the caller.

    Accepts JSON or a multipart form whose ``images`` field mixes uploaded
    files and image URLs.
    """
    request = payload.validate(ProductCreate)
    await _ensure_category(request.category)
    request = await payload.upload(request, MediaService(), "products")

    product = await ProductService().create(request, publisher_id=current_user.id)
    return {"success": True, "product": product}


@router.put("/{product_id}")
async def update_product(
    product_id: UUID,
    current_user: User = Depends(get_current_user),
    payload: ImagePayload = Depends(product_body),
) -> dict:
    """Edit a listing (publisher or admin).

    A multipart ``images`` field replaces the image list with the kept URLs
    followed by the new uploads.
    """
    request = payload.validate(ProductUpdate)
    service = ProductService()
    product = await service.get(product_id)

    if product is None:
        raise NotFound("Product not found")

    require_owner_or_role(
        current_user,
        product.publisher_id,
        Role.ADMIN,
        "Not authorized to update this product",
    )

    if request.category is not None:
        await _ensure_category(request.category)

    request = await payload.upload(request, MediaService(), "products")

    updated = await service.update(product_id, request)
    if updated is None:
        raise NotFound("Product not found")

    if request.images is not None:
        dropped = [url for url in product.images if url not in request.images]
        await MediaService().delete_images(dropped)

    return {"success": True, "product": updated}


@router.delete("/{product_id}")
async def delete_product(
    product_id: UUID,
    current_user: User = Depends(get_current_user),
) -> dict:
    """Withdraw a listing (publisher or admin) and clean up its images."""
    service = ProductService()
    product = await service.get(product_id)

    if product is None:
        raise NotFound("Product not found")

    require_owner_or_role(
        current_user,
        product.publisher_id,
        Role.ADMIN,
        "Not authorized to delete this product",
    )

    await MediaService().delete_images(product.images)
    await service.soft_delete(product_id)

    logger.info(
        "product_withdrawn",
        product_id=str(product_id),
        actor_id=str(current_user.id),
    )
    return {"success": True, "message": "Product deleted successfully"}
