"""Category endpoints."""

from uuid import UUID

import asyncpg
import structlog
from fastapi import APIRouter, Depends, status

from marketplace.api.dependencies import require_admin
from marketplace.api.uploads import ImagePayload, image_payload
from marketplace.errors import NotFound, ValidationError
from marketplace.models.category import CategoryCreate, CategoryUpdate, slugify
from marketplace.models.user import User
from marketplace.services.category_service import CategoryService
from marketplace.services.media_service import MediaService
from marketplace.services.product_service import ProductService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/categories", tags=["Categories"])

category_body = image_payload("image")

DUPLICATE_CATEGORY = "A category with this name or slug already exists"


@router.get("")
async def list_categories() -> dict:
    categories = await CategoryService().list_active()
    return {"success": True, "count": len(categories), "categories": categories}


@router.get("/slug/{slug}")
async def get_category_by_slug(slug: str) -> dict:
    category = await CategoryService().get_by_slug(slug)

    if category is None:
        raise NotFound("Category not found")

    return {"success": True, "category": category}


@router.get("/{category_id}")
async def get_category(category_id: UUID) -> dict:
    category = await CategoryService().get_by_id(category_id)

    if category is None:
        raise NotFound("Category not found")

    return {"success": True, "category": category}


@router.get("/{key}/products")
async def list_category_products(key: str) -> dict:
    """Active listings of a category given by id or slug."""
    category = await CategoryService().get_by_id_or_slug(key)

    if category is None:
        raise NotFound("Category not found")

    products = await ProductService().list_by_category(category.id)
    return {
        "success": True,
        "category": {"id": category.id, "name": category.name, "slug": category.slug},
        "count": len(products),
        "products": products,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_category(
    admin: User = Depends(require_admin),
    payload: ImagePayload = Depends(category_body),
) -> dict:
    """Create a category (admin only).

    Raises:
        ValidationError: If the name or its slug is already used
    """
    request = payload.validate(CategoryCreate)
    service = CategoryService()
    slug = slugify(request.name)

    if not slug:
        raise ValidationError("Category name must contain letters or digits")

    if await service.find_conflict(request.name.strip(), slug) is not None:
        raise ValidationError(DUPLICATE_CATEGORY)

    request = await payload.upload(request, MediaService(), "categories")

    try:
        category = await service.create(request)
    except asyncpg.UniqueViolationError:
        raise ValidationError(DUPLICATE_CATEGORY)

    logger.info("admin_created_category", admin_id=str(admin.id), category_id=str(category.id))
    return {
        "success": True,
        "message": "Category created successfully",
        "category": category,
    }


@router.put("/{category_id}")
async def update_category(
    category_id: UUID,
    admin: User = Depends(require_admin),
    payload: ImagePayload = Depends(category_body),
) -> dict:
    """Update a category (admin only); a replaced image is destroyed."""
    request = payload.validate(CategoryUpdate)
    service = CategoryService()
    existing = await service.get_by_id(category_id, active_only=False)

    if existing is None:
        raise NotFound("Category not found")

    if request.name is not None:
        slug = slugify(request.name)
        if not slug:
            raise ValidationError("Category name must contain letters or digits")
        conflict = await service.find_conflict(request.name.strip(), slug, exclude_id=category_id)
        if conflict is not None:
            raise ValidationError(DUPLICATE_CATEGORY)

    request = await payload.upload(request, MediaService(), "categories")

    try:
        category = await service.update(category_id, request)
    except asyncpg.UniqueViolationError:
        raise ValidationError(DUPLICATE_CATEGORY)

    if category is None:
        raise NotFound("Category not found")

    if request.image and existing.image and request.image != existing.image:
        await MediaService().delete_image(existing.image)

    return {
        "success": True,
        "message": "Category updated successfully",
        "category": category,
    }


@router.delete("/{category_id}")
async def delete_category(
    category_id: UUID,
    admin: User = Depends(require_admin),
) -> dict:
    """Delete a category that no listing references (admin only)."""
    service = CategoryService()

    category = await service.get_by_id(category_id, active_only=False)
    if category is None:
        raise NotFound("Category not found")

    in_use = await ProductService().count_in_category(category_id)
    if in_use > 0:
        raise ValidationError(
            f"Cannot delete category as it is associated with {in_use} products"
        )

    await service.delete(category_id)
    await MediaService().delete_image(category.image)
    logger.info("admin_deleted_category", admin_id=str(admin.id), category_id=str(category_id))
    return {"success": True, "message": "Category deleted successfully"}
