"""Admin API endpoints: dashboard, moderation and user roles."""

import math
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query

from marketplace.api.dependencies import get_user_service, require_admin
from marketplace.api.users import user_summary
from marketplace.errors import NotFound, ValidationError
from marketplace.models.auth import ChangeRoleRequest
from marketplace.models.product import FeatureRequest, VerifyRequest
from marketplace.models.user import Role, User
from marketplace.services.admin_service import AdminService
from marketplace.services.product_service import ProductService
from marketplace.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

STATUS_FILTERS = {"active": True, "inactive": False}


@router.get("/stats")
async def dashboard_stats(admin: User = Depends(require_admin)) -> dict:
    stats = await AdminService().dashboard_stats()
    return {"success": True, **stats}


@router.get("/products")
async def list_products(
    search: Optional[str] = None,
    category: Optional[UUID] = None,
    status: Optional[str] = None,
    sort: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    admin: User = Depends(require_admin),
) -> dict:
    """All listings, active or not, with moderation filters."""
    if status is not None and status not in STATUS_FILTERS:
        raise ValidationError("Status must be 'active' or 'inactive'")

    products, total = await ProductService().list_for_admin(
        search=search,
        category=category,
        active=STATUS_FILTERS.get(status) if status else None,
        sort=sort,
        page=page,
        limit=limit,
    )
    return {
        "success": True,
        "count": len(products),
        "total": total,
        "totalPages": math.ceil(total / limit),
        "currentPage": page,
        "products": products,
    }


@router.put("/products/{product_id}/verify")
async def verify_product(
    product_id: UUID,
    request: VerifyRequest,
    admin: User = Depends(require_admin),
) -> dict:
    product = await ProductService().set_verified(
        product_id, request.is_verified, verified_by=admin.id
    )

    if product is None:
        raise NotFound("Product not found")

    state = "verified" if request.is_verified else "unverified"
    return {"success": True, "message": f"Product {state} successfully", "product": product}


@router.put("/products/{product_id}/feature")
async def feature_product(
    product_id: UUID,
    request: FeatureRequest,
    admin: User = Depends(require_admin),
) -> dict:
    product = await ProductService().set_featured(product_id, request.is_featured)

    if product is None:
        raise NotFound("Product not found")

    state = "featured" if request.is_featured else "unfeatured"
    return {"success": True, "message": f"Product {state} successfully", "product": product}


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: UUID,
    admin: User = Depends(require_admin),
) -> dict:
    """Permanently delete a listing."""
    if not await ProductService().delete(product_id):
        raise NotFound("Product not found")

    logger.info("admin_deleted_product", admin_id=str(admin.id), product_id=str(product_id))
    return {"success": True, "message": "Product deleted successfully"}


@router.get("/users")
async def list_users(
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> dict:
    all_users = await users.list_users()
    return {
        "success": True,
        "count": len(all_users),
        "users": [user_summary(u) for u in all_users],
    }


@router.put("/users/{user_id}")
async def update_user_role(
    user_id: UUID,
    request: ChangeRoleRequest,
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> dict:
    """Set a user's role (admin only)."""
    try:
        role = Role(request.role)
    except ValueError:
        raise ValidationError("Invalid role specified")

    updated = await users.set_role(user_id, role)

    if updated is None:
        raise NotFound("User not found")

    logger.info(
        "admin_changed_role",
        admin_id=str(admin.id),
        target_user_id=str(user_id),
        role=role.value,
    )
    return {
        "success": True,
        "message": "User role updated successfully",
        "user": user_summary(updated),
    }
