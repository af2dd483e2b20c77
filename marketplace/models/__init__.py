"""Models package exports."""

from marketplace.models.ad import Ad, AdPosition
from marketplace.models.category import Category
from marketplace.models.product import Condition, Product
from marketplace.models.user import Role, User

__all__ = [
    "Ad",
    "AdPosition",
    "Category",
    "Condition",
    "Product",
    "Role",
    "User",
]
