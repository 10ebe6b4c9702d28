"""Database models for the Shonra admin backend."""

from .admin_user import USER_STATUS_ACTIVE, USER_STATUS_INACTIVE, AdminUser
from .catalog import PRODUCT_STATUS_ACTIVE, PRODUCT_STATUS_INACTIVE, Category, SavedProduct
from .role import Permission, Role, role_permissions

__all__ = [
    "AdminUser",
    "USER_STATUS_ACTIVE",
    "USER_STATUS_INACTIVE",
    "Category",
    "SavedProduct",
    "PRODUCT_STATUS_ACTIVE",
    "PRODUCT_STATUS_INACTIVE",
    "Permission",
    "Role",
    "role_permissions",
]
