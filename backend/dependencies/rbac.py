"""
RBAC dependencies for FastAPI routes
Role-based access control implemented as dependencies that run after authentication.
Which order an actor may touch, and which transition it may apply, is decided
later by the order lifecycle; this layer only gates whole resources.
"""
from fastapi import Depends, HTTPException, status, Request
from routers.auth.auth import get_current_user
import logging

logger = logging.getLogger(__name__)

RESOURCES_FOR_ROLES = {
    'admin': {
        'users': ['read', 'write', 'delete'],
        'products': ['read', 'write', 'delete'],
        'orders': ['read', 'write', 'delete'],
        'stock-orders': ['read', 'write', 'delete'],
        'payments': ['read'],
        'notifications': ['read', 'write'],
        'reviews': ['read', 'write', 'delete'],
    },
    'wholesaler': {
        'users/me': ['read', 'write'],
        'products': ['read', 'write', 'delete'],  # Bulk listings
        'stock-orders': ['read', 'write', 'delete'],  # Incoming requests
        'notifications': ['read', 'write'],
        'reviews': ['read'],
    },
    'retailer': {
        'users/me': ['read', 'write'],
        'products': ['read', 'write', 'delete'],  # Own inventory
        'orders': ['read', 'write', 'delete'],  # Customer orders they sell
        'stock-orders': ['read', 'write'],  # Requests they place
        'payments': ['read', 'write'],
        'notifications': ['read', 'write'],
        'reviews': ['read'],
    },
    'customer': {
        'users/me': ['read', 'write'],
        'products': ['read'],
        'orders': ['read', 'write'],
        'payments': ['read', 'write'],
        'notifications': ['read', 'write'],
        'reviews': ['read', 'write'],
    }
}


def normalize_path(path: str) -> str:
    """Normalize request path for RBAC checking"""
    segments = path.strip('/').split('/')

    if segments[0] == 'users' and len(segments) >= 2 and segments[1] == 'me':
        return 'users/me'

    return segments[0]


def translate_method_to_action(method: str) -> str:
    """Map HTTP methods to RBAC actions"""
    method_permission_mapping = {
        'GET': 'read',
        'POST': 'write',
        'PUT': 'write',
        'PATCH': 'write',
        'DELETE': 'delete',
    }
    return method_permission_mapping.get(method.upper(), 'read')


def has_permission(user_role: str, resource_name: str, required_permission: str) -> bool:
    """Check if user role has permission for the resource and action"""
    if user_role not in RESOURCES_FOR_ROLES:
        return False

    user_permissions = RESOURCES_FOR_ROLES[user_role]

    if resource_name in user_permissions:
        return required_permission in user_permissions[resource_name]

    parent_resource = resource_name.split('/')[0]
    if parent_resource in user_permissions:
        return required_permission in user_permissions[parent_resource]

    return False


def require_permission(resource: str = None, permission: str = None):
    """
    Create an RBAC dependency that checks permissions

    Args:
        resource: Specific resource name (auto-detected if not provided)
        permission: Specific permission (auto-detected if not provided)
    """
    def check_rbac(request: Request, current_user: dict = Depends(get_current_user)):
        user_role = current_user.get('role') or 'customer'
        resource_name = resource or normalize_path(str(request.url.path))
        required_permission = permission or translate_method_to_action(request.method)

        if not has_permission(user_role, resource_name, required_permission):
            logger.warning(f"Access denied - User: {user_role}, Resource: {resource_name}, Permission: {required_permission}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. {user_role.title()} role does not have {required_permission} permission for {resource_name}"
            )
        return True

    return check_rbac


def require_role(*roles: str):
    """Dependency admitting only the given roles"""
    def check_role(current_user: dict = Depends(get_current_user)):
        user_role = current_user.get('role') or 'customer'
        if user_role not in roles:
            logger.warning(f"Access denied - User: {user_role}, required one of {roles}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. This action is only available to {' or '.join(roles)} accounts"
            )
        return True

    return check_role


# Profile permissions
require_profile_read = require_permission("users/me", "read")
require_profile_write = require_permission("users/me", "write")

# Product permissions
require_product_read = require_permission("products", "read")
require_product_write = require_permission("products", "write")
require_product_delete = require_permission("products", "delete")

# Retail order permissions
require_order_read = require_permission("orders", "read")
require_order_write = require_permission("orders", "write")
require_order_delete = require_permission("orders", "delete")

# Stock order permissions
require_stock_order_read = require_permission("stock-orders", "read")
require_stock_order_write = require_permission("stock-orders", "write")
require_stock_order_delete = require_permission("stock-orders", "delete")

# Payments, notifications, reviews
require_payment_read = require_permission("payments", "read")
require_payment_write = require_permission("payments", "write")
require_notification_read = require_permission("notifications", "read")
require_notification_write = require_permission("notifications", "write")
require_review_read = require_permission("reviews", "read")
require_review_write = require_permission("reviews", "write")

# Role gates
require_customer = require_role("customer")
require_retailer = require_role("retailer")
require_wholesaler = require_role("wholesaler")
require_seller = require_role("retailer", "wholesaler")
