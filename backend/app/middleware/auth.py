"""
Bearer JWT authentication and role/permission gates for FastAPI.
The token's user must be active and belong to the request's tenant.
"""
import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.dependencies import Services, get_services
from app.errors import AuthError, ForbiddenError
from app.middleware.tenant import get_current_tenant
from app.models.schemas import Tenant, User
from app.services.auth_service import decode_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    tenant: Tenant = Depends(get_current_tenant),
    services: Services = Depends(get_services),
) -> User:
    """
    Dependency to get the authenticated user of the current tenant.
    Raises 401 if the token is missing, invalid, expired, or names a user
    outside this tenant.

    Usage:
        @router.get("/protected")
        async def protected_route(current_user: User = Depends(get_current_user)):
            return {"user_id": current_user.id}
    """
    if not credentials or not credentials.credentials:
        raise AuthError("No token provided")

    claims = decode_token(credentials.credentials, services.settings)

    token_tenant = claims.get("tenant_id")
    if token_tenant and token_tenant != tenant.id:
        logger.warning(f"⚠️ Token for tenant {token_tenant} used against tenant {tenant.id}")
        raise AuthError("Invalid token or user not found")

    user = services.db.get_user(tenant.id, claims["sub"])
    if user is None or not user.is_active:
        logger.warning(f"⚠️ Token user {claims['sub']} not found or inactive in tenant {tenant.id}")
        raise AuthError("Invalid token or user not found")

    return user


def require_permission(permission: str):
    """Dependency factory: the current user must hold the permission (admins hold all)."""

    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role != "admin" and permission not in current_user.permissions:
            raise ForbiddenError("Insufficient permissions", error="Access denied")
        return current_user

    return checker


def ensure_self_or_admin(current_user: User, user_id: str, what: str = "analytics") -> None:
    if current_user.id != user_id and current_user.role != "admin":
        raise ForbiddenError(f"You can only view your own {what}")
