"""
Admin authentication dependencies for protecting admin routes.

Provides FastAPI dependencies for JWT validation and role checking.
"""

from fastapi import Depends, Header, HTTPException, Request, status
from structlog import get_logger

from storefront.api.dependencies import get_document_store
from storefront.config import get_settings
from storefront.db.document_store import DocumentStore
from storefront.exceptions import AuthenticationError, AuthorizationError
from storefront.models.api import AdminRole
from storefront.models.domain import AdminUser
from storefront.services.admin_auth import AdminAuthService

logger = get_logger(__name__)


def get_admin_auth_service(
    store: DocumentStore = Depends(get_document_store),
) -> AdminAuthService:
    """Get admin auth service instance."""
    settings = get_settings()
    return AdminAuthService(
        store=store,
        jwt_secret=settings.ADMIN_JWT_SECRET,
        jwt_expire_hours=settings.admin_jwt_expire_hours,
        bootstrap_emails=settings.admin_bootstrap_emails,
    )


async def get_current_admin(
    request: Request,
    authorization: str | None = Header(None),
    auth_service: AdminAuthService = Depends(get_admin_auth_service),
) -> AdminUser:
    """
    Get current authenticated admin user.

    Checks Authorization header first, then cookie.

    Raises:
        HTTPException(401): If no token provided or token is invalid
        HTTPException(403): If user account is deactivated
    """
    token = None
    if authorization and authorization.startswith("Bearer "):
        token = authorization.removeprefix("Bearer ")

    if not token:
        token = request.cookies.get("admin_token")

    if not token:
        logger.warning("admin_auth_no_token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        admin_user = await auth_service.authenticate(token)
    except AuthenticationError as exc:
        logger.warning("admin_auth_failed", reason=exc.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc

    if not admin_user.is_active:
        logger.warning("admin_auth_user_inactive", email=admin_user.email)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    logger.debug("admin_auth_success", email=admin_user.email, role=admin_user.role.value)
    return admin_user


async def require_admin_role(
    admin: AdminUser = Depends(get_current_admin),
) -> AdminUser:
    """
    Require admin role (not just viewer).

    Use this dependency for routes that modify data or trigger jobs.
    Viewers can only read data.

    Raises:
        HTTPException(403): If user is not an admin
    """
    try:
        AdminAuthService.require_role(admin, AdminRole.ADMIN)
    except AuthorizationError as exc:
        logger.warning(
            "admin_auth_insufficient_role",
            email=admin.email,
            role=admin.role.value,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Admin role required. Your role: {admin.role.value} (read-only)",
        ) from exc

    return admin
