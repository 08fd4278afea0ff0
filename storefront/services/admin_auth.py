"""
Admin authorization service.

Issues and verifies HS256 admin tokens and keeps admin authorization
records in the ``admins`` collection, keyed by normalized email.
"""

from collections.abc import Iterable
from datetime import timedelta

import jwt
from structlog import get_logger

from storefront.db.document_store import ADMINS, DocumentStore
from storefront.exceptions import AuthenticationError, AuthorizationError
from storefront.models.api import AdminRole
from storefront.models.domain import AdminUser, Clock, utc_now

logger = get_logger(__name__)

JWT_ALGORITHM = "HS256"


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AdminAuthService:
    """Admin authentication service."""

    def __init__(
        self,
        store: DocumentStore,
        jwt_secret: str,
        jwt_expire_hours: int = 24,
        bootstrap_emails: Iterable[str] = (),
        clock: Clock = utc_now,
    ) -> None:
        """
        Initialize admin auth service.

        Args:
            store: Document store holding the admins collection
            jwt_secret: HS256 signing secret
            jwt_expire_hours: Token lifetime
            bootstrap_emails: Emails that are created with the admin role
            clock: Source of issue/login timestamps
        """
        self.store = store
        self.jwt_secret = jwt_secret
        self.jwt_expire_hours = jwt_expire_hours
        self.bootstrap_emails = {normalize_email(e) for e in bootstrap_emails}
        self.clock = clock

    async def get_or_create_admin(self, email: str, name: str | None = None) -> AdminUser:
        """
        Get an admin record by email, creating it on first sight.

        Bootstrap emails are created as admins; everyone else starts as viewer.

        Raises:
            ValueError: If the email is empty
            AuthenticationError: If the account is deactivated
        """
        key = normalize_email(email)
        if not key:
            raise ValueError("Email required")

        now = self.clock()
        snapshot = await self.store.get(ADMINS, key)
        if snapshot is not None:
            admin = AdminUser.from_document(snapshot.id, snapshot.data)
            if not admin.is_active:
                logger.warning("inactive_admin_login_attempt", email=key)
                raise AuthenticationError(f"account {key} is deactivated")
            updates: dict[str, object] = {"lastLoginAt": now}
            if name and name != admin.name:
                updates["name"] = name
            await self.store.update(ADMINS, key, updates)
            return AdminUser(
                email=admin.email,
                name=name or admin.name,
                role=admin.role,
                is_active=admin.is_active,
                created_at=admin.created_at,
                last_login_at=now,
            )

        role = AdminRole.ADMIN if key in self.bootstrap_emails else AdminRole.VIEWER
        admin = AdminUser(
            email=key,
            name=name or key.split("@")[0],
            role=role,
            created_at=now,
            last_login_at=now,
        )
        await self.store.set(ADMINS, key, admin.to_document())

        logger.info("new_admin_user_created", email=key, role=role.value)
        return admin

    async def get_admin(self, email: str) -> AdminUser | None:
        snapshot = await self.store.get(ADMINS, normalize_email(email))
        if snapshot is None:
            return None
        return AdminUser.from_document(snapshot.id, snapshot.data)

    def create_token(self, admin: AdminUser) -> str:
        """Create JWT token for admin user."""
        now = self.clock()
        payload = {
            "sub": admin.email,
            "role": admin.role.value,
            "iat": now,
            "exp": now + timedelta(hours=self.jwt_expire_hours),
        }
        return jwt.encode(payload, self.jwt_secret, algorithm=JWT_ALGORITHM)

    def verify_token(self, token: str) -> dict[str, str | int] | None:
        """Verify JWT token and return payload."""
        try:
            payload: dict[str, str | int] = jwt.decode(
                token, self.jwt_secret, algorithms=[JWT_ALGORITHM]
            )
            return payload
        except jwt.ExpiredSignatureError:
            logger.warning("jwt_token_expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning("jwt_token_invalid", error=str(e))
            return None

    async def authenticate(self, token: str) -> AdminUser:
        """
        Resolve a bearer token to its admin record.

        Raises:
            AuthenticationError: If the token is invalid or the admin is unknown
        """
        payload = self.verify_token(token)
        if not payload or not payload.get("sub"):
            raise AuthenticationError("Invalid or expired token")

        admin = await self.get_admin(str(payload["sub"]))
        if admin is None:
            raise AuthenticationError("User not found")
        return admin

    @staticmethod
    def require_role(admin: AdminUser, role: AdminRole) -> None:
        """
        Raises:
            AuthorizationError: If the admin does not hold the role
        """
        if role == AdminRole.ADMIN and not admin.is_admin:
            raise AuthorizationError(role.value)
