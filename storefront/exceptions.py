"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class AuthError(StorefrontError):
    """Raised when app-store API credentials are missing or rejected."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"App store authentication failed: {message}")


class UpstreamError(StorefrontError):
    """Raised when the app-store API is unreachable, rate-limited or errors."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.message = message
        self.status = status
        prefix = f"App store API error ({status})" if status else "App store API error"
        super().__init__(f"{prefix}: {message}")


class TransformError(StorefrontError):
    """Raised when a single fetched store record cannot be normalized."""

    def __init__(self, sku: str | None, reason: str) -> None:
        self.sku = sku
        self.reason = reason
        super().__init__(f"Cannot normalize store product {sku or '<no sku>'}: {reason}")


class LinkIntegrityWarning(StorefrontError):
    """Raised inside the link maintainer when one platform link step fails."""

    def __init__(self, iap_product_id: str, platform: str, reason: str) -> None:
        self.iap_product_id = iap_product_id
        self.platform = platform
        self.reason = reason
        super().__init__(f"Link integrity issue on {platform} IAP {iap_product_id}: {reason}")


class BatchWriteError(StorefrontError):
    """Raised when the document store rejects a batch."""

    def __init__(self, chunk_index: int, size: int, message: str) -> None:
        self.chunk_index = chunk_index
        self.size = size
        self.message = message
        super().__init__(f"Batch {chunk_index} ({size} writes) rejected: {message}")


class DocumentStoreError(StorefrontError):
    """Raised when a document store operation fails unexpectedly."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Document store error: {message}")


class ResourceNotFoundError(StorefrontError):
    """Raised when a requested document does not exist."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AuthenticationError(StorefrontError):
    """Raised when admin authentication fails (missing or invalid token)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class AuthorizationError(StorefrontError):
    """Raised when an admin lacks the required role."""

    def __init__(self, required_role: str) -> None:
        self.required_role = required_role
        super().__init__(f"Authorization failed: role {required_role} required")
