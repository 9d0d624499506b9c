"""
OpenMAM — domain-specific HTTP exceptions.

All exceptions use preset status codes and detail messages so that callers
never need to specify these at the call site. The error handler in
openmam.middleware wraps them in the standard error envelope.
"""
from fastapi import HTTPException, status


# ── Auth ─────────────────────────────────────────────────────────────────────

class NotAuthenticated(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Open Source Cloud access token.",
            headers={"WWW-Authenticate": "Bearer"},
        )


# ── Asset / collection ───────────────────────────────────────────────────────

class AssetNotFound(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Asset not found.",
        )


class CollectionNotFound(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Collection not found.",
        )


class VariantNotAvailable(HTTPException):
    def __init__(self, variant: str) -> None:
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No {variant} available for this asset.",
        )


class InvalidRequest(HTTPException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )


# ── Platform / storage ───────────────────────────────────────────────────────

class PlatformUnavailable(HTTPException):
    def __init__(self, detail: str = "Media platform is unavailable. Please try again.") -> None:
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
        )


class StorageUnavailable(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Object storage is unavailable. Please try again.",
        )
