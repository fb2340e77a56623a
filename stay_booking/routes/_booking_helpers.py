"""
Internal helper functions for booking and payment route handlers.

Maps domain exceptions to HTTP errors and checks admin credentials, so the
route handlers keep the same try/except shape.
"""

from __future__ import annotations

import base64
import hmac

import structlog
from fastapi import HTTPException, Request, status

from stay_booking import config
from stay_booking.errors import BookingConflictError, BookingError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)


def http_error_for(error: BookingError) -> HTTPException:
    """
    Translate a domain error into the matching HTTPException.

    Args:
        error: Raised by a service

    Returns:
        HTTPException: 409 for conflicts, 400 for other validation errors,
        404 for missing records, 500 otherwise
    """
    if isinstance(error, BookingConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(error), "field": error.field},
        )
    if isinstance(error, ValidationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(error), "field": error.field},
        )
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    return HTTPException(status_code=500, detail="Internal server error")


def validate_basic_auth(auth_header: str | None) -> bool:
    """
    Validate HTTP Basic Auth credentials against the admin credentials.

    Args:
        auth_header: Authorization header value (e.g., "Basic dXNlcjpwYXNz")

    Returns:
        bool: True if credentials match, False otherwise (always False when
        no admin credentials are configured)
    """
    if not config.ADMIN_USERNAME or not config.ADMIN_PASSWORD:
        return False
    if not auth_header or not auth_header.startswith("Basic "):
        return False

    try:
        encoded_credentials = auth_header.replace("Basic ", "")
        decoded_credentials = base64.b64decode(encoded_credentials).decode("utf-8")
        username, password = decoded_credentials.split(":", 1)
    except Exception:
        logger.exception("Failed to decode Basic Auth header")
        return False

    return hmac.compare_digest(
        username.encode(), config.ADMIN_USERNAME.encode()
    ) and hmac.compare_digest(password.encode(), config.ADMIN_PASSWORD.encode())


def require_admin(request: Request) -> None:
    """
    Dependency guarding admin routes.

    Raises:
        HTTPException: 401 with a Basic challenge if credentials are missing or wrong
    """
    if not validate_basic_auth(request.headers.get("Authorization")):
        logger.warning("admin_authentication_failed", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )
