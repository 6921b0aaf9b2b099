"""Global FastAPI dependencies for seller scoping and database access.

This module provides:
- get_container: the process ServiceContainer built by the lifespan handler
- get_seller_id: resolve the seller from the X-API-Key header
- enforce_rate_limit: shared sliding-window limiter keyed on the API key

Every seller-scoped endpoint depends on get_seller_id, so the seller id
always comes from the verified key and never from the request body.
"""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from audit import client_info
from auth.api_key import hash_api_key, verify_api_key
from container import ServiceContainer
from database import get_db
from errors import AuthenticationError, TooManyRequests


API_KEY_HEADER = "X-API-Key"


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_seller_id(
    request: Request,
    x_api_key: Optional[str] = Header(default=None, alias=API_KEY_HEADER),
    db: Session = Depends(get_db),
) -> str:
    """Resolve the authenticated seller.

    Raises:
        AuthenticationError (401): Missing, unknown or revoked key
    """
    record = verify_api_key(db, x_api_key)
    if record is None:
        raise AuthenticationError("Missing or invalid API key")
    request.state.seller_id = record.seller_id
    return record.seller_id


def enforce_rate_limit(
    request: Request,
    x_api_key: Optional[str] = Header(default=None, alias=API_KEY_HEADER),
    container: ServiceContainer = Depends(get_container),
) -> None:
    """Apply the shared rate limiter ahead of authenticated routes.

    Raises:
        TooManyRequests (429): Window exhausted, Retry-After set by the error handler
    """
    if not x_api_key:
        return
    decision = container.rate_limiter.hit(hash_api_key(x_api_key))
    if not decision.allowed:
        raise TooManyRequests(retry_after_seconds=decision.retry_after_seconds)


def get_client_info(request: Request) -> dict:
    """ip_address/user_agent for audit entries."""
    return client_info(request)
