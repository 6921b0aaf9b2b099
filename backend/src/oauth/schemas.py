"""Pydantic schemas for OAuth and connection endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from schemas.base import CamelModel, SuccessEnvelope


class AuthorizeRequest(CamelModel):
    sandbox: bool = False


class AuthorizeResponse(SuccessEnvelope):
    provider: str
    authorization_url: str


class ManualConnectRequest(CamelModel):
    credentials: dict[str, Any] = Field(..., description="Provider API key fields, e.g. {apiKey, apiSecret}")
    sandbox: bool = False


class ConnectionResponse(CamelModel):
    """Connection metadata. Never includes the credential payload."""
    provider: str = Field(..., validation_alias="provider_name")
    sandbox: bool
    connection_type: str
    status: str
    expires_at: Optional[datetime] = None
    connected_at: Optional[datetime] = None


class DisconnectResponse(SuccessEnvelope):
    provider: str
    disconnected: int
