"""OAuth handshake and provider connection endpoints.

The callback is hit by the seller's browser after the provider redirect, so
every outcome is a redirect back to the dashboard; errors travel as query
parameters and are logged, never rendered as a raw 500.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from audit import log_audit_event
from container import ServiceContainer
from database import get_db
from dependencies import enforce_rate_limit, get_client_info, get_container, get_seller_id
from errors import StockBridgeError, ValidationFailed
from models import ConnectionType
from observability.request_id import get_request_id
from .schemas import (
    AuthorizeRequest,
    AuthorizeResponse,
    ManualConnectRequest,
    ConnectionResponse,
    DisconnectResponse,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/oauth", tags=["OAuth"])
connections_router = APIRouter(prefix="/v1/connections", tags=["Connections"], dependencies=[Depends(enforce_rate_limit)])


def _dashboard_redirect(container: ServiceContainer, **params) -> RedirectResponse:
    base = container.settings.DASHBOARD_URL.rstrip("/")
    query = urlencode({k: v for k, v in params.items() if v is not None})
    return RedirectResponse(f"{base}/seller/dashboard/integrations?{query}", status_code=status.HTTP_302_FOUND)


@router.post("/{provider}/authorize", response_model=AuthorizeResponse, dependencies=[Depends(enforce_rate_limit)])
def authorize(
    provider: str,
    body: Optional[AuthorizeRequest] = None,
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Start an OAuth connection; the client redirects the seller to authorizationUrl."""
    url = container.oauth_connector(db).begin_connect(seller_id, provider, sandbox=bool(body and body.sandbox))
    return AuthorizeResponse(request_id=get_request_id(), provider=provider, authorization_url=url)


@router.get("/callback", include_in_schema=False)
def oauth_callback(
    code: str = Query(""),
    state: str = Query(""),
    sandbox: bool = Query(False),
    error: str = Query(None),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
    client_info: dict = Depends(get_client_info),
):
    sandbox_flag = str(sandbox).lower()
    if error:
        logger.warning(f"Provider returned OAuth error: {error}", extra={"operation": "oauth_callback"})
        return _dashboard_redirect(container, sandbox=sandbox_flag, status="error", error=error)

    try:
        result = container.oauth_connector(db).complete_connect(code, state, sandbox=sandbox, client_info=client_info)
    except StockBridgeError as e:
        logger.warning(f"OAuth callback failed: {e.message}", extra={"operation": "oauth_callback", "error_code": e.code})
        return _dashboard_redirect(container, sandbox=sandbox_flag, status="error", error=e.code)
    except Exception:
        logger.exception("OAuth callback failed unexpectedly", extra={"operation": "oauth_callback"})
        return _dashboard_redirect(container, sandbox=sandbox_flag, status="error", error="internal_error")

    return _dashboard_redirect(container, sandbox=sandbox_flag, status="connected", provider=result.provider)


@connections_router.get("", response_model=list[ConnectionResponse])
def list_connections(
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    return [ConnectionResponse.model_validate(c) for c in container.vault.list_connections(db, seller_id)]


@connections_router.post("/{provider}/manual", response_model=ConnectionResponse, status_code=status.HTTP_201_CREATED)
def connect_manually(
    provider: str,
    body: ManualConnectRequest,
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
    client_info: dict = Depends(get_client_info),
):
    """Store API key credentials for providers without (or instead of) OAuth."""
    client = container.registry.get(provider)
    missing = [f for f in client.required_credential_fields() if not body.credentials.get(f)]
    if missing:
        raise ValidationFailed(f"Missing credential fields for {provider}: {missing}")

    credential = container.vault.put(
        db, seller_id, provider, body.credentials,
        sandbox=body.sandbox,
        connection_type=ConnectionType.API_KEY,
    )
    log_audit_event(
        db,
        action="connection.connected",
        seller_id=seller_id,
        entity_type="provider_credential",
        entity_id=provider,
        metadata={"provider": provider, "sandbox": body.sandbox, "connectionType": ConnectionType.API_KEY.value},
        **client_info,
    )
    db.commit()
    return ConnectionResponse.model_validate(credential)


@connections_router.delete("/{provider}", response_model=DisconnectResponse)
def disconnect(
    provider: str,
    seller_id: str = Depends(get_seller_id),
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
    client_info: dict = Depends(get_client_info),
):
    """Disconnect a provider: credentials are wiped, the row stays as disconnected."""
    container.registry.validate([provider])
    count = container.vault.disconnect(db, seller_id, provider)
    log_audit_event(
        db,
        action="connection.disconnected",
        seller_id=seller_id,
        entity_type="provider_credential",
        entity_id=provider,
        metadata={"provider": provider},
        **client_info,
    )
    db.commit()
    return DisconnectResponse(request_id=get_request_id(), provider=provider, disconnected=count)
