"""
Base Provider Client - Common functionality for all HTTP provider integrations

Provides shared utilities for credential validation, HTTP calls with timeouts,
latency measurement, and normalization of transport and status errors into
the ProviderError family.
"""

import json
import logging
import time
from abc import ABC
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from config import Settings
from errors import (
    MalformedPayload,
    ProviderAuthError,
    ProviderError,
    ProviderTransferError,
    ProviderUnavailable,
    RateLimited,
)
from observability.metrics import provider_call_seconds, provider_errors_total
from .ports import ProviderClient


logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 60.0

# Error kind labels for stockbridge_provider_errors_total
ERROR_KINDS = (
    (RateLimited, "rate_limited"),
    (ProviderAuthError, "auth"),
    (ProviderUnavailable, "unavailable"),
    (ProviderTransferError, "transfer"),
    (MalformedPayload, "malformed"),
)


def error_kind(exc: ProviderError) -> str:
    for exc_type, kind in ERROR_KINDS:
        if isinstance(exc, exc_type):
            return kind
    return "error"


def parse_retry_after(value: Optional[str], default: float = DEFAULT_RETRY_AFTER_SECONDS) -> float:
    """
    Parse a Retry-After header (delta-seconds or HTTP-date).

    Args:
        value: Raw header value
        default: Delay used when the header is missing or unparseable

    Returns:
        Delay in seconds (never negative)
    """
    if not value:
        return default
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max(0.0, (retry_at - datetime.now(timezone.utc)).total_seconds())


class BaseProviderClient(ProviderClient, ABC):
    """
    Base class for HTTP provider implementations.

    Provides common functionality:
    - Credential validation helpers
    - One request path with timeout, latency metric and error normalization
    - JSON webhook parsing

    Subclasses implement the ProviderClient operations and may override
    _check_envelope() for vendors that report errors inside 200 responses.
    """

    #: Provider-specific transfer rejection codes mapped to common reasons
    TRANSFER_REASONS: dict[str, str] = {
        "insufficient_stock": "insufficient_stock",
        "insufficient_inventory": "insufficient_stock",
        "unsupported_route": "unsupported_route",
        "route_not_supported": "unsupported_route",
    }

    def __init__(self, http_client: httpx.Client, settings: Settings):
        self._http = http_client
        self._settings = settings
        self._timeout = settings.PROVIDER_TIMEOUT_SECONDS

    def validate_required_fields(self, credentials: dict[str, Any], required_fields: list[str]) -> None:
        """
        Validate that all required credential fields are present.

        A credential missing fields cannot be repaired by retrying, so this
        raises ProviderAuthError (the seller must reconnect).

        Raises:
            ProviderAuthError: If any required field is missing or empty
        """
        missing_fields = []
        for field_name in required_fields:
            if field_name not in credentials or credentials[field_name] is None:
                missing_fields.append(field_name)
            elif isinstance(credentials[field_name], str) and not credentials[field_name].strip():
                missing_fields.append(f"{field_name} (empty)")

        if missing_fields:
            raise ProviderAuthError(
                f"Missing or empty credential fields: {', '.join(missing_fields)}",
                provider=self.name,
            )

    def parse_json_payload(self, raw_payload: bytes) -> dict[str, Any]:
        """Decode a webhook body into a JSON object or raise MalformedPayload."""
        try:
            payload = json.loads(raw_payload)
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedPayload(f"Webhook body is not valid JSON: {e}", provider=self.name)
        if not isinstance(payload, dict):
            raise MalformedPayload("Webhook body must be a JSON object", provider=self.name)
        return payload

    def require_fields(self, payload: dict[str, Any], fields: list[str]) -> None:
        missing = [f for f in fields if payload.get(f) in (None, "")]
        if missing:
            raise MalformedPayload(
                f"Webhook payload missing required fields: {', '.join(missing)}",
                provider=self.name,
            )

    def request(
        self,
        method: str,
        url: str,
        operation: str,
        *,
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[Any] = None,
        form: Optional[dict[str, Any]] = None,
    ) -> Any:
        """
        Perform one HTTP call and return the decoded JSON body.

        Args:
            method: HTTP method
            url: Absolute URL
            operation: Operation label for metrics and transfer error mapping

        Raises:
            ProviderUnavailable: timeout, transport error, 5xx or undecodable body
            ProviderAuthError: 401/403
            RateLimited: 429 (Retry-After honoured)
            ProviderTransferError: 4xx on the transfer_stock operation
            ProviderError: any other 4xx
        """
        start = time.perf_counter()
        try:
            try:
                response = self._http.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=json_body,
                    data=form,
                    timeout=self._timeout,
                )
            except httpx.TimeoutException as e:
                raise ProviderUnavailable(
                    f"{self.name} {operation} timed out after {self._timeout:g}s",
                    provider=self.name,
                ) from e
            except httpx.HTTPError as e:
                raise ProviderUnavailable(
                    f"{self.name} {operation} transport error: {e}",
                    provider=self.name,
                ) from e

            self._raise_for_status(response, operation)

            if not response.content:
                body: Any = {}
            else:
                try:
                    body = response.json()
                except ValueError as e:
                    raise ProviderUnavailable(
                        f"{self.name} {operation} returned a non-JSON body",
                        provider=self.name,
                    ) from e

            self._check_envelope(body, operation)
            return body

        except ProviderError as e:
            provider_errors_total.labels(provider=self.name, kind=error_kind(e)).inc()
            logger.warning(
                f"{self.name} {operation} failed: {e}",
                extra={"provider": self.name, "operation": operation, "error_code": e.code},
            )
            raise
        finally:
            provider_call_seconds.labels(provider=self.name, operation=operation).observe(
                time.perf_counter() - start
            )

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        status = response.status_code
        if status < 400:
            return

        if status == 429:
            raise RateLimited(
                provider=self.name,
                retry_after_seconds=parse_retry_after(response.headers.get("Retry-After")),
            )
        if status in (401, 403):
            raise ProviderAuthError(
                f"{self.name} rejected the credential ({status})",
                provider=self.name,
            )
        if status >= 500:
            raise ProviderUnavailable(
                f"{self.name} {operation} failed with {status}",
                provider=self.name,
            )

        detail = self._error_detail(response)
        if operation == "transfer_stock":
            raise ProviderTransferError(
                f"{self.name} rejected transfer: {detail['message']}",
                provider=self.name,
                reason=self.transfer_reason(detail["code"]),
            )
        raise ProviderError(
            f"{self.name} {operation} failed with {status}: {detail['message']}",
            provider=self.name,
        )

    def _error_detail(self, response: httpx.Response) -> dict[str, str]:
        try:
            body = response.json()
        except ValueError:
            return {"code": "", "message": response.text[:200]}
        if not isinstance(body, dict):
            return {"code": "", "message": str(body)[:200]}
        code = body.get("code") or body.get("error") or body.get("error_code") or ""
        message = body.get("message") or body.get("error_description") or body.get("error") or ""
        return {"code": str(code), "message": str(message) or response.reason_phrase}

    def transfer_reason(self, vendor_code: str) -> str:
        """Map a vendor rejection code to insufficient_stock/unsupported_route/provider_rejected."""
        return self.TRANSFER_REASONS.get((vendor_code or "").lower(), "provider_rejected")

    def _check_envelope(self, body: Any, operation: str) -> None:
        """Hook for vendors that report errors inside successful responses."""
        return None
