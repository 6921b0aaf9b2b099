"""Domain exception hierarchy for StockBridge.

Every error raised across a component boundary derives from StockBridgeError.
Each class carries the HTTP status and machine-readable code used by the API
error envelope ({success: false, error, code, requestId, timestamp}).

Provider errors are normalized at the ProviderClient boundary, so callers never
see httpx exceptions or vendor-specific error shapes.
"""

from typing import Any, Optional


class StockBridgeError(Exception):
    """Base class for all StockBridge domain errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "error": self.message, **self.details}


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------

class ProviderError(StockBridgeError):
    """Base for failures reported by (or while talking to) a provider."""

    status_code = 502
    code = "provider_error"

    def __init__(self, message: str = "", provider: Optional[str] = None, **details: Any):
        super().__init__(message, **details)
        self.provider = provider


class ProviderUnavailable(ProviderError):
    """Network failure, timeout or 5xx. Transient, retried per backoff policy."""

    status_code = 503
    code = "provider_unavailable"


class ProviderAuthError(ProviderError):
    """Expired or invalid credential. Requires reconnection, never auto-retried."""

    status_code = 424
    code = "provider_auth_error"


class RateLimited(ProviderError):
    """Provider throttled the call; retry after the hinted delay."""

    status_code = 429
    code = "rate_limited"

    def __init__(
        self,
        message: str = "",
        provider: Optional[str] = None,
        retry_after_seconds: float = 60.0,
        **details: Any,
    ):
        super().__init__(
            message or f"Rate limited, retry after {retry_after_seconds:g}s",
            provider=provider,
            **details,
        )
        self.retry_after_seconds = retry_after_seconds


class ProviderTransferError(ProviderError):
    """Provider rejected a stock transfer.

    reason is one of: insufficient_stock, unsupported_route, rate_limited,
    provider_rejected.
    """

    status_code = 422
    code = "provider_transfer_error"

    def __init__(self, message: str = "", provider: Optional[str] = None, reason: str = "provider_rejected", **details: Any):
        super().__init__(message or f"Transfer rejected: {reason}", provider=provider, **details)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class MalformedPayload(ProviderError):
    """Payload is missing required fields. Dropped and logged, never retried."""

    status_code = 400
    code = "malformed_payload"


# ---------------------------------------------------------------------------
# Caller errors
# ---------------------------------------------------------------------------

class UnknownProvider(StockBridgeError):
    status_code = 400
    code = "unknown_provider"


class ValidationFailed(StockBridgeError):
    status_code = 400
    code = "validation_error"


class InsufficientStock(StockBridgeError):
    status_code = 409
    code = "insufficient_stock"

    def __init__(self, message: str = "", available: int = 0, requested: int = 0):
        super().__init__(
            message or f"Requested {requested} units but only {available} available",
            available=available,
            requested=requested,
        )
        self.available = available
        self.requested = requested


class InvalidWarehouse(StockBridgeError):
    status_code = 400
    code = "invalid_warehouse"


class ResourceLocked(StockBridgeError):
    """Another operation holds the lock for this resource."""

    status_code = 409
    code = "resource_locked"


class TransferNotFound(StockBridgeError):
    status_code = 404
    code = "transfer_not_found"


class TransferNotCancellable(StockBridgeError):
    status_code = 409
    code = "transfer_not_cancellable"


class ScheduleNotFound(StockBridgeError):
    status_code = 404
    code = "schedule_not_found"


class InvalidFrequency(StockBridgeError):
    status_code = 400
    code = "invalid_frequency"


class NotFound(StockBridgeError):
    status_code = 404
    code = "not_found"


class StateTransitionError(StockBridgeError):
    """Raised when an invalid state transition is attempted."""

    status_code = 409
    code = "invalid_state_transition"


# ---------------------------------------------------------------------------
# Security errors (logged with security_event=True and audited)
# ---------------------------------------------------------------------------

class SecurityRejection(StockBridgeError):
    status_code = 401
    code = "security_rejection"


class InvalidSignature(SecurityRejection):
    code = "invalid_signature"


class InvalidOrExpiredState(SecurityRejection):
    status_code = 400
    code = "invalid_or_expired_state"


class AuthenticationError(StockBridgeError):
    status_code = 401
    code = "unauthorized"


# ---------------------------------------------------------------------------
# Credential vault
# ---------------------------------------------------------------------------

class CredentialNotFound(StockBridgeError):
    status_code = 404
    code = "credential_not_found"


class VaultError(StockBridgeError):
    """Encryption or decryption failure (wrong key, tampered payload)."""

    status_code = 500
    code = "vault_error"


class TooManyRequests(StockBridgeError):
    """Caller exceeded the inbound API rate limit."""

    status_code = 429
    code = "too_many_requests"

    def __init__(self, message: str = "", retry_after_seconds: int = 60):
        super().__init__(message or "Rate limit exceeded", retry_after_seconds=retry_after_seconds)
        self.retry_after_seconds = retry_after_seconds
