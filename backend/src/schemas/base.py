"""Shared request/response schema base.

The public API speaks camelCase; Python code uses snake_case. CamelModel
accepts either on input and emits camelCase (FastAPI serializes response
models by alias).
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class ErrorResponse(CamelModel):
    """Error envelope returned by every failing endpoint."""
    success: bool = Field(False, description="Always false")
    error: str = Field(..., description="Human-readable message")
    code: str = Field(..., description="Machine-readable error code")
    request_id: str = Field(..., description="Correlation id, also in X-Request-ID")
    timestamp: datetime = Field(..., description="Server time of the failure")
    details: Optional[dict[str, Any]] = Field(None, description="Structured context, e.g. {available, requested}")

    class Config:
        json_schema_extra = {
            "example": {
                "success": False,
                "error": "Requested 10 units but only 7 available",
                "code": "insufficient_stock",
                "requestId": "5f1c7c3e-2d8a-4f5e-9a51-0d5d4c6b7e21",
                "timestamp": "2025-01-04T12:00:00Z",
            }
        }


class SuccessEnvelope(CamelModel):
    success: bool = True
    request_id: Optional[str] = None
