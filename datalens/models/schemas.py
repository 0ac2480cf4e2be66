"""
Pydantic schemas shared by API routes.
"""
from typing import Dict
from datetime import datetime, timezone
from pydantic import BaseModel, Field, ConfigDict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ErrorResponse(BaseModel):
    """Error envelope returned by every failing request."""
    error: str = Field(..., description="Human readable error message")

    model_config = ConfigDict(json_schema_extra={
        "example": {"error": "Table is required"}
    })


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(default_factory=_utcnow)
    services: Dict[str, str] = Field(default_factory=dict, description="Dependent service statuses")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "status": "healthy",
            "version": "1.0.0",
            "timestamp": "2025-12-30T10:30:00Z",
            "services": {
                "metadata_store": "connected",
                "connection_pools": "2"
            }
        }
    })


# OpenAPI documentation for the ``{"error": ...}`` envelope
ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request parameters"},
    401: {"model": ErrorResponse, "description": "Missing or invalid bearer token"},
    404: {"model": ErrorResponse, "description": "Lens, table or column not found"},
    500: {"model": ErrorResponse, "description": "Database or configuration failure"},
}
