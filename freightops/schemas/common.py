"""
Common Schemas
Shared Pydantic models for API error bodies
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional


class ErrorResponse(BaseModel):
    """
    Standard error response model

    Used for all engine errors surfaced by the API
    """
    error: str = Field(..., description="Error type or category")
    message: str = Field(..., description="Human-readable error message")
    details: Dict[str, Any] = Field(default_factory=dict, description="Structured error details")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "insufficient_stock",
                "message": "Insufficient stock. Available: 30, Still needed: 20",
                "details": {"available": 30, "required": 50},
            }
        }
    )


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    detail: Optional[str] = None
