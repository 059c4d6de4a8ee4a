"""Health schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    experiments_loaded: int = Field(..., description="Number of valid cached experiments")
    version: str = Field(..., description="API version")
    last_updated: datetime | None = Field(None, description="Configuration lastUpdated")

    model_config = {"json_schema_extra": {
        "example": {
            "status": "healthy",
            "experiments_loaded": 3,
            "version": "0.1.0",
            "last_updated": "2025-01-15T10:00:00Z",
        }
    }}
