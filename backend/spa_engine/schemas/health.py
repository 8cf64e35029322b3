"""Health check response schemas."""
from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    status: str = Field(description="Health status")
    service: str = Field(description="Service name")
    version: str = Field(description="API version")
    environment: str = Field(description="Environment name")
    database: str = Field(description="Database connectivity (ok/error)")
    timestamp: str = Field(description="UTC ISO8601Z timestamp of the health response")


class HealthLiteResponse(BaseModel):
    """Response for lightweight health check endpoint."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    status: str = Field(description="Health status (ok/error)")
