"""
Pydantic models for API request/response schemas.
"""
from typing import Dict
from pydantic import BaseModel, Field
from datetime import datetime


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: datetime
    version: str = Field(..., description="Service version")
    components: Dict[str, str] = Field(default_factory=dict, description="Status of each analysis stage")
