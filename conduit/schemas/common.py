"""
Response schemas shared by every listener.
"""

from typing import Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: Optional[str] = None
    constraint: Optional[str] = None
    request_id: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    listener: str
    database: str


class CapabilitiesResponse(BaseModel):
    """Services and capability flags exposed by a listener."""

    listener: str
    services: list[str]
    capabilities: dict[str, dict[str, bool]]
    cors_mode: str
