"""
Pydantic response schemas.
"""

from conduit.schemas.common import CapabilitiesResponse, ErrorResponse, HealthResponse

__all__ = [
    "CapabilitiesResponse",
    "ErrorResponse",
    "HealthResponse",
]
