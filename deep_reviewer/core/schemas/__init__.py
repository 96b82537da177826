"""Core schemas for API responses."""

from deep_reviewer.core.schemas.responses import ApiResponse, ErrorResponse, HealthResponse

__all__ = ["ApiResponse", "ErrorResponse", "HealthResponse"]
