"""
Shared schema primitives used across the API.
"""
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict


class FieldError(BaseModel):
    """A single field-level validation error."""
    field: str
    message: str
    type: str


class ErrorResponse(BaseModel):
    """Standard error envelope returned for all 4xx/5xx responses."""
    model_config = ConfigDict(from_attributes=True)

    code: str
    message: str
    details: Optional[dict[str, Any]] = None


def error_responses(descriptions: dict[int, str]) -> dict[int, dict[str, Any]]:
    """OpenAPI `responses=` entries that document the error envelope."""
    return {
        status_code: {"model": ErrorResponse, "description": description}
        for status_code, description in descriptions.items()
    }
