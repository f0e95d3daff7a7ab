"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM models MUST inherit from BaseResponseSchema.
"""

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class OrderResponse(BaseResponseSchema):
            id: int
            status: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """Base class for create/input schemas. Unknown fields are rejected."""
    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
    )


class ErrorBody(BaseModel):
    kind: str
    message: str


class ErrorResponse(BaseModel):
    """Shape of every business error returned by the API."""
    error: ErrorBody
