"""Shared building blocks for the API schemas.

The administration client speaks Spanish camelCase JSON, so every field
carries an alias; Python code keeps using the attribute names.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ApiModel(BaseModel):
    """Base schema: aliases on the wire, attribute names in Python."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class MessageResponse(ApiModel):
    """Generic message response."""

    message: str = Field(..., alias="mensaje")


class Page(ApiModel, Generic[T]):
    """Zero-based page of results."""

    content: list[T]
    total_pages: int = Field(..., alias="totalPages")
    total_elements: int = Field(..., alias="totalElements")
    number: int
    size: int
