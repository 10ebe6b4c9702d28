"""Category request schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CategoryCreate(BaseModel):
    """Payload for creating a category."""

    name: str = Field(..., min_length=1, max_length=255)
    is_active: bool = Field(True, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


class CategoryUpdate(BaseModel):
    """Partial category update."""

    name: str | None = Field(None, min_length=1, max_length=255)
    is_active: bool | None = Field(None, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)
