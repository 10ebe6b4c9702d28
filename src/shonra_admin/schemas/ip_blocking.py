"""IP blocking admin request schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class IPRequest(BaseModel):
    """A single IP address target."""

    ip: str = Field(..., min_length=1, max_length=64)


class BlockIPRequest(IPRequest):
    """Manual block with an optional duration and reason."""

    duration_ms: int | None = Field(None, alias="durationMs", gt=0)
    reason: str | None = Field(None, max_length=255)

    model_config = ConfigDict(populate_by_name=True)
