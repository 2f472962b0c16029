"""Shared Pydantic schema base with camelCase aliases."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel

from gatepass.domain.mixins import ensure_utc


class CamelModel(BaseModel):
    """All API schemas inherit from this to auto-generate camelCase aliases."""

    model_config = {
        "populate_by_name": True,
        "alias_generator": to_camel,
        "from_attributes": True,
    }


class UTCInputModel(CamelModel):
    """Request body whose datetime fields are normalised to aware UTC."""

    @field_validator("*", mode="after")
    @classmethod
    def _utc(cls, value):
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value


class HealthResponse(BaseModel):
    """Health-check response returned by /health."""
    status: str = "ok"
    app: str
    env: str
    database: Optional[str] = None
