from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, StrictInt, StrictStr, field_validator

from app.services.paste_ledger import MAX_LIMIT_VALUE


class PasteCreateRequest(BaseModel):
    content: StrictStr = Field(..., description="Paste content")
    ttl_seconds: Optional[StrictInt] = Field(
        default=None,
        ge=1,
        le=MAX_LIMIT_VALUE,
        description="Optional time-to-live in seconds (>= 1)",
    )
    max_views: Optional[StrictInt] = Field(
        default=None,
        ge=1,
        le=MAX_LIMIT_VALUE,
        description="Optional maximum number of views (>= 1)",
    )

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must be a non-empty string")
        return value


class PasteCreatedResponse(BaseModel):
    id: str
    url: str


class PasteViewResponse(BaseModel):
    content: str
    remaining_views: Optional[int]
    expires_at: Optional[str]


class HealthResponse(BaseModel):
    ok: bool
