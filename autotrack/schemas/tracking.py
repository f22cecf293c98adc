from typing import Any

from pydantic import Field, field_validator

from autotrack.schemas.common import CamelModel


class PageViewIn(CamelModel):
    """Page view beacon."""

    path: str = Field(..., min_length=1, max_length=2048)
    referer: str | None = Field(None, max_length=2048)


class ProductViewIn(CamelModel):
    """Product (car listing) view beacon, sent when the visitor leaves the page."""

    car_id: str = Field(..., min_length=1, max_length=64)
    duration_ms: int = Field(..., ge=0)
    scroll_depth: int | None = Field(None, ge=0, le=100)
    source: str | None = Field(None, max_length=64)
    referer: str | None = Field(None, max_length=2048)

    @field_validator("scroll_depth", mode="before")
    @classmethod
    def clamp_scroll_depth(cls, v: Any) -> Any:
        # Browsers can report slightly over 100% on elastic scrolling
        if isinstance(v, (int, float)):
            return max(0, min(100, round(v)))
        return v


class SocialClickData(CamelModel):
    member_name: str = Field(..., min_length=1, max_length=255)
    platform: str = Field(..., min_length=1, max_length=64)


class TrackEventIn(CamelModel):
    """Generic client event. Only known event types are recorded."""

    event_type: str = Field(..., min_length=1, max_length=64)
    data: dict[str, Any] = Field(default_factory=dict)


class PageViewResponse(CamelModel):
    success: bool = True
    visitor_id: str | None = None
    country: str
    is_new_visitor: bool = False
    deduplicated: bool | None = None
    filtered: bool | None = None


class TrackResponse(CamelModel):
    success: bool = True
    deduplicated: bool | None = None
    filtered: bool | None = None
