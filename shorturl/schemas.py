"""Pydantic schemas for the cached URL snapshot and the HTTP layer.

Schema Hierarchy
=================
::
    CachedURLPayload (Redis snapshot of a URL row)
    ├─ id, short_code, url_hash, original_url
    ├─ click_count, created_at, updated_at
    └─ expires_at?, is_active

    URLCreate (Input)
    ├─ url: str
    └─ expires_in: str | None   e.g. "24h", "7d"

    CreateURLResponse (Output)
    ├─ short_code, short_url, original_url
    └─ expires_at?

    URLStatsResponse (Output)
    ├─ short_code, original_url, click_count
    ├─ created_at, expires_at?
    └─ is_active

Key Behaviours
===============
- Destination URL validation lives in the service, not here, so the core
  rejects bad input the same way whichever caller it has.
- CachedURLPayload is built straight from the ORM row (from_attributes).
"""

import datetime

from pydantic import BaseModel, Field

from shorturl.enums import HealthStatus
from shorturl.models import as_aware, utcnow

__all__ = [
    "CachedURLPayload",
    "URLCreate",
    "CreateURLResponse",
    "URLStatsResponse",
    "HealthResponse",
    "DetailedHealthResponse",
    "ClickSyncResponse",
]


class CachedURLPayload(BaseModel):
    """Redis cache payload for a shortened URL."""

    id: int
    short_code: str
    url_hash: str
    original_url: str
    click_count: int = 0
    created_at: datetime.datetime
    updated_at: datetime.datetime
    expires_at: datetime.datetime | None = None
    is_active: bool = True

    model_config = {"from_attributes": True}

    def is_valid(self, now: datetime.datetime | None = None) -> bool:
        if not self.is_active:
            return False
        if self.expires_at is None:
            return True
        return as_aware(self.expires_at) > (now or utcnow())


class URLCreate(BaseModel):
    url: str
    expires_in: str | None = Field(None, description="Optional lifetime such as '30m', '24h' or '7d'")


class CreateURLResponse(BaseModel):
    short_code: str
    short_url: str
    original_url: str
    expires_at: datetime.datetime | None = None


class URLStatsResponse(BaseModel):
    short_code: str
    original_url: str
    click_count: int
    created_at: datetime.datetime
    expires_at: datetime.datetime | None = None
    is_active: bool


class HealthResponse(BaseModel):
    status: HealthStatus


class DetailedHealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus


class ClickSyncResponse(BaseModel):
    scanned: int
    synced: int
    skipped: int
    failed: int
    restored: int
    lost_clicks: int
    aborted: bool
    duration_seconds: float
