"""SQLAlchemy ORM models for the short URL service.

Data Model Layout
=================
::
    urls table
    ├─ id (BIGSERIAL PRIMARY KEY)          source of the short code
    ├─ short_code (VARCHAR(11) UNIQUE)     NULL until the id is encoded
    ├─ url_hash (VARCHAR(64), INDEXED)     SHA-256 hex of original_url
    ├─ current_hash (VARCHAR(64) UNIQUE)   url_hash while this row is the one handed out
    ├─ original_url (TEXT NOT NULL)
    ├─ click_count (BIGINT DEFAULT 0)      only the click sync writes this
    ├─ created_at (TIMESTAMPTZ DEFAULT NOW())
    ├─ updated_at (TIMESTAMPTZ DEFAULT NOW(), ON UPDATE)
    ├─ expires_at (TIMESTAMPTZ NULL)
    └─ is_active (BOOLEAN DEFAULT TRUE)

Key Behaviours
===============
- A record is valid iff ``is_active`` and (no expiry or expiry in the future).
- ``url_hash`` is indexed but not unique: an expired or inactive record is
  never reused, so a later create for the same URL inserts a new row. Lookups
  by hash always pick the newest row.
- ``current_hash`` is unique and NULL on superseded rows, so the database
  admits at most one live row per hash even under concurrent creates.
- ``short_code`` is nullable so concurrent inserts do not collide before
  their code is written in the same transaction.

Classes:
    URL:  A shortened URL mapping with its authoritative click total.
"""

import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, Text, func, true
from sqlalchemy.orm import Mapped, mapped_column

from shorturl.database import Base

__all__ = ["URL", "as_aware", "utcnow"]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_aware(value: datetime.datetime) -> datetime.datetime:
    # SQLite hands back naive datetimes; treat them as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


class URL(Base):
    __tablename__ = "urls"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    short_code: Mapped[str | None] = mapped_column(String(11), unique=True, index=True, nullable=True)
    url_hash: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    current_hash: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    click_count: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0", nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
    expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true(), nullable=False)

    def is_expired(self, now: datetime.datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return as_aware(self.expires_at) <= (now or utcnow())

    def is_valid(self, now: datetime.datetime | None = None) -> bool:
        return bool(self.is_active) and not self.is_expired(now)

    def __repr__(self) -> str:
        return f"<URL(id={self.id}, short_code='{self.short_code}', click_count={self.click_count})>"
