"""
SQLAlchemy models for the auth database: one session per account, cached CAPI responses per (account, resource).
"""
import enum
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import DateTime, LargeBinary, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stored as naive UTC (SQLite has no timezone support); always read back timezone-aware."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    pass


class SessionRecord(Base):
    __tablename__ = "sessions"

    account_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    access_token_expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)


class CacheRecord(Base):
    __tablename__ = "cache"

    account_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    resource: Mapped[str] = mapped_column(String(64), primary_key=True)
    payload: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    content_type: Mapped[str] = mapped_column(String(128), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)


class Table(enum.Enum):
    """The only tables the stores may write to."""

    SESSIONS = "sessions"
    CACHE = "cache"

    @property
    def table(self):
        return Base.metadata.tables[self.value]


@dataclass(frozen=True)
class Session:
    account_id: str
    access_token: str
    refresh_token: str
    access_token_expires_at: datetime
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class CachedResponse:
    payload: bytes
    content_type: str
    updated_at: datetime

    def age_seconds(self, now: datetime | None = None) -> float:
        now = now or utc_now()
        return (now - self.updated_at).total_seconds()
