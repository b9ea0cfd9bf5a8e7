"""SQLModel database table models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import BigInteger, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    """Return current UTC time as naive datetime for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _new_uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Tenancy
# ---------------------------------------------------------------------------


class Organization(SQLModel, table=True):
    __tablename__ = "organizations"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    name: str
    subscription_plan: str | None = Field(default="starter")
    # Per-organization overrides; NULL falls back to the plan tier
    max_members: int | None = None
    max_admin_users: int | None = None
    max_locations: int | None = None
    features_json: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class Profile(SQLModel, table=True):
    __tablename__ = "profiles"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    organization_id: str = Field(foreign_key="organizations.id", index=True)
    email: str = Field(index=True)
    full_name: str = ""
    role: str = Field(default="client", index=True)
    created_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# Counted gym resources
# ---------------------------------------------------------------------------


class Member(SQLModel, table=True):
    __tablename__ = "members"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    organization_id: str = Field(foreign_key="organizations.id", index=True)
    full_name: str
    email: str | None = None
    status: str = Field(default="active")  # active | inactive | suspended
    created_at: datetime = Field(default_factory=_utc_now)


class Location(SQLModel, table=True):
    __tablename__ = "locations"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    organization_id: str = Field(foreign_key="organizations.id", index=True)
    name: str
    is_primary: bool = Field(default=False)
    created_at: datetime = Field(default_factory=_utc_now)


class GymClass(SQLModel, table=True):
    __tablename__ = "classes"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    organization_id: str = Field(foreign_key="organizations.id", index=True)
    name: str
    start_time: datetime | None = None
    created_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# Usage tracking
# ---------------------------------------------------------------------------


class UsageRecord(SQLModel, table=True):
    __tablename__ = "usage_records"
    # Target of the ON CONFLICT upsert in the usage repository
    __table_args__ = (
        UniqueConstraint("org_id", "metric", "period", name="uq_usage_records_org_metric_period"),
    )

    id: int | None = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    # whatsapp_messages | emails | api_requests | api_write_requests | ai_requests | ai_tokens
    metric: str = Field(index=True)
    period: str  # YYYY-MM (monthly) or YYYY-MM-DD (daily)
    count: int = Field(default=0)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class StorageUsage(SQLModel, table=True):
    __tablename__ = "storage_usage"

    id: int | None = Field(default=None, primary_key=True)
    org_id: str = Field(unique=True, index=True)
    total_bytes: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    images_bytes: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    documents_bytes: int = Field(
        default=0, sa_column=Column(BigInteger, nullable=False, default=0)
    )
    other_bytes: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    total_files: int = Field(default=0)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
