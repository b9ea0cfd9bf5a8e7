"""Value objects returned by limit checks. Built per call, never persisted."""

from __future__ import annotations

from dataclasses import dataclass, field

from gymgo.types import PlanTier


@dataclass(frozen=True, slots=True)
class OrganizationLimits:
    plan: PlanTier
    max_members: int
    max_users: int
    max_locations: int
    features: dict[str, bool] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class LimitCheckResult:
    allowed: bool
    current: int
    limit: int
    message: str | None = None


@dataclass(frozen=True, slots=True)
class StorageCheckResult:
    """Storage check; ``current`` is the used percentage and ``limit`` is 100."""

    allowed: bool
    current: int
    limit: int
    used_bytes: int
    limit_bytes: int
    message: str | None = None


@dataclass(frozen=True, slots=True)
class AILimitResult:
    allowed: bool
    current: int
    limit: int
    message: str | None = None
    reset_date: str | None = None


@dataclass(frozen=True, slots=True)
class ApiRateLimitResult:
    allowed: bool
    used: int
    remaining: int
    daily_limit: int
    message: str | None = None


@dataclass(frozen=True, slots=True)
class FeatureAccessResult:
    allowed: bool
    message: str | None = None


@dataclass(frozen=True, slots=True)
class FileSizeCheckResult:
    allowed: bool
    max_size_mb: int
    message: str | None = None


@dataclass(frozen=True, slots=True)
class ConsumeResult:
    success: bool
    remaining: int


@dataclass(frozen=True, slots=True)
class StorageUpdateResult:
    success: bool
    total_bytes: int
