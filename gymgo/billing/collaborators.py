"""Contracts for the stores the quota engine reads and the counters it delegates to.

Implementations raise ``UsageBackendError`` when the underlying store fails.
Counting and increment atomicity belong to the implementation, not the engine.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from gymgo.types import StorageFileType


@dataclass(frozen=True, slots=True)
class OrganizationRecord:
    id: str
    subscription_plan: str | None = None
    max_members: int | None = None
    max_admin_users: int | None = None
    max_locations: int | None = None
    features: dict[str, bool] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class MonthlyUsage:
    used: int
    remaining: int
    monthly_limit: int


@dataclass(frozen=True, slots=True)
class StorageUsage:
    used_bytes: int
    remaining_bytes: int
    limit_bytes: int
    used_percentage: int


@dataclass(frozen=True, slots=True)
class ApiRateSnapshot:
    allowed: bool
    used: int
    remaining: int
    daily_limit: int


@dataclass(frozen=True, slots=True)
class ConsumeOutcome:
    success: bool
    remaining: int


@dataclass(frozen=True, slots=True)
class StorageUpdateOutcome:
    success: bool
    total_bytes: int
    limit_bytes: int


class OrganizationStore(Protocol):
    async def get_organization(self, org_id: str) -> OrganizationRecord | None: ...


class ResourceCounter(Protocol):
    async def count_members(self, org_id: str) -> int: ...

    async def count_profiles(self, org_id: str, roles: Iterable[str]) -> int: ...

    async def count_locations(self, org_id: str) -> int: ...

    async def count_classes(self, org_id: str) -> int: ...


class UsageOracle(Protocol):
    async def get_whatsapp_remaining(self, org_id: str) -> MonthlyUsage | None: ...

    async def consume_whatsapp_message(
        self, org_id: str, count: int = 1
    ) -> ConsumeOutcome | None: ...

    async def get_email_remaining(self, org_id: str) -> MonthlyUsage | None: ...

    async def consume_email(self, org_id: str, count: int = 1) -> ConsumeOutcome | None: ...

    async def get_storage_remaining(self, org_id: str) -> StorageUsage | None: ...

    async def update_storage_usage(
        self,
        org_id: str,
        bytes_change: int,
        file_type: StorageFileType = StorageFileType.OTHER,
    ) -> StorageUpdateOutcome | None: ...

    async def check_api_rate_limit(self, org_id: str) -> ApiRateSnapshot | None: ...

    async def consume_api_request(
        self, org_id: str, is_write: bool = False
    ) -> ConsumeOutcome | None: ...

    async def get_ai_requests_this_period(self, org_id: str) -> int: ...

    async def consume_ai_request(
        self, org_id: str, tokens_used: int = 0
    ) -> ConsumeOutcome | None: ...
