"""Period-scoped usage counters (WhatsApp, email, API, AI) and storage totals.

Both repositories resolve the organization's tier to find the ceiling, so a
consume call checks and increments in one step: an increment that would pass
the ceiling is not applied.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.exc import SQLAlchemyError

from gymgo.billing.collaborators import (
    ApiRateSnapshot,
    ConsumeOutcome,
    MonthlyUsage,
    StorageUpdateOutcome,
    StorageUsage,
)
from gymgo.billing.plans import PLAN_LIMITS, UNLIMITED, PlanLimits, resolve_plan
from gymgo.exceptions import UsageBackendError
from gymgo.types import PlanTier, StorageFileType

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from gymgo.billing.collaborators import OrganizationStore

logger = structlog.get_logger(__name__)

WHATSAPP_METRIC = "whatsapp_messages"
EMAIL_METRIC = "emails"
API_METRIC = "api_requests"
API_WRITE_METRIC = "api_write_requests"
AI_METRIC = "ai_requests"
AI_TOKENS_METRIC = "ai_tokens"

_STORAGE_COLUMNS = {
    StorageFileType.IMAGE: "images_bytes",
    StorageFileType.DOCUMENT: "documents_bytes",
    StorageFileType.OTHER: "other_bytes",
}


def monthly_period(now: datetime) -> str:
    """Billing month as YYYY-MM."""
    return now.strftime("%Y-%m")


def daily_period(now: datetime) -> str:
    """Billing day as YYYY-MM-DD."""
    return now.strftime("%Y-%m-%d")


def _remaining(limit: int, used: int) -> int:
    if limit == UNLIMITED:
        return UNLIMITED
    return max(0, limit - used)


def _utc_clock() -> datetime:
    return datetime.now(UTC)


class _UsageRepositoryBase(ABC):
    """Snapshot and ceiling logic shared by the storage backends.

    Subclasses provide the raw counter reads and the conditional increment.
    """

    def __init__(
        self,
        organizations: OrganizationStore,
        *,
        plan_limits: Mapping[PlanTier, PlanLimits] = PLAN_LIMITS,
        default_plan: PlanTier = PlanTier.STARTER,
        clock: Callable[[], datetime] = _utc_clock,
    ) -> None:
        self._organizations = organizations
        self._plan_limits = plan_limits
        self._default_plan = default_plan
        self._clock = clock

    # Backend primitives -------------------------------------------------

    @abstractmethod
    async def _get_count(self, org_id: str, metric: str, period: str) -> int:
        """Current counter value, 0 when no row exists."""

    @abstractmethod
    async def _increment(
        self, org_id: str, metric: str, period: str, amount: int, limit: int
    ) -> int | None:
        """Add ``amount`` unless the total would pass ``limit``; return the new count."""

    @abstractmethod
    async def _get_storage_bytes(self, org_id: str) -> int:
        """Total stored bytes for the organization."""

    @abstractmethod
    async def _apply_storage_change(
        self, org_id: str, bytes_change: int, file_type: StorageFileType
    ) -> int:
        """Apply a byte delta, clamping at zero; return the new total."""

    # UsageOracle --------------------------------------------------------

    async def get_whatsapp_remaining(self, org_id: str) -> MonthlyUsage | None:
        return await self._monthly_usage(org_id, WHATSAPP_METRIC, "whatsapp_messages_per_month")

    async def consume_whatsapp_message(self, org_id: str, count: int = 1) -> ConsumeOutcome | None:
        return await self._consume_monthly(
            org_id, WHATSAPP_METRIC, "whatsapp_messages_per_month", count
        )

    async def get_email_remaining(self, org_id: str) -> MonthlyUsage | None:
        return await self._monthly_usage(org_id, EMAIL_METRIC, "emails_per_month")

    async def consume_email(self, org_id: str, count: int = 1) -> ConsumeOutcome | None:
        return await self._consume_monthly(org_id, EMAIL_METRIC, "emails_per_month", count)

    async def get_storage_remaining(self, org_id: str) -> StorageUsage | None:
        tier = await self._tier(org_id)
        if tier is None:
            return None
        limit_bytes = tier.storage_bytes
        used = await self._get_storage_bytes(org_id)
        percentage = min(100, used * 100 // limit_bytes) if limit_bytes > 0 else 0
        return StorageUsage(
            used_bytes=used,
            remaining_bytes=max(0, limit_bytes - used),
            limit_bytes=limit_bytes,
            used_percentage=percentage,
        )

    async def update_storage_usage(
        self,
        org_id: str,
        bytes_change: int,
        file_type: StorageFileType = StorageFileType.OTHER,
    ) -> StorageUpdateOutcome | None:
        tier = await self._tier(org_id)
        if tier is None:
            return None
        total = await self._apply_storage_change(org_id, bytes_change, StorageFileType(file_type))
        logger.debug("storage_usage_updated", org_id=org_id, change=bytes_change, total=total)
        return StorageUpdateOutcome(
            success=total <= tier.storage_bytes,
            total_bytes=total,
            limit_bytes=tier.storage_bytes,
        )

    async def check_api_rate_limit(self, org_id: str) -> ApiRateSnapshot | None:
        tier = await self._tier(org_id)
        if tier is None:
            return None
        if not tier.api_access:
            return ApiRateSnapshot(allowed=False, used=0, remaining=0, daily_limit=0)
        limit = tier.api_requests_per_day
        used = await self._get_count(org_id, API_METRIC, daily_period(self._clock()))
        return ApiRateSnapshot(
            allowed=limit == UNLIMITED or used < limit,
            used=used,
            remaining=_remaining(limit, used),
            daily_limit=limit,
        )

    async def consume_api_request(
        self, org_id: str, is_write: bool = False
    ) -> ConsumeOutcome | None:
        tier = await self._tier(org_id)
        if tier is None:
            return None
        if not tier.api_access:
            return ConsumeOutcome(success=False, remaining=0)
        period = daily_period(self._clock())
        outcome = await self._consume(org_id, API_METRIC, period, 1, tier.api_requests_per_day)
        if outcome.success and is_write:
            await self._increment(org_id, API_WRITE_METRIC, period, 1, UNLIMITED)
        return outcome

    async def get_ai_requests_this_period(self, org_id: str) -> int:
        return await self._get_count(org_id, AI_METRIC, monthly_period(self._clock()))

    async def consume_ai_request(self, org_id: str, tokens_used: int = 0) -> ConsumeOutcome | None:
        tier = await self._tier(org_id)
        if tier is None:
            return None
        period = monthly_period(self._clock())
        outcome = await self._consume(org_id, AI_METRIC, period, 1, tier.ai_requests_per_month)
        if outcome.success and tokens_used > 0:
            await self._increment(org_id, AI_TOKENS_METRIC, period, tokens_used, UNLIMITED)
        return outcome

    # Helpers ------------------------------------------------------------

    async def _tier(self, org_id: str) -> PlanLimits | None:
        record = await self._organizations.get_organization(org_id)
        if record is None:
            return None
        return self._plan_limits[resolve_plan(record.subscription_plan, self._default_plan)]

    async def _monthly_usage(
        self, org_id: str, metric: str, limit_field: str
    ) -> MonthlyUsage | None:
        tier = await self._tier(org_id)
        if tier is None:
            return None
        limit: int = getattr(tier, limit_field)
        used = await self._get_count(org_id, metric, monthly_period(self._clock()))
        return MonthlyUsage(used=used, remaining=_remaining(limit, used), monthly_limit=limit)

    async def _consume_monthly(
        self, org_id: str, metric: str, limit_field: str, count: int
    ) -> ConsumeOutcome | None:
        tier = await self._tier(org_id)
        if tier is None:
            return None
        period = monthly_period(self._clock())
        return await self._consume(org_id, metric, period, count, getattr(tier, limit_field))

    async def _consume(
        self, org_id: str, metric: str, period: str, amount: int, limit: int
    ) -> ConsumeOutcome:
        if limit != UNLIMITED and amount > limit:
            used = await self._get_count(org_id, metric, period)
            return ConsumeOutcome(success=False, remaining=_remaining(limit, used))

        new_count = await self._increment(org_id, metric, period, amount, limit)
        if new_count is None:
            used = await self._get_count(org_id, metric, period)
            logger.info("usage_increment_rejected", org_id=org_id, metric=metric, used=used)
            return ConsumeOutcome(success=False, remaining=_remaining(limit, used))

        logger.debug("usage_incremented", org_id=org_id, metric=metric, count=new_count)
        return ConsumeOutcome(success=True, remaining=_remaining(limit, new_count))


class DatabaseUsageRepository(_UsageRepositoryBase):
    """Usage counters in ``usage_records`` and ``storage_usage``.

    Increments are a single INSERT ... ON CONFLICT DO UPDATE ... WHERE statement,
    so concurrent consumers cannot push a counter past its ceiling.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        organizations: OrganizationStore,
        *,
        plan_limits: Mapping[PlanTier, PlanLimits] = PLAN_LIMITS,
        default_plan: PlanTier = PlanTier.STARTER,
        clock: Callable[[], datetime] = _utc_clock,
    ) -> None:
        super().__init__(
            organizations, plan_limits=plan_limits, default_plan=default_plan, clock=clock
        )
        self._engine = engine

    def _timestamp(self) -> datetime:
        """Clock time as naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
        now = self._clock()
        if now.tzinfo is not None:
            now = now.astimezone(UTC).replace(tzinfo=None)
        return now

    async def _get_count(self, org_id: str, metric: str, period: str) -> int:
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(
                    text(
                        "SELECT count FROM usage_records "
                        "WHERE org_id = :org_id AND metric = :metric AND period = :period"
                    ),
                    {"org_id": org_id, "metric": metric, "period": period},
                )
                row = result.fetchone()
        except SQLAlchemyError as e:
            raise UsageBackendError(f"Reading {metric} usage failed: {e}") from e
        return int(row[0]) if row else 0

    async def _increment(
        self, org_id: str, metric: str, period: str, amount: int, limit: int
    ) -> int | None:
        guard = (
            "" if limit == UNLIMITED else " WHERE usage_records.count + excluded.count <= :limit"
        )
        stmt = text(
            "INSERT INTO usage_records "
            "(org_id, metric, period, count, created_at, updated_at) "
            "VALUES (:org_id, :metric, :period, :amount, :now, :now) "
            "ON CONFLICT (org_id, metric, period) "
            "DO UPDATE SET count = usage_records.count + excluded.count, "
            "updated_at = excluded.updated_at" + guard + " RETURNING count"
        ).bindparams(bindparam("now", type_=DateTime()))
        params: dict[str, object] = {
            "org_id": org_id,
            "metric": metric,
            "period": period,
            "amount": amount,
            "now": self._timestamp(),
        }
        if limit != UNLIMITED:
            params["limit"] = limit
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt, params)
                row = result.fetchone()
        except SQLAlchemyError as e:
            raise UsageBackendError(f"Incrementing {metric} usage failed: {e}") from e
        return int(row[0]) if row else None

    async def _get_storage_bytes(self, org_id: str) -> int:
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(
                    text("SELECT total_bytes FROM storage_usage WHERE org_id = :org_id"),
                    {"org_id": org_id},
                )
                row = result.fetchone()
        except SQLAlchemyError as e:
            raise UsageBackendError(f"Reading storage usage failed: {e}") from e
        return int(row[0]) if row else 0

    async def _apply_storage_change(
        self, org_id: str, bytes_change: int, file_type: StorageFileType
    ) -> int:
        column = _STORAGE_COLUMNS[file_type]
        files_delta = (bytes_change > 0) - (bytes_change < 0)
        initial = max(0, bytes_change)
        insert_values = {c: (initial if c == column else 0) for c in _STORAGE_COLUMNS.values()}
        stmt = text(
            "INSERT INTO storage_usage "
            "(org_id, total_bytes, images_bytes, documents_bytes, other_bytes, total_files, "
            "created_at, updated_at) "
            "VALUES (:org_id, :initial, :images_bytes, :documents_bytes, :other_bytes, "
            ":initial_files, :now, :now) "
            "ON CONFLICT (org_id) DO UPDATE SET "
            "total_bytes = CASE WHEN storage_usage.total_bytes + :change < 0 THEN 0 "
            "ELSE storage_usage.total_bytes + :change END, "
            f"{column} = CASE WHEN storage_usage.{column} + :change < 0 THEN 0 "
            f"ELSE storage_usage.{column} + :change END, "
            "total_files = CASE WHEN storage_usage.total_files + :files_delta < 0 THEN 0 "
            "ELSE storage_usage.total_files + :files_delta END, "
            "updated_at = excluded.updated_at "
            "RETURNING total_bytes"
        ).bindparams(bindparam("now", type_=DateTime()))
        params: dict[str, object] = {
            "org_id": org_id,
            "initial": initial,
            "initial_files": 1 if bytes_change > 0 else 0,
            "change": bytes_change,
            "files_delta": files_delta,
            "now": self._timestamp(),
            **insert_values,
        }
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt, params)
                row = result.fetchone()
        except SQLAlchemyError as e:
            raise UsageBackendError(f"Updating storage usage failed: {e}") from e
        return int(row[0]) if row else 0


class InMemoryUsageRepository(_UsageRepositoryBase):
    """Dict-backed usage counters for single-process use.

    Each increment runs without awaiting between read and write, which keeps
    it atomic within one event loop.
    """

    def __init__(
        self,
        organizations: OrganizationStore,
        *,
        plan_limits: Mapping[PlanTier, PlanLimits] = PLAN_LIMITS,
        default_plan: PlanTier = PlanTier.STARTER,
        clock: Callable[[], datetime] = _utc_clock,
    ) -> None:
        super().__init__(
            organizations, plan_limits=plan_limits, default_plan=default_plan, clock=clock
        )
        self._counts: dict[tuple[str, str, str], int] = {}
        self._storage: dict[str, dict[str, int]] = {}

    async def _get_count(self, org_id: str, metric: str, period: str) -> int:
        return self._counts.get((org_id, metric, period), 0)

    async def _increment(
        self, org_id: str, metric: str, period: str, amount: int, limit: int
    ) -> int | None:
        key = (org_id, metric, period)
        new_count = self._counts.get(key, 0) + amount
        if limit != UNLIMITED and new_count > limit:
            return None
        self._counts[key] = new_count
        return new_count

    async def _get_storage_bytes(self, org_id: str) -> int:
        return self._storage.get(org_id, {}).get("total_bytes", 0)

    async def _apply_storage_change(
        self, org_id: str, bytes_change: int, file_type: StorageFileType
    ) -> int:
        row = self._storage.setdefault(
            org_id,
            {"total_bytes": 0, "total_files": 0, **dict.fromkeys(_STORAGE_COLUMNS.values(), 0)},
        )
        column = _STORAGE_COLUMNS[file_type]
        row["total_bytes"] = max(0, row["total_bytes"] + bytes_change)
        row[column] = max(0, row[column] + bytes_change)
        row["total_files"] = max(0, row["total_files"] + (bytes_change > 0) - (bytes_change < 0))
        return row["total_bytes"]
