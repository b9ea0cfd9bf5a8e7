"""Plan-limit enforcement for organizations.

``QuotaPolicyEngine`` maps an organization's tier, its per-organization
overrides and a snapshot of current usage onto allow/deny decisions with a
ready-to-display message. It never raises for a missing organization, an
exceeded limit or a failing collaborator: each is returned as a deny result.

Usage counters live in the ``UsageOracle``. The engine only reads snapshots
and delegates ``consume_*`` calls, so two concurrent requests may both pass a
check before either consumes. Soft overshoot is accepted for these limits.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

import structlog

from gymgo.billing import messages
from gymgo.billing.plans import GIB, PLAN_LIMITS, UNLIMITED, PlanLimits, is_unlimited, resolve_plan
from gymgo.billing.results import (
    AILimitResult,
    ApiRateLimitResult,
    ConsumeResult,
    FeatureAccessResult,
    FileSizeCheckResult,
    LimitCheckResult,
    OrganizationLimits,
    StorageCheckResult,
    StorageUpdateResult,
)
from gymgo.exceptions import UsageBackendError
from gymgo.types import (
    SYSTEM_USER_ROLES,
    TRAINER_ROLES,
    MeteredResource,
    PlanTier,
    StorageFileType,
)

if TYPE_CHECKING:
    from gymgo.billing.collaborators import (
        ConsumeOutcome,
        MonthlyUsage,
        OrganizationStore,
        ResourceCounter,
        UsageOracle,
    )

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class _CountedLimit:
    """How a row-counted resource finds its ceiling and its current count."""

    noun: str
    ceiling: Callable[[OrganizationLimits, PlanLimits], int]
    count: Callable[[ResourceCounter, str], Awaitable[int]]
    unlimited_at: int | None = None


_COUNTED_LIMITS: dict[MeteredResource, _CountedLimit] = {
    MeteredResource.MEMBERS: _CountedLimit(
        noun="miembros",
        ceiling=lambda org, _plan: org.max_members,
        count=lambda counter, org_id: counter.count_members(org_id),
        unlimited_at=999_999,
    ),
    MeteredResource.ADMIN_USERS: _CountedLimit(
        noun="usuarios del sistema",
        ceiling=lambda org, _plan: org.max_users,
        count=lambda counter, org_id: counter.count_profiles(org_id, SYSTEM_USER_ROLES),
        unlimited_at=999,
    ),
    MeteredResource.TRAINERS: _CountedLimit(
        noun="entrenadores",
        ceiling=lambda _org, plan: plan.max_trainers,
        count=lambda counter, org_id: counter.count_profiles(org_id, TRAINER_ROLES),
    ),
    MeteredResource.LOCATIONS: _CountedLimit(
        noun="ubicaciones",
        ceiling=lambda org, _plan: org.max_locations,
        count=lambda counter, org_id: counter.count_locations(org_id),
        unlimited_at=999,
    ),
    MeteredResource.CLASSES: _CountedLimit(
        noun="clases",
        ceiling=lambda _org, plan: plan.max_classes,
        count=lambda counter, org_id: counter.count_classes(org_id),
    ),
}


def _utc_today() -> date:
    return datetime.now(UTC).date()


class QuotaPolicyEngine:
    """Decides whether an organization may add or consume a metered resource."""

    def __init__(
        self,
        organizations: OrganizationStore,
        counter: ResourceCounter,
        usage: UsageOracle,
        *,
        plan_limits: Mapping[PlanTier, PlanLimits] = PLAN_LIMITS,
        default_plan: PlanTier = PlanTier.STARTER,
        fail_open: Iterable[MeteredResource] = (),
        today: Callable[[], date] = _utc_today,
    ) -> None:
        self._organizations = organizations
        self._counter = counter
        self._usage = usage
        self._plan_limits = plan_limits
        self._default_plan = default_plan
        self._fail_open = frozenset(fail_open)
        self._today = today

    # ------------------------------------------------------------------
    # Organization limits
    # ------------------------------------------------------------------

    async def get_organization_limits(self, org_id: str) -> OrganizationLimits | None:
        """Resolve tier defaults and overrides; ``None`` if the org does not exist.

        Raises ``UsageBackendError`` if the organization store fails.
        """
        record = await self._organizations.get_organization(org_id)
        if record is None:
            return None

        plan = resolve_plan(record.subscription_plan, self._default_plan)
        tier = self._plan_limits[plan]
        return OrganizationLimits(
            plan=plan,
            # Unset (None or 0) overrides fall back to the tier
            max_members=record.max_members or tier.max_members,
            max_users=record.max_admin_users or tier.max_users,
            max_locations=record.max_locations or tier.max_locations,
            features=dict(record.features),
        )

    # ------------------------------------------------------------------
    # Row-counted resources
    # ------------------------------------------------------------------

    async def check_member_limit(self, org_id: str) -> LimitCheckResult:
        return await self._check_counted(org_id, MeteredResource.MEMBERS)

    async def check_user_limit(self, org_id: str) -> LimitCheckResult:
        """System users (owner, admin, assistant, nutritionist); trainers are separate."""
        return await self._check_counted(org_id, MeteredResource.ADMIN_USERS)

    async def check_trainer_limit(self, org_id: str) -> LimitCheckResult:
        return await self._check_counted(org_id, MeteredResource.TRAINERS)

    async def check_location_limit(self, org_id: str) -> LimitCheckResult:
        return await self._check_counted(org_id, MeteredResource.LOCATIONS)

    async def check_class_limit(self, org_id: str) -> LimitCheckResult:
        return await self._check_counted(org_id, MeteredResource.CLASSES)

    async def check_role_limit(self, org_id: str, target_role: str) -> LimitCheckResult:
        """Route a role assignment to the limit its role category counts against."""
        if target_role in TRAINER_ROLES:
            return await self.check_trainer_limit(org_id)
        if target_role in SYSTEM_USER_ROLES:
            return await self.check_user_limit(org_id)
        # Clients and other roles are unmetered
        return LimitCheckResult(allowed=True, current=0, limit=UNLIMITED)

    async def _check_counted(self, org_id: str, resource: MeteredResource) -> LimitCheckResult:
        counted = _COUNTED_LIMITS[resource]
        try:
            limits = await self.get_organization_limits(org_id)
        except UsageBackendError as e:
            self._log_backend_error(org_id, resource, e)
            return LimitCheckResult(
                allowed=False, current=0, limit=0, message=messages.VERIFY_LIMITS_ERROR
            )
        if limits is None:
            return LimitCheckResult(
                allowed=False, current=0, limit=0, message=messages.ORGANIZATION_NOT_FOUND
            )

        limit = counted.ceiling(limits, self._plan_limits[limits.plan])
        if is_unlimited(limit, counted.unlimited_at):
            return LimitCheckResult(allowed=True, current=0, limit=UNLIMITED)

        try:
            current = await counted.count(self._counter, org_id)
        except UsageBackendError as e:
            self._log_backend_error(org_id, resource, e)
            if resource in self._fail_open:
                return LimitCheckResult(allowed=True, current=0, limit=limit)
            return LimitCheckResult(
                allowed=False, current=0, limit=limit, message=messages.VERIFY_LIMITS_ERROR
            )

        if current >= limit:
            self._log_exceeded(org_id, resource, current, limit)
            return LimitCheckResult(
                allowed=False,
                current=current,
                limit=limit,
                message=messages.count_limit_reached(limit, counted.noun),
            )
        return LimitCheckResult(allowed=True, current=current, limit=limit)

    # ------------------------------------------------------------------
    # Feature flags
    # ------------------------------------------------------------------

    async def check_feature_access(self, org_id: str, feature: str) -> FeatureAccessResult:
        """Tier flag first; the org's own ``features`` map only fills gaps."""
        try:
            limits = await self.get_organization_limits(org_id)
        except UsageBackendError as e:
            self._log_backend_error(org_id, "features", e)
            return FeatureAccessResult(allowed=False, message=messages.VERIFY_LIMITS_ERROR)
        if limits is None:
            return FeatureAccessResult(allowed=False, message=messages.ORGANIZATION_NOT_FOUND)

        tier_flags = self._plan_limits[limits.plan].feature_flags()
        if feature in tier_flags:
            allowed = tier_flags[feature]
        else:
            allowed = bool(limits.features.get(feature, False))

        if not allowed:
            return FeatureAccessResult(
                allowed=False, message=messages.feature_unavailable(feature)
            )
        return FeatureAccessResult(allowed=True)

    async def check_api_access(self, org_id: str) -> FeatureAccessResult:
        try:
            limits = await self.get_organization_limits(org_id)
        except UsageBackendError as e:
            self._log_backend_error(org_id, MeteredResource.API_REQUESTS, e)
            return FeatureAccessResult(allowed=False, message=messages.VERIFY_LIMITS_ERROR)
        if limits is None:
            return FeatureAccessResult(allowed=False, message=messages.ORGANIZATION_NOT_FOUND)
        if not self._plan_limits[limits.plan].api_access:
            return FeatureAccessResult(allowed=False, message=messages.API_ACCESS_DENIED)
        return FeatureAccessResult(allowed=True)

    # ------------------------------------------------------------------
    # Monthly messaging quotas
    # ------------------------------------------------------------------

    async def check_whatsapp_limit(self, org_id: str) -> LimitCheckResult:
        return await self._check_monthly(
            org_id,
            MeteredResource.WHATSAPP,
            self._usage.get_whatsapp_remaining,
            noun="mensajes WhatsApp",
            default_limit=self._default_tier().whatsapp_messages_per_month,
        )

    async def consume_whatsapp_message(self, org_id: str, count: int = 1) -> ConsumeResult:
        return await self._consume(
            org_id,
            MeteredResource.WHATSAPP,
            lambda: self._usage.consume_whatsapp_message(org_id, count),
        )

    async def check_email_limit(self, org_id: str) -> LimitCheckResult:
        return await self._check_monthly(
            org_id,
            MeteredResource.EMAILS,
            self._usage.get_email_remaining,
            noun="emails",
            default_limit=self._default_tier().emails_per_month,
        )

    async def consume_email(self, org_id: str, count: int = 1) -> ConsumeResult:
        return await self._consume(
            org_id,
            MeteredResource.EMAILS,
            lambda: self._usage.consume_email(org_id, count),
        )

    async def _check_monthly(
        self,
        org_id: str,
        resource: MeteredResource,
        fetch: Callable[[str], Awaitable[MonthlyUsage | None]],
        *,
        noun: str,
        default_limit: int,
    ) -> LimitCheckResult:
        try:
            snapshot = await fetch(org_id)
        except UsageBackendError as e:
            self._log_backend_error(org_id, resource, e)
            if resource in self._fail_open:
                return LimitCheckResult(allowed=True, current=0, limit=default_limit)
            return LimitCheckResult(
                allowed=False, current=0, limit=0, message=messages.VERIFY_LIMITS_ERROR
            )

        if snapshot is None:
            return LimitCheckResult(allowed=True, current=0, limit=default_limit)
        if snapshot.monthly_limit == UNLIMITED:
            return LimitCheckResult(allowed=True, current=snapshot.used, limit=UNLIMITED)
        if snapshot.remaining <= 0:
            self._log_exceeded(org_id, resource, snapshot.used, snapshot.monthly_limit)
            return LimitCheckResult(
                allowed=False,
                current=snapshot.used,
                limit=snapshot.monthly_limit,
                message=messages.monthly_limit_reached(snapshot.monthly_limit, noun),
            )
        return LimitCheckResult(
            allowed=True, current=snapshot.used, limit=snapshot.monthly_limit
        )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    async def check_storage_limit(
        self, org_id: str, additional_bytes: int = 0
    ) -> StorageCheckResult:
        """Would storing ``additional_bytes`` more stay within the plan's storage?"""
        try:
            snapshot = await self._usage.get_storage_remaining(org_id)
        except UsageBackendError as e:
            self._log_backend_error(org_id, MeteredResource.STORAGE, e)
            allowed = MeteredResource.STORAGE in self._fail_open
            return StorageCheckResult(
                allowed=allowed,
                current=0,
                limit=0,
                used_bytes=0,
                limit_bytes=0,
                message=None if allowed else messages.VERIFY_STORAGE_ERROR,
            )

        if snapshot is None:
            return StorageCheckResult(
                allowed=True,
                current=0,
                limit=1,
                used_bytes=0,
                limit_bytes=self._default_tier().storage_bytes,
            )

        if snapshot.used_bytes + additional_bytes > snapshot.limit_bytes:
            self._log_exceeded(
                org_id, MeteredResource.STORAGE, snapshot.used_bytes, snapshot.limit_bytes
            )
            return StorageCheckResult(
                allowed=False,
                current=snapshot.used_percentage,
                limit=100,
                used_bytes=snapshot.used_bytes,
                limit_bytes=snapshot.limit_bytes,
                message=messages.storage_limit_reached(round(snapshot.limit_bytes / GIB)),
            )
        return StorageCheckResult(
            allowed=True,
            current=snapshot.used_percentage,
            limit=100,
            used_bytes=snapshot.used_bytes,
            limit_bytes=snapshot.limit_bytes,
        )

    async def update_storage_usage(
        self,
        org_id: str,
        bytes_change: int,
        file_type: StorageFileType = StorageFileType.OTHER,
    ) -> StorageUpdateResult:
        """Record an upload (positive) or deletion (negative) of ``bytes_change``."""
        try:
            outcome = await self._usage.update_storage_usage(org_id, bytes_change, file_type)
        except UsageBackendError as e:
            self._log_backend_error(org_id, MeteredResource.STORAGE, e)
            return StorageUpdateResult(
                success=MeteredResource.STORAGE in self._fail_open, total_bytes=0
            )
        if outcome is None:
            return StorageUpdateResult(success=False, total_bytes=0)
        return StorageUpdateResult(success=outcome.success, total_bytes=outcome.total_bytes)

    # ------------------------------------------------------------------
    # API rate limits (daily)
    # ------------------------------------------------------------------

    async def check_api_rate_limit(self, org_id: str) -> ApiRateLimitResult:
        try:
            snapshot = await self._usage.check_api_rate_limit(org_id)
        except UsageBackendError as e:
            self._log_backend_error(org_id, MeteredResource.API_REQUESTS, e)
            if MeteredResource.API_REQUESTS in self._fail_open:
                return ApiRateLimitResult(allowed=True, used=0, remaining=0, daily_limit=0)
            return ApiRateLimitResult(
                allowed=False,
                used=0,
                remaining=0,
                daily_limit=0,
                message=messages.VERIFY_API_ERROR,
            )

        if snapshot is None:
            return ApiRateLimitResult(
                allowed=False,
                used=0,
                remaining=0,
                daily_limit=0,
                message=messages.API_NOT_IN_PLAN,
            )
        if snapshot.daily_limit == 0:
            return ApiRateLimitResult(
                allowed=False,
                used=0,
                remaining=0,
                daily_limit=0,
                message=messages.API_NOT_IN_PLAN_UPGRADE,
            )
        if not snapshot.allowed:
            self._log_exceeded(
                org_id, MeteredResource.API_REQUESTS, snapshot.used, snapshot.daily_limit
            )
            return ApiRateLimitResult(
                allowed=False,
                used=snapshot.used,
                remaining=0,
                daily_limit=snapshot.daily_limit,
                message=messages.daily_api_limit_reached(snapshot.daily_limit),
            )
        return ApiRateLimitResult(
            allowed=True,
            used=snapshot.used,
            remaining=snapshot.remaining,
            daily_limit=snapshot.daily_limit,
        )

    async def consume_api_request(self, org_id: str, is_write: bool = False) -> ConsumeResult:
        return await self._consume(
            org_id,
            MeteredResource.API_REQUESTS,
            lambda: self._usage.consume_api_request(org_id, is_write),
        )

    # ------------------------------------------------------------------
    # AI requests (monthly)
    # ------------------------------------------------------------------

    async def check_ai_limit(self, org_id: str) -> AILimitResult:
        try:
            limits = await self.get_organization_limits(org_id)
        except UsageBackendError as e:
            self._log_backend_error(org_id, MeteredResource.AI_REQUESTS, e)
            return AILimitResult(
                allowed=False, current=0, limit=0, message=messages.VERIFY_LIMITS_ERROR
            )
        if limits is None:
            return AILimitResult(
                allowed=False, current=0, limit=0, message=messages.ORGANIZATION_NOT_FOUND
            )

        limit = self._plan_limits[limits.plan].ai_requests_per_month
        if limit == UNLIMITED:
            return AILimitResult(allowed=True, current=0, limit=UNLIMITED)

        try:
            current = await self._usage.get_ai_requests_this_period(org_id)
        except UsageBackendError as e:
            self._log_backend_error(org_id, MeteredResource.AI_REQUESTS, e)
            if MeteredResource.AI_REQUESTS in self._fail_open:
                return AILimitResult(allowed=True, current=0, limit=limit)
            return AILimitResult(
                allowed=False, current=0, limit=limit, message=messages.VERIFY_LIMITS_ERROR
            )

        reset_date = messages.format_reset_date(messages.first_of_next_month(self._today()))
        if current >= limit:
            self._log_exceeded(org_id, MeteredResource.AI_REQUESTS, current, limit)
            return AILimitResult(
                allowed=False,
                current=current,
                limit=limit,
                message=messages.ai_limit_reached(limit, reset_date),
                reset_date=reset_date,
            )
        return AILimitResult(allowed=True, current=current, limit=limit, reset_date=reset_date)

    async def consume_ai_request(self, org_id: str, tokens_used: int = 0) -> ConsumeResult:
        try:
            limits = await self.get_organization_limits(org_id)
        except UsageBackendError as e:
            self._log_backend_error(org_id, MeteredResource.AI_REQUESTS, e)
            return ConsumeResult(success=False, remaining=0)
        if limits is None:
            return ConsumeResult(success=False, remaining=0)
        return await self._consume(
            org_id,
            MeteredResource.AI_REQUESTS,
            lambda: self._usage.consume_ai_request(org_id, tokens_used),
            fail_open_remaining=self._plan_limits[limits.plan].ai_requests_per_month,
        )

    # ------------------------------------------------------------------
    # File size
    # ------------------------------------------------------------------

    async def check_file_size_limit(self, org_id: str, file_size_bytes: int) -> FileSizeCheckResult:
        try:
            limits = await self.get_organization_limits(org_id)
        except UsageBackendError as e:
            self._log_backend_error(org_id, MeteredResource.FILE_SIZE, e)
            return FileSizeCheckResult(
                allowed=False, max_size_mb=0, message=messages.VERIFY_LIMITS_ERROR
            )
        if limits is None:
            return FileSizeCheckResult(
                allowed=False, max_size_mb=0, message=messages.ORGANIZATION_NOT_FOUND
            )

        tier = self._plan_limits[limits.plan]
        if file_size_bytes > tier.max_file_upload_bytes:
            return FileSizeCheckResult(
                allowed=False,
                max_size_mb=tier.max_file_upload_mb,
                message=messages.file_too_large(tier.max_file_upload_mb),
            )
        return FileSizeCheckResult(allowed=True, max_size_mb=tier.max_file_upload_mb)

    # ------------------------------------------------------------------
    # Dashboard summary
    # ------------------------------------------------------------------

    async def get_usage_summary(
        self, org_id: str
    ) -> dict[MeteredResource, LimitCheckResult | StorageCheckResult | AILimitResult]:
        """Current usage against every counted and monthly ceiling."""
        resources = (
            MeteredResource.MEMBERS,
            MeteredResource.ADMIN_USERS,
            MeteredResource.TRAINERS,
            MeteredResource.LOCATIONS,
            MeteredResource.CLASSES,
            MeteredResource.WHATSAPP,
            MeteredResource.EMAILS,
            MeteredResource.STORAGE,
            MeteredResource.AI_REQUESTS,
        )
        results = await asyncio.gather(*(self.check(org_id, r) for r in resources))
        return dict(zip(resources, results, strict=True))

    async def check(
        self, org_id: str, resource: MeteredResource
    ) -> LimitCheckResult | StorageCheckResult | AILimitResult:
        """Run the check for ``resource`` (file size and API rate have their own entry points)."""
        if resource in _COUNTED_LIMITS:
            return await self._check_counted(org_id, resource)
        if resource == MeteredResource.WHATSAPP:
            return await self.check_whatsapp_limit(org_id)
        if resource == MeteredResource.EMAILS:
            return await self.check_email_limit(org_id)
        if resource == MeteredResource.STORAGE:
            return await self.check_storage_limit(org_id)
        if resource == MeteredResource.AI_REQUESTS:
            return await self.check_ai_limit(org_id)
        msg = f"No usage check for {resource}"
        raise ValueError(msg)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _default_tier(self) -> PlanLimits:
        return self._plan_limits[self._default_plan]

    async def _consume(
        self,
        org_id: str,
        resource: MeteredResource,
        call: Callable[[], Awaitable[ConsumeOutcome | None]],
        *,
        fail_open_remaining: int = 0,
    ) -> ConsumeResult:
        fail_open = resource in self._fail_open
        try:
            outcome = await call()
        except UsageBackendError as e:
            self._log_backend_error(org_id, resource, e)
            if fail_open:
                return ConsumeResult(success=True, remaining=fail_open_remaining)
            return ConsumeResult(success=False, remaining=0)

        if outcome is None:
            if fail_open:
                return ConsumeResult(success=True, remaining=fail_open_remaining)
            return ConsumeResult(success=False, remaining=0)
        if not outcome.success:
            logger.info("usage_consume_denied", org_id=org_id, resource=str(resource))
        return ConsumeResult(success=outcome.success, remaining=outcome.remaining)

    def _log_exceeded(
        self, org_id: str, resource: MeteredResource, current: int, limit: int
    ) -> None:
        logger.warning(
            "plan_limit_exceeded",
            org_id=org_id,
            resource=str(resource),
            current=current,
            limit=limit,
        )

    def _log_backend_error(
        self, org_id: str, resource: MeteredResource | str, error: UsageBackendError
    ) -> None:
        logger.error(
            "usage_backend_error",
            org_id=org_id,
            resource=str(resource),
            fail_open=resource in self._fail_open,
            error=str(error),
        )
