"""Unit tests for QuotaPolicyEngine behaviour when a collaborator fails."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from gymgo.billing import messages
from gymgo.billing.engine import QuotaPolicyEngine
from gymgo.billing.results import ConsumeResult, LimitCheckResult, StorageUpdateResult
from gymgo.exceptions import UsageBackendError
from gymgo.storage.repositories.organizations import InMemoryOrganizationRepository
from gymgo.types import MeteredResource

STARTER = "org-starter"

DEFAULT_FAIL_OPEN = (MeteredResource.LOCATIONS, MeteredResource.AI_REQUESTS)


def _failing_usage() -> AsyncMock:
    """Usage oracle whose every call raises."""
    usage = AsyncMock()
    error = UsageBackendError("connection refused")
    for name in (
        "get_whatsapp_remaining",
        "consume_whatsapp_message",
        "get_email_remaining",
        "consume_email",
        "get_storage_remaining",
        "update_storage_usage",
        "check_api_rate_limit",
        "consume_api_request",
        "get_ai_requests_this_period",
        "consume_ai_request",
    ):
        getattr(usage, name).side_effect = error
    return usage


def _failing_counter() -> AsyncMock:
    counter = AsyncMock()
    error = UsageBackendError("connection refused")
    for name in ("count_members", "count_profiles", "count_locations", "count_classes"):
        getattr(counter, name).side_effect = error
    return counter


@pytest.mark.unit
class TestFailClosedByDefault:
    @pytest.fixture()
    def engine(self, organizations: InMemoryOrganizationRepository) -> QuotaPolicyEngine:
        return QuotaPolicyEngine(organizations, _failing_counter(), _failing_usage())

    async def test_member_count_failure_denies(self, engine: QuotaPolicyEngine) -> None:
        result = await engine.check_member_limit(STARTER)
        assert result == LimitCheckResult(
            allowed=False, current=0, limit=50, message=messages.VERIFY_LIMITS_ERROR
        )

    async def test_location_count_failure_denies(self, engine: QuotaPolicyEngine) -> None:
        result = await engine.check_location_limit(STARTER)
        assert result.allowed is False

    async def test_whatsapp_failure_denies(self, engine: QuotaPolicyEngine) -> None:
        result = await engine.check_whatsapp_limit(STARTER)
        assert result == LimitCheckResult(
            allowed=False, current=0, limit=0, message=messages.VERIFY_LIMITS_ERROR
        )

    async def test_consume_failure(self, engine: QuotaPolicyEngine) -> None:
        assert await engine.consume_email(STARTER) == ConsumeResult(success=False, remaining=0)
        assert await engine.consume_ai_request(STARTER) == ConsumeResult(
            success=False, remaining=0
        )

    async def test_storage_failure_denies(self, engine: QuotaPolicyEngine) -> None:
        result = await engine.check_storage_limit(STARTER, 10)
        assert result.allowed is False
        assert result.message == messages.VERIFY_STORAGE_ERROR
        assert await engine.update_storage_usage(STARTER, 10) == StorageUpdateResult(
            success=False, total_bytes=0
        )

    async def test_api_failure_denies(self, engine: QuotaPolicyEngine) -> None:
        result = await engine.check_api_rate_limit(STARTER)
        assert result.allowed is False
        assert result.message == messages.VERIFY_API_ERROR

    async def test_ai_count_failure_denies(self, engine: QuotaPolicyEngine) -> None:
        result = await engine.check_ai_limit(STARTER)
        assert result.allowed is False
        assert result.limit == 100
        assert result.message == messages.VERIFY_LIMITS_ERROR


@pytest.mark.unit
class TestConfiguredFailOpen:
    @pytest.fixture()
    def engine(self, organizations: InMemoryOrganizationRepository) -> QuotaPolicyEngine:
        return QuotaPolicyEngine(
            organizations,
            _failing_counter(),
            _failing_usage(),
            fail_open=DEFAULT_FAIL_OPEN,
        )

    async def test_location_failure_allows(self, engine: QuotaPolicyEngine) -> None:
        result = await engine.check_location_limit(STARTER)
        assert result == LimitCheckResult(allowed=True, current=0, limit=1)

    async def test_ai_failure_allows(self, engine: QuotaPolicyEngine) -> None:
        assert (await engine.check_ai_limit(STARTER)).allowed is True
        assert await engine.consume_ai_request(STARTER) == ConsumeResult(
            success=True, remaining=100
        )

    async def test_other_resources_stay_closed(self, engine: QuotaPolicyEngine) -> None:
        assert (await engine.check_member_limit(STARTER)).allowed is False
        assert (await engine.check_email_limit(STARTER)).allowed is False
        assert (await engine.consume_whatsapp_message(STARTER)).success is False

    async def test_fail_open_monthly_uses_default_ceiling(
        self, organizations: InMemoryOrganizationRepository
    ) -> None:
        engine = QuotaPolicyEngine(
            organizations,
            _failing_counter(),
            _failing_usage(),
            fail_open=[MeteredResource.EMAILS],
        )
        result = await engine.check_email_limit(STARTER)
        assert result == LimitCheckResult(allowed=True, current=0, limit=500)


@pytest.mark.unit
class TestOrganizationStoreFailure:
    @pytest.fixture()
    def engine(self) -> QuotaPolicyEngine:
        store = AsyncMock()
        store.get_organization.side_effect = UsageBackendError("timeout")
        return QuotaPolicyEngine(
            store, AsyncMock(), AsyncMock(), fail_open=DEFAULT_FAIL_OPEN
        )

    async def test_get_organization_limits_raises(self, engine: QuotaPolicyEngine) -> None:
        with pytest.raises(UsageBackendError):
            await engine.get_organization_limits(STARTER)

    async def test_counted_check_denies_even_when_fail_open(
        self, engine: QuotaPolicyEngine
    ) -> None:
        result = await engine.check_location_limit(STARTER)
        assert result == LimitCheckResult(
            allowed=False, current=0, limit=0, message=messages.VERIFY_LIMITS_ERROR
        )

    async def test_feature_access_reports_verify_error(
        self, engine: QuotaPolicyEngine
    ) -> None:
        result = await engine.check_feature_access(STARTER, "export_data")
        assert result.allowed is False
        assert result.message == messages.VERIFY_LIMITS_ERROR

    async def test_api_access_reports_verify_error(self, engine: QuotaPolicyEngine) -> None:
        result = await engine.check_api_access(STARTER)
        assert result.allowed is False
        assert result.message == messages.VERIFY_LIMITS_ERROR

    async def test_ai_limit_denies_even_when_fail_open(self, engine: QuotaPolicyEngine) -> None:
        result = await engine.check_ai_limit(STARTER)
        assert result.allowed is False
        assert result.limit == 0
        assert result.message == messages.VERIFY_LIMITS_ERROR

    async def test_ai_consume_refused(self, engine: QuotaPolicyEngine) -> None:
        result = await engine.consume_ai_request(STARTER, tokens_used=10)
        assert result == ConsumeResult(success=False, remaining=0)

    async def test_file_size_denied(self, engine: QuotaPolicyEngine) -> None:
        result = await engine.check_file_size_limit(STARTER, 1)
        assert result.allowed is False
        assert result.max_size_mb == 0
        assert result.message == messages.VERIFY_LIMITS_ERROR
