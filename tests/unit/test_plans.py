"""Unit tests for plan tier definitions."""

from __future__ import annotations

import pytest

from gymgo.billing.plans import (
    GIB,
    MIB,
    PLAN_LIMITS,
    UNLIMITED,
    get_plan_limits,
    is_unlimited,
    resolve_plan,
)
from gymgo.types import PlanTier


@pytest.mark.unit
class TestPlanTable:
    def test_every_tier_has_limits(self) -> None:
        assert set(PLAN_LIMITS) == set(PlanTier)

    def test_starter_values(self) -> None:
        starter = PLAN_LIMITS[PlanTier.STARTER]
        assert starter.max_members == 50
        assert starter.max_users == 2
        assert starter.max_locations == 1
        assert starter.whatsapp_messages_per_month == 50
        assert starter.api_access is False

    def test_enterprise_is_unlimited(self) -> None:
        enterprise = PLAN_LIMITS[PlanTier.ENTERPRISE]
        assert enterprise.max_members == UNLIMITED
        assert enterprise.ai_requests_per_month == UNLIMITED
        assert enterprise.api_requests_per_day == UNLIMITED

    def test_storage_bytes(self) -> None:
        assert PLAN_LIMITS[PlanTier.STARTER].storage_bytes == 2 * GIB
        assert PLAN_LIMITS[PlanTier.FREE].storage_bytes == GIB // 2

    def test_max_file_upload_bytes(self) -> None:
        assert PLAN_LIMITS[PlanTier.PRO].max_file_upload_bytes == 25 * MIB

    def test_feature_flags_keys(self) -> None:
        flags = PLAN_LIMITS[PlanTier.GROWTH].feature_flags()
        assert set(flags) == {
            "api_access",
            "advanced_reports",
            "custom_branding",
            "white_label",
            "export_data",
            "multi_location",
            "webhooks",
        }
        assert flags["custom_branding"] is True
        assert flags["white_label"] is False


@pytest.mark.unit
class TestResolvePlan:
    def test_known_plan(self) -> None:
        assert resolve_plan("pro") is PlanTier.PRO

    def test_missing_plan_uses_default(self) -> None:
        assert resolve_plan(None) is PlanTier.STARTER
        assert resolve_plan("") is PlanTier.STARTER

    def test_unknown_plan_uses_default(self) -> None:
        assert resolve_plan("platinum") is PlanTier.STARTER
        assert resolve_plan("platinum", PlanTier.FREE) is PlanTier.FREE

    def test_get_plan_limits_falls_back_to_starter(self) -> None:
        assert get_plan_limits("nope") is PLAN_LIMITS[PlanTier.STARTER]


@pytest.mark.unit
class TestIsUnlimited:
    def test_minus_one(self) -> None:
        assert is_unlimited(UNLIMITED)

    def test_finite_without_sentinel(self) -> None:
        assert not is_unlimited(999_999)

    def test_sentinel_threshold(self) -> None:
        assert is_unlimited(999, sentinel=999)
        assert is_unlimited(5000, sentinel=999)
        assert not is_unlimited(998, sentinel=999)
