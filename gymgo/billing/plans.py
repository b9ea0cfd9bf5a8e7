"""Plan tier definitions with concrete limits."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from gymgo.types import PlanTier

UNLIMITED = -1

GIB = 1024 * 1024 * 1024
MIB = 1024 * 1024

AIModel = Literal["gpt-3.5-turbo", "gpt-4", "gpt-4-turbo"]
SupportLevel = Literal["community", "email", "priority", "dedicated"]


@dataclass(frozen=True, slots=True)
class PlanLimits:
    """Usage limits and feature flags for a billing plan."""

    # Members
    max_members: int
    max_active_members: int

    # Team
    max_users: int
    max_trainers: int

    # Classes & schedules
    max_classes: int
    max_classes_per_day: int

    # AI
    ai_requests_per_month: int
    ai_model: AIModel
    routine_generations_per_month: int
    exercise_alternatives_per_month: int

    # Communications
    emails_per_month: int
    whatsapp_messages_per_month: int
    push_notifications_per_month: int

    # Storage
    storage_gb: float
    max_file_upload_mb: int

    # Integrations
    api_access: bool
    api_requests_per_day: int
    webhooks: bool
    max_webhooks: int

    # Features
    custom_branding: bool
    white_label: bool
    advanced_reports: bool
    export_data: bool
    multi_location: bool
    max_locations: int

    # Support
    support_level: SupportLevel
    sla_guarantee: bool

    @property
    def storage_bytes(self) -> int:
        return int(self.storage_gb * GIB)

    @property
    def max_file_upload_bytes(self) -> int:
        return self.max_file_upload_mb * MIB

    def feature_flags(self) -> dict[str, bool]:
        """Boolean features granted by the tier, keyed by feature name."""
        return {
            "api_access": self.api_access,
            "advanced_reports": self.advanced_reports,
            "custom_branding": self.custom_branding,
            "white_label": self.white_label,
            "export_data": self.export_data,
            "multi_location": self.multi_location,
            "webhooks": self.webhooks,
        }


PLAN_LIMITS: dict[PlanTier, PlanLimits] = {
    PlanTier.FREE: PlanLimits(
        max_members=15,
        max_active_members=15,
        max_users=1,
        max_trainers=2,
        max_classes=UNLIMITED,
        max_classes_per_day=UNLIMITED,
        ai_requests_per_month=10,
        ai_model="gpt-3.5-turbo",
        routine_generations_per_month=5,
        exercise_alternatives_per_month=10,
        emails_per_month=100,
        whatsapp_messages_per_month=0,
        push_notifications_per_month=100,
        storage_gb=0.5,
        max_file_upload_mb=2,
        api_access=False,
        api_requests_per_day=0,
        webhooks=False,
        max_webhooks=0,
        custom_branding=False,
        white_label=False,
        advanced_reports=False,
        export_data=False,
        multi_location=False,
        max_locations=1,
        support_level="community",
        sla_guarantee=False,
    ),
    PlanTier.STARTER: PlanLimits(
        max_members=50,
        max_active_members=50,
        max_users=2,
        max_trainers=UNLIMITED,
        max_classes=UNLIMITED,
        max_classes_per_day=UNLIMITED,
        ai_requests_per_month=100,
        ai_model="gpt-3.5-turbo",
        routine_generations_per_month=20,
        exercise_alternatives_per_month=50,
        emails_per_month=500,
        whatsapp_messages_per_month=50,
        push_notifications_per_month=500,
        storage_gb=2,
        max_file_upload_mb=5,
        api_access=False,
        api_requests_per_day=0,
        webhooks=False,
        max_webhooks=0,
        custom_branding=False,
        white_label=False,
        advanced_reports=False,
        export_data=True,
        multi_location=False,
        max_locations=1,
        support_level="email",
        sla_guarantee=False,
    ),
    PlanTier.GROWTH: PlanLimits(
        max_members=150,
        max_active_members=150,
        max_users=5,
        max_trainers=UNLIMITED,
        max_classes=UNLIMITED,
        max_classes_per_day=UNLIMITED,
        ai_requests_per_month=300,
        ai_model="gpt-3.5-turbo",
        routine_generations_per_month=50,
        exercise_alternatives_per_month=150,
        emails_per_month=2000,
        whatsapp_messages_per_month=200,
        push_notifications_per_month=2000,
        storage_gb=5,
        max_file_upload_mb=10,
        api_access=False,
        api_requests_per_day=0,
        webhooks=False,
        max_webhooks=0,
        custom_branding=True,
        white_label=False,
        advanced_reports=True,
        export_data=True,
        multi_location=False,
        max_locations=1,
        support_level="email",
        sla_guarantee=False,
    ),
    PlanTier.PRO: PlanLimits(
        max_members=UNLIMITED,
        max_active_members=UNLIMITED,
        max_users=UNLIMITED,
        max_trainers=UNLIMITED,
        max_classes=UNLIMITED,
        max_classes_per_day=UNLIMITED,
        ai_requests_per_month=1000,
        ai_model="gpt-4-turbo",
        routine_generations_per_month=200,
        exercise_alternatives_per_month=500,
        emails_per_month=5000,
        whatsapp_messages_per_month=500,
        push_notifications_per_month=5000,
        storage_gb=15,
        max_file_upload_mb=25,
        api_access=True,
        api_requests_per_day=1000,
        webhooks=True,
        max_webhooks=5,
        custom_branding=True,
        white_label=False,
        advanced_reports=True,
        export_data=True,
        multi_location=True,
        max_locations=3,
        support_level="priority",
        sla_guarantee=False,
    ),
    PlanTier.ENTERPRISE: PlanLimits(
        max_members=UNLIMITED,
        max_active_members=UNLIMITED,
        max_users=UNLIMITED,
        max_trainers=UNLIMITED,
        max_classes=UNLIMITED,
        max_classes_per_day=UNLIMITED,
        ai_requests_per_month=UNLIMITED,
        ai_model="gpt-4-turbo",
        routine_generations_per_month=UNLIMITED,
        exercise_alternatives_per_month=UNLIMITED,
        emails_per_month=UNLIMITED,
        whatsapp_messages_per_month=UNLIMITED,
        push_notifications_per_month=UNLIMITED,
        storage_gb=100,
        max_file_upload_mb=100,
        api_access=True,
        api_requests_per_day=UNLIMITED,
        webhooks=True,
        max_webhooks=UNLIMITED,
        custom_branding=True,
        white_label=True,
        advanced_reports=True,
        export_data=True,
        multi_location=True,
        max_locations=UNLIMITED,
        support_level="dedicated",
        sla_guarantee=True,
    ),
}


def resolve_plan(plan: str | None, default: PlanTier = PlanTier.STARTER) -> PlanTier:
    """Map a stored plan name onto a tier, falling back to ``default``."""
    try:
        return PlanTier(plan) if plan else default
    except ValueError:
        return default


def get_plan_limits(plan: str | None) -> PlanLimits:
    """Get limits for a plan, defaulting to the starter tier."""
    return PLAN_LIMITS[resolve_plan(plan)]


def is_unlimited(limit: int, sentinel: int | None = None) -> bool:
    """True for ``UNLIMITED`` or, when given, any value at or above ``sentinel``."""
    if limit == UNLIMITED:
        return True
    return sentinel is not None and limit >= sentinel
