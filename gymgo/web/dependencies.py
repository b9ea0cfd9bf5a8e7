"""FastAPI dependency injection and shared state."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import structlog

from gymgo.billing.engine import QuotaPolicyEngine
from gymgo.config.settings import get_settings
from gymgo.storage.repositories.organizations import InMemoryOrganizationRepository
from gymgo.storage.repositories.usage import InMemoryUsageRepository

logger = structlog.get_logger(__name__)


def _create_repositories() -> tuple[Any, Any]:
    """Create the organization and usage repositories based on settings."""
    settings = get_settings()
    if settings.use_database:
        from gymgo.storage.database import get_engine
        from gymgo.storage.repositories.organizations import DatabaseOrganizationRepository
        from gymgo.storage.repositories.usage import DatabaseUsageRepository

        engine = get_engine()
        organizations = DatabaseOrganizationRepository(engine)
        usage = DatabaseUsageRepository(
            engine, organizations, default_plan=settings.default_plan
        )
        return organizations, usage

    in_memory = InMemoryOrganizationRepository()
    return in_memory, InMemoryUsageRepository(in_memory, default_plan=settings.default_plan)


@lru_cache
def get_quota_engine() -> QuotaPolicyEngine:
    """Return the process-wide quota engine."""
    settings = get_settings()
    organizations, usage = _create_repositories()
    logger.info(
        "quota_engine_created",
        use_database=settings.use_database,
        fail_open=[str(r) for r in settings.quota_fail_open],
    )
    return QuotaPolicyEngine(
        organizations,
        organizations,
        usage,
        default_plan=settings.default_plan,
        fail_open=settings.quota_fail_open,
    )
