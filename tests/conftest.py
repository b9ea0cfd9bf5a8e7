"""Shared test fixtures."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from gymgo.billing.collaborators import OrganizationRecord
from gymgo.billing.engine import QuotaPolicyEngine
from gymgo.models.database import Member, Organization, Profile, _utc_now
from gymgo.storage.repositories.organizations import InMemoryOrganizationRepository
from gymgo.storage.repositories.usage import InMemoryUsageRepository

STARTER_ORG_ID = "org-starter"
PRO_ORG_ID = "org-pro"
ENTERPRISE_ORG_ID = "org-enterprise"


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with all tables created + seeded organizations."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    async with AsyncSession(engine) as session:
        for org_id, plan in (
            (STARTER_ORG_ID, "starter"),
            (PRO_ORG_ID, "pro"),
            (ENTERPRISE_ORG_ID, "enterprise"),
        ):
            session.add(
                Organization(
                    id=org_id,
                    name=f"{plan.title()} Gym",
                    subscription_plan=plan,
                    created_at=_utc_now(),
                    updated_at=_utc_now(),
                )
            )
        await session.commit()

        for i in range(3):
            session.add(Member(organization_id=STARTER_ORG_ID, full_name=f"Member {i}"))
        session.add(Profile(organization_id=STARTER_ORG_ID, email="owner@gym.test", role="owner"))
        session.add(
            Profile(organization_id=STARTER_ORG_ID, email="coach@gym.test", role="trainer")
        )
        session.add(Profile(organization_id=STARTER_ORG_ID, email="c@gym.test", role="client"))
        await session.commit()

    yield engine
    await engine.dispose()


@pytest.fixture()
def organizations() -> InMemoryOrganizationRepository:
    """In-memory store with one organization per paid tier."""
    repo = InMemoryOrganizationRepository()
    repo.add_organization(OrganizationRecord(id=STARTER_ORG_ID, subscription_plan="starter"))
    repo.add_organization(OrganizationRecord(id=PRO_ORG_ID, subscription_plan="pro"))
    repo.add_organization(
        OrganizationRecord(id=ENTERPRISE_ORG_ID, subscription_plan="enterprise")
    )
    return repo


@pytest.fixture()
def usage(organizations: InMemoryOrganizationRepository) -> InMemoryUsageRepository:
    return InMemoryUsageRepository(organizations)


@pytest.fixture()
def quota_engine(
    organizations: InMemoryOrganizationRepository, usage: InMemoryUsageRepository
) -> QuotaPolicyEngine:
    return QuotaPolicyEngine(organizations, organizations, usage)
