"""Organization records and resource row counts."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from gymgo.billing.collaborators import OrganizationRecord
from gymgo.exceptions import UsageBackendError
from gymgo.models.database import GymClass, Location, Member, Organization, Profile

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


def _parse_features(features_json: str | None) -> dict[str, bool]:
    """Decode the organization's feature overrides, ignoring malformed JSON."""
    if not features_json:
        return {}
    try:
        raw = json.loads(features_json)
    except json.JSONDecodeError:
        logger.warning("organization_features_invalid_json")
        return {}
    if not isinstance(raw, dict):
        return {}
    return {str(k): bool(v) for k, v in raw.items()}


class DatabaseOrganizationRepository:
    """PostgreSQL-backed organization store and row counter."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get_organization(self, org_id: str) -> OrganizationRecord | None:
        try:
            async with AsyncSession(self._engine) as session:
                org = await session.get(Organization, org_id)
        except SQLAlchemyError as e:
            raise UsageBackendError(f"Organization lookup failed: {e}") from e
        if org is None:
            return None
        return OrganizationRecord(
            id=org.id,
            subscription_plan=org.subscription_plan,
            max_members=org.max_members,
            max_admin_users=org.max_admin_users,
            max_locations=org.max_locations,
            features=_parse_features(org.features_json),
        )

    async def count_members(self, org_id: str) -> int:
        return await self._count(Member, org_id)

    async def count_profiles(self, org_id: str, roles: Iterable[str]) -> int:
        return await self._count(Profile, org_id, col(Profile.role).in_([str(r) for r in roles]))

    async def count_locations(self, org_id: str) -> int:
        return await self._count(Location, org_id)

    async def count_classes(self, org_id: str) -> int:
        return await self._count(GymClass, org_id)

    async def _count(self, model: Any, org_id: str, *where: Any) -> int:
        stmt = (
            select(func.count())
            .select_from(model)
            .where(model.organization_id == org_id, *where)
        )
        try:
            async with AsyncSession(self._engine) as session:
                result = await session.exec(stmt)
                return int(result.one())
        except SQLAlchemyError as e:
            raise UsageBackendError(f"Counting {model.__tablename__} failed: {e}") from e


class InMemoryOrganizationRepository:
    """Dict-backed organization store and row counter for single-process use."""

    def __init__(self) -> None:
        self._organizations: dict[str, OrganizationRecord] = {}
        self._members: dict[str, int] = {}
        self._profiles: dict[str, list[str]] = {}
        self._locations: dict[str, int] = {}
        self._classes: dict[str, int] = {}

    def add_organization(self, record: OrganizationRecord) -> None:
        self._organizations[record.id] = record

    def add_members(self, org_id: str, count: int = 1) -> None:
        self._members[org_id] = self._members.get(org_id, 0) + count

    def add_profile(self, org_id: str, role: str) -> None:
        self._profiles.setdefault(org_id, []).append(str(role))

    def add_locations(self, org_id: str, count: int = 1) -> None:
        self._locations[org_id] = self._locations.get(org_id, 0) + count

    def add_classes(self, org_id: str, count: int = 1) -> None:
        self._classes[org_id] = self._classes.get(org_id, 0) + count

    async def get_organization(self, org_id: str) -> OrganizationRecord | None:
        return self._organizations.get(org_id)

    async def count_members(self, org_id: str) -> int:
        return self._members.get(org_id, 0)

    async def count_profiles(self, org_id: str, roles: Iterable[str]) -> int:
        wanted = {str(r) for r in roles}
        return sum(1 for role in self._profiles.get(org_id, []) if role in wanted)

    async def count_locations(self, org_id: str) -> int:
        return self._locations.get(org_id, 0)

    async def count_classes(self, org_id: str) -> int:
        return self._classes.get(org_id, 0)
