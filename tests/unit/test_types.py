import pytest

from gymgo.exceptions import ConfigError, GymGoError, PlanLimitExceededError, UsageBackendError
from gymgo.types import (
    SYSTEM_USER_ROLES,
    TRAINER_ROLES,
    MeteredResource,
    PlanTier,
    StorageFileType,
    UserRole,
)


@pytest.mark.unit
class TestEnums:
    def test_plan_tier_values(self) -> None:
        assert [t.value for t in PlanTier] == ["free", "starter", "growth", "pro", "enterprise"]

    def test_metered_resource_values(self) -> None:
        assert MeteredResource.ADMIN_USERS.value == "admin_users"
        assert MeteredResource.AI_REQUESTS.value == "ai_requests"
        assert MeteredResource.FILE_SIZE.value == "file_size"

    def test_storage_file_types(self) -> None:
        assert {t.value for t in StorageFileType} == {"image", "document", "other"}


@pytest.mark.unit
class TestRoleSets:
    def test_role_sets_are_disjoint(self) -> None:
        assert not SYSTEM_USER_ROLES & TRAINER_ROLES

    def test_client_is_unmetered(self) -> None:
        assert UserRole.CLIENT not in SYSTEM_USER_ROLES
        assert UserRole.CLIENT not in TRAINER_ROLES

    def test_plain_strings_match(self) -> None:
        assert "instructor" in TRAINER_ROLES
        assert "nutritionist" in SYSTEM_USER_ROLES


@pytest.mark.unit
class TestExceptions:
    def test_base_exception_hierarchy(self) -> None:
        assert issubclass(UsageBackendError, GymGoError)
        assert issubclass(PlanLimitExceededError, GymGoError)
        assert issubclass(ConfigError, GymGoError)

    def test_exception_message(self) -> None:
        err = UsageBackendError("connection refused")
        assert str(err) == "connection refused"

    def test_exceptions_catchable_as_base(self) -> None:
        with pytest.raises(GymGoError):
            raise ConfigError("bad value")
