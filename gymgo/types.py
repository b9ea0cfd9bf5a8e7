"""Enums and type aliases for GymGo."""

from enum import StrEnum


class PlanTier(StrEnum):
    FREE = "free"
    STARTER = "starter"
    GROWTH = "growth"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class MeteredResource(StrEnum):
    MEMBERS = "members"
    ADMIN_USERS = "admin_users"
    TRAINERS = "trainers"
    LOCATIONS = "locations"
    CLASSES = "classes"
    STORAGE = "storage"
    API_REQUESTS = "api_requests"
    WHATSAPP = "whatsapp"
    EMAILS = "emails"
    AI_REQUESTS = "ai_requests"
    FILE_SIZE = "file_size"


class UserRole(StrEnum):
    OWNER = "owner"
    ADMIN = "admin"
    ASSISTANT = "assistant"
    NUTRITIONIST = "nutritionist"
    TRAINER = "trainer"
    INSTRUCTOR = "instructor"
    CLIENT = "client"


class StorageFileType(StrEnum):
    IMAGE = "image"
    DOCUMENT = "document"
    OTHER = "other"


# Roles counted against max_users
SYSTEM_USER_ROLES: frozenset[str] = frozenset(
    {UserRole.OWNER, UserRole.ADMIN, UserRole.ASSISTANT, UserRole.NUTRITIONIST}
)

# Roles counted against max_trainers
TRAINER_ROLES: frozenset[str] = frozenset({UserRole.TRAINER, UserRole.INSTRUCTOR})
