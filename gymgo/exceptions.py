"""Exception hierarchy for GymGo."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gymgo.billing.errors import PlanLimitError


class GymGoError(Exception):
    """Base exception for all GymGo errors."""


class UsageBackendError(GymGoError):
    """Raised when an organization lookup, row count or usage counter call fails."""


class PlanLimitExceededError(GymGoError):
    """Raised by callers that turn a denied limit check into a hard failure."""

    def __init__(self, error: PlanLimitError) -> None:
        super().__init__(error.message)
        self.error = error


class ConfigError(GymGoError):
    """Raised when configuration is invalid."""
