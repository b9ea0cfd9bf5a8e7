"""Standard plan-limit error payload shared by API routes and callers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from gymgo.billing.messages import LIMIT_TYPE_LABELS
from gymgo.billing.results import AILimitResult, LimitCheckResult, StorageCheckResult
from gymgo.exceptions import PlanLimitExceededError

PLAN_LIMIT_ERROR_CODE = "PLAN_LIMIT_EXCEEDED"

_LIMIT_KEYWORDS = (
    "límite",
    "limit",
    "alcanzado",
    "exceeded",
    "máximo",
    "maximum",
    "actualiza tu plan",
    "upgrade",
)


@dataclass(frozen=True, slots=True)
class PlanLimitError:
    limit_type: str
    message: str
    current: int
    limit: int
    reset_date: str | None = None
    code: str = PLAN_LIMIT_ERROR_CODE

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "limit_type": self.limit_type,
            "message": self.message,
            "current": self.current,
            "limit": self.limit,
            "reset_date": self.reset_date,
        }


def create_plan_limit_error(
    limit_type: str,
    message: str,
    current: int,
    limit: int,
    reset_date: str | None = None,
) -> PlanLimitError:
    return PlanLimitError(
        limit_type=limit_type,
        message=message,
        current=current,
        limit=limit,
        reset_date=reset_date,
    )


def raise_for_limit(
    limit_type: str,
    result: LimitCheckResult | StorageCheckResult | AILimitResult,
) -> None:
    """Raise ``PlanLimitExceededError`` when ``result`` denies the action."""
    if result.allowed:
        return
    reset_date = result.reset_date if isinstance(result, AILimitResult) else None
    raise PlanLimitExceededError(
        create_plan_limit_error(
            limit_type,
            result.message or "Límite de plan alcanzado",
            result.current,
            result.limit,
            reset_date,
        )
    )


def is_plan_limit_error(result: Mapping[str, Any]) -> bool:
    """Detect a plan-limit failure in an action result.

    An action result is ``{"success": bool, "message": str, "errors": {...}}``.
    Explicit ``PLAN_LIMIT_EXCEEDED`` errors win; otherwise the message is
    scanned for limit wording.
    """
    if result.get("success"):
        return False
    errors = result.get("errors") or {}
    if errors.get(PLAN_LIMIT_ERROR_CODE):
        return True
    message = str(result.get("message", "")).lower()
    return any(keyword in message for keyword in _LIMIT_KEYWORDS)


def extract_plan_limit_data(result: Mapping[str, Any]) -> dict[str, Any]:
    """Pull the limit type (guessed from the message) and display message."""
    message = str(result.get("message", ""))
    lowered = message.lower()
    limit_type = next(
        (key for key, label in LIMIT_TYPE_LABELS.items() if label in lowered),
        None,
    )
    errors = (result.get("errors") or {}).get(PLAN_LIMIT_ERROR_CODE) or []
    return {
        "limit_type": str(limit_type) if limit_type else None,
        "message": errors[0] if errors else message,
    }
