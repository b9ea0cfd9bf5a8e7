"""Plan-limit API routes: checks, consumption and usage summary per organization."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from gymgo.billing import messages
from gymgo.billing.engine import QuotaPolicyEngine
from gymgo.billing.errors import PlanLimitError, create_plan_limit_error, raise_for_limit
from gymgo.exceptions import PlanLimitExceededError, UsageBackendError
from gymgo.types import MeteredResource, StorageFileType
from gymgo.web.dependencies import get_quota_engine

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/organizations/{org_id}", tags=["limits"])

_CONSUMABLE = frozenset(
    {
        MeteredResource.WHATSAPP,
        MeteredResource.EMAILS,
        MeteredResource.API_REQUESTS,
        MeteredResource.AI_REQUESTS,
        MeteredResource.STORAGE,
    }
)


class FileCheckRequest(BaseModel):
    size_bytes: int = Field(ge=0)


class ConsumeRequest(BaseModel):
    amount: int = Field(default=1, ge=1)  # messages, or bytes for storage
    is_write: bool = False
    tokens_used: int = Field(default=0, ge=0)
    file_type: StorageFileType = StorageFileType.OTHER


@router.get("/limits")
async def get_limits(
    org_id: str,
    engine: QuotaPolicyEngine = Depends(get_quota_engine),
) -> dict[str, Any]:
    try:
        limits = await engine.get_organization_limits(org_id)
    except UsageBackendError as e:
        raise HTTPException(status_code=503, detail=messages.VERIFY_LIMITS_ERROR) from e
    if limits is None:
        raise HTTPException(status_code=404, detail=messages.ORGANIZATION_NOT_FOUND)
    return asdict(limits)


@router.get("/limits/{resource}")
async def check_limit(
    org_id: str,
    resource: MeteredResource,
    engine: QuotaPolicyEngine = Depends(get_quota_engine),
) -> dict[str, Any]:
    if resource == MeteredResource.FILE_SIZE:
        raise HTTPException(status_code=400, detail="Use POST /files/check for file size limits")
    if resource == MeteredResource.API_REQUESTS:
        return asdict(await engine.check_api_rate_limit(org_id))
    return asdict(await engine.check(org_id, resource))


@router.get("/roles/{role}/limit")
async def check_role_limit(
    org_id: str,
    role: str,
    engine: QuotaPolicyEngine = Depends(get_quota_engine),
) -> dict[str, Any]:
    return asdict(await engine.check_role_limit(org_id, role))


@router.get("/features/{feature}")
async def check_feature(
    org_id: str,
    feature: str,
    engine: QuotaPolicyEngine = Depends(get_quota_engine),
) -> dict[str, Any]:
    return asdict(await engine.check_feature_access(org_id, feature))


@router.post("/files/check")
async def check_file_size(
    org_id: str,
    body: FileCheckRequest,
    engine: QuotaPolicyEngine = Depends(get_quota_engine),
) -> dict[str, Any]:
    return asdict(await engine.check_file_size_limit(org_id, body.size_bytes))


@router.post("/usage/{resource}/consume")
async def consume_usage(
    org_id: str,
    resource: MeteredResource,
    body: ConsumeRequest,
    engine: QuotaPolicyEngine = Depends(get_quota_engine),
) -> dict[str, Any]:
    """Check the resource, then record the usage. Denials become HTTP 429."""
    if resource not in _CONSUMABLE:
        raise HTTPException(status_code=400, detail=f"{resource} is not a consumable resource")

    if resource == MeteredResource.STORAGE:
        storage_check = await engine.check_storage_limit(org_id, body.amount)
        raise_for_limit(resource, storage_check)
        update = await engine.update_storage_usage(org_id, body.amount, body.file_type)
        return asdict(update)

    denial = await _denial(engine, org_id, resource)
    if denial is not None:
        raise PlanLimitExceededError(denial)
    if resource == MeteredResource.API_REQUESTS:
        consumed = await engine.consume_api_request(org_id, body.is_write)
    elif resource == MeteredResource.AI_REQUESTS:
        consumed = await engine.consume_ai_request(org_id, body.tokens_used)
    elif resource == MeteredResource.WHATSAPP:
        consumed = await engine.consume_whatsapp_message(org_id, body.amount)
    else:
        consumed = await engine.consume_email(org_id, body.amount)

    if not consumed.success:
        # The amount did not fit under the ceiling, or another request took the last units
        denial = await _denial(engine, org_id, resource, refused=True)
        raise PlanLimitExceededError(denial)
    logger.info("usage_consumed", org_id=org_id, resource=str(resource), amount=body.amount)
    return asdict(consumed)


async def _denial(
    engine: QuotaPolicyEngine,
    org_id: str,
    resource: MeteredResource,
    *,
    refused: bool = False,
) -> PlanLimitError | None:
    """Re-check ``resource`` and describe the denial.

    A denying check yields its own message. With ``refused`` set, a check that
    still allows means the requested amount does not fit, so the payload names
    the ceiling with the current usage.
    """
    if resource == MeteredResource.API_REQUESTS:
        rate = await engine.check_api_rate_limit(org_id)
        if not rate.allowed:
            return create_plan_limit_error(
                resource, rate.message or "", rate.used, rate.daily_limit
            )
        if refused:
            return create_plan_limit_error(
                resource,
                messages.daily_api_limit_reached(rate.daily_limit),
                rate.used,
                rate.daily_limit,
            )
        return None

    if resource == MeteredResource.AI_REQUESTS:
        ai_check = await engine.check_ai_limit(org_id)
        if not ai_check.allowed:
            return create_plan_limit_error(
                resource,
                ai_check.message or "",
                ai_check.current,
                ai_check.limit,
                ai_check.reset_date,
            )
        if refused:
            return create_plan_limit_error(
                resource,
                messages.ai_limit_reached(ai_check.limit, ai_check.reset_date or ""),
                ai_check.current,
                ai_check.limit,
                ai_check.reset_date,
            )
        return None

    if resource == MeteredResource.WHATSAPP:
        check = await engine.check_whatsapp_limit(org_id)
        noun = "mensajes WhatsApp"
    else:
        check = await engine.check_email_limit(org_id)
        noun = "emails"
    if not check.allowed:
        return create_plan_limit_error(
            resource, check.message or "", check.current, check.limit
        )
    if refused:
        return create_plan_limit_error(
            resource,
            messages.monthly_limit_reached(check.limit, noun),
            check.current,
            check.limit,
        )
    return None


@router.get("/usage")
async def usage_summary(
    org_id: str,
    engine: QuotaPolicyEngine = Depends(get_quota_engine),
) -> dict[str, Any]:
    summary = await engine.get_usage_summary(org_id)
    return {str(resource): asdict(result) for resource, result in summary.items()}
