"""FastAPI application factory."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gymgo.config.logging import setup_logging
from gymgo.config.settings import get_settings
from gymgo.exceptions import PlanLimitExceededError
from gymgo.web.middleware import RequestIDMiddleware
from gymgo.web.routes.limits import router as limits_router

logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)

    app = FastAPI(
        title="GymGo",
        description="Plan limits and usage quotas for gym organizations",
        version="0.1.0",
    )

    # Denied quota checks surface as 429 with the structured plan-limit payload
    @app.exception_handler(PlanLimitExceededError)
    async def plan_limit_handler(request: Request, exc: PlanLimitExceededError) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={"detail": exc.error.message, "error": exc.error.to_dict()},
        )

    # Middleware (order matters, last added runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)

    @app.get("/api/health")
    async def health_check() -> dict[str, object]:
        from gymgo.web.health import check_health

        return await check_health()

    app.include_router(limits_router)

    logger.info("app_created")
    return app
