from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi

from src.shared.config import get_settings
from src.shared.exceptions import register_exception_handlers  # central mapping
from src.shared.health import router as health_router
from src.shared.logging import get_logger, setup_logging
from src.system_settings.api.middleware import RequestContextMiddleware
from src.system_settings.api.routes.audit_logs import router as audit_router
from src.system_settings.api.routes.collections import feature_flags_router, roles_router
from src.system_settings.api.routes.core_system_config import router as core_config_router
from src.system_settings.api.routes.enterprise_infra import router as enterprise_infra_router
from src.system_settings.api.routes.security_framework import router as security_router
from src.system_settings.application.ntp_sync_job import NtpSyncScheduler
from src.system_settings.bootstrap import initialize_default_roles
from src.system_settings.container import SettingsContainer, build_container

logger = get_logger(__name__)


def create_app(container: Optional[SettingsContainer] = None) -> FastAPI:
    settings = get_settings()
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        c = container or build_container(settings)
        app.state.container = c
        await c.db.create_all()
        if settings.SEED_DEFAULT_ROLES:
            await initialize_default_roles(c.roles)
        ntp_job = None
        if settings.NTP_SYNC_ENABLED:
            ntp_job = NtpSyncScheduler(c.core_config, tick_seconds=settings.NTP_SYNC_TICK_SECONDS)
            ntp_job.start()
        logger.info("app_started", environment=settings.ENVIRONMENT)
        try:
            yield
        finally:
            if ntp_job is not None:
                ntp_job.stop()
            await c.close()
            logger.info("app_stopped")

    app = FastAPI(
        title=f"{settings.PROJECT_NAME} API",
        version=settings.PROJECT_VERSION,
        lifespan=lifespan,
        swagger_ui_parameters={"persistAuthorization": True},
    )
    if container is not None:
        app.state.container = container

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    # request id + JWT → request.state.user_claims
    app.add_middleware(RequestContextMiddleware)

    # Routers
    app.include_router(security_router)
    app.include_router(core_config_router)
    app.include_router(enterprise_infra_router)
    app.include_router(feature_flags_router)
    app.include_router(roles_router)
    app.include_router(audit_router)
    app.include_router(health_router)

    # Centralized error handling → {success, code, message, statusCode, details?, correlation_id?}
    register_exception_handlers(app)

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint."""
        return {
            "message": f"{settings.PROJECT_NAME} API",
            "docs": "/docs",
            "health": "/_health/db",
        }

    # ---- Custom OpenAPI to add Bearer auth ----
    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            routes=app.routes,
        )
        schema.setdefault("components", {}).setdefault("securitySchemes", {})["bearerAuth"] = {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
        schema["security"] = [{"bearerAuth": []}]
        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi

    return app


app = create_app()
