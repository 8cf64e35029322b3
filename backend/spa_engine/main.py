# backend/spa_engine/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.routing import APIRoute

from .core.config import is_running_tests, settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION, BRAND_NAME
from .core.logging import setup_logging
from .database import init_db
from .errors import register_error_handlers
from .routes.v1 import (
    admin_bookings as admin_bookings_v1,
    admin_gift_vouchers as admin_gift_vouchers_v1,
    availability as availability_v1,
    bookings as bookings_v1,
    gift_vouchers as gift_vouchers_v1,
    health as health_v1,
    prometheus as prometheus_v1,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown without deprecated events."""
    logger.info(f"{BRAND_NAME} API starting up (environment={settings.environment})")
    if settings.environment == "development" and not is_running_tests():
        # Production schemas are managed by migrations
        init_db()
        logger.info("Development database tables ensured")
    yield
    logger.info(f"{BRAND_NAME} API shutting down")


def _unique_operation_id(route: APIRoute) -> str:
    methods = "_".join(sorted(m.lower() for m in route.methods or []))
    path = route.path_format.replace("/", "_").replace("{", "").replace("}", "").strip("_")
    name = (route.name or "operation").lower().replace(" ", "_")
    return f"{methods}__{path}__{name}".strip("_")


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
        generate_unique_id_function=_unique_operation_id,
    )
    register_error_handlers(app)

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(health_v1.router, prefix="/health")
    api_v1.include_router(prometheus_v1.router, prefix="/metrics")
    api_v1.include_router(availability_v1.router)
    api_v1.include_router(bookings_v1.router)
    api_v1.include_router(gift_vouchers_v1.router)
    api_v1.include_router(admin_bookings_v1.router)
    api_v1.include_router(admin_gift_vouchers_v1.router)
    app.include_router(api_v1)

    return app


app = create_app()
