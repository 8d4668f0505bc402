from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from permgate.db.init_db import init_db
from permgate.logging_config import configure_app_logging
from permgate.routers import admin, articles, auth, health, orders
from permgate.settings import get_settings

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        init_db()
        logger.info("Database initialized (catalog synced from %s)", settings.resolved_catalog_path())
        if settings.expose_permission_details:
            logger.warning("Permission details are exposed in 403 responses; disable in production")

        yield

    # Authorization is per route (permgate.security.dependencies); /health stays public.
    app = FastAPI(title="permgate", lifespan=lifespan)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(admin.router)
    app.include_router(articles.router)
    app.include_router(orders.router)

    return app


app = create_app()
