from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import Depends, FastAPI

from teamy.db.init_db import init_db
from teamy.logging_config import configure_app_logging
from teamy.routers import announcements, calendar, health, members, tests
from teamy.security.config import load_security_config
from teamy.security.dependencies import enforce_security
from teamy.settings import get_settings

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        app.state.security_config = load_security_config(settings.resolved_security_config_path())
        logger.info("Loaded security config: %s", settings.resolved_security_config_path())
        init_db()
        logger.info("Database initialized (tables ensured + seed if needed)")

        yield

    # Global dependency: authentication and club-admin checks for every route.
    app = FastAPI(title="Teamy visibility", dependencies=[Depends(enforce_security)], lifespan=lifespan)

    app.include_router(health.router)
    app.include_router(members.router)
    app.include_router(announcements.router)
    app.include_router(calendar.router)
    app.include_router(tests.router)

    return app


app = create_app()
