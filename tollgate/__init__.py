"""
Tollgate - credential lifecycle and tiered rate limiting for FastAPI.

Issues, verifies and rotates access/refresh tokens, tracks sessions and login
history, locks out brute-forced accounts, and keeps every identity class
within its request budget.
"""

__version__ = "0.1.0"

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI

from .api import router as api_router
from .api.errors import register_exception_handlers
from .container import Services, build_services
from .core.config import Settings, get_settings
from .db.session import Database
from .middleware import InterceptorChain
from .ratelimit import BucketStore
from .utils.datetime import utcnow

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: "TollgateAPI"):
    services = app.services
    logger.info("Starting up Tollgate...")
    if services.settings.AUTO_CREATE_TABLES:
        await services.database.create_tables()
    services.sweeper.start()
    try:
        yield
    finally:
        logger.info("Shutting down Tollgate...")
        await services.close()


class TollgateAPI(FastAPI):
    """FastAPI application carrying one ``Services`` container."""

    def __init__(self, services: Services, *args, **kwargs):
        kwargs.setdefault("lifespan", lifespan)
        super().__init__(*args, **kwargs)
        self.services = services
        self.state.services = services
        self._setup()

    def _setup(self):
        register_exception_handlers(self)
        self.include_router(api_router)
        InterceptorChain.standard(self.services).apply_to_app(self)

        @self.get("/health", tags=["health"])
        async def health_check():
            db_ok = await self.services.database.health_check()
            return {"status": "ok" if db_ok else "degraded", "database": db_ok}


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    bucket_store: Optional[BucketStore] = None,
    clock: Callable[[], datetime] = utcnow,
    **kwargs,
) -> TollgateAPI:
    """
    Create and configure a Tollgate application.

    Args:
        settings: Settings to use; loaded from the environment when omitted.
            A missing or weak JWT_SECRET raises ConfigurationError here.
        database: Pre-built database, e.g. one shared with a test.
        bucket_store: Rate limit bucket store overriding RATE_LIMIT_BACKEND.
        clock: Source of naive-UTC "now" for every component.
        **kwargs: Passed through to FastAPI.
    """
    settings = settings or get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    services = build_services(settings, database=database, bucket_store=bucket_store, clock=clock)
    kwargs.setdefault("title", settings.APP_NAME)
    kwargs.setdefault("version", __version__)
    kwargs.setdefault("debug", settings.DEBUG)
    app = TollgateAPI(services, **kwargs)
    logger.info(
        f"Tollgate configured (rate limiting {'on' if settings.RATE_LIMIT_ENABLED else 'off'}, "
        f"backend={settings.RATE_LIMIT_BACKEND})"
    )
    return app


__all__ = ["TollgateAPI", "create_app", "Settings", "Services"]
