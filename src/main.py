"""
Trustee Portal Identity Service
Controller/Service/Repository Pattern
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from core.cache import CacheManager, RateLimiter
from core.config import ApplicationConfig, get_config
from core.logging_setup import configure_logging
from stores import create_store_from_config
from stores.base_store import BaseQueryStore

# Import domain controllers
from domains.identity.controllers.auth_controller import router as auth_router

logger = logging.getLogger(__name__)


class IdentityServiceContext:
    """Centralized service context for dependency injection"""

    def __init__(self, config: Optional[ApplicationConfig] = None, store: Optional[BaseQueryStore] = None):
        self.config = config or get_config()
        self.store = store
        self.cache_manager: Optional[CacheManager] = None
        self.rate_limiter: Optional[RateLimiter] = None
        self.start_time = datetime.now(timezone.utc)
        self._initialized = False

    async def initialize(self):
        """Initialize all connections and services"""
        if self._initialized:
            return

        logger.info("Initializing Identity Service Context...")

        if self.store is None:
            self.store = create_store_from_config(self.config)
        logger.info(f"Initializing query store: {self.config.store.backend}")
        await self.store.initialize()

        if self.config.security.rate_limit_enabled:
            self.cache_manager = CacheManager(self.config.redis)
            await self.cache_manager.initialize()
            self.rate_limiter = RateLimiter(
                self.cache_manager,
                max_requests=self.config.security.rate_limit_requests,
                window_seconds=self.config.security.rate_limit_window
            )

        self._initialized = True
        logger.info("Identity Service Context initialized successfully")

    async def cleanup(self):
        """Cleanup all connections"""
        logger.info("Cleaning up Identity Service Context...")

        if self.store:
            await self.store.cleanup()

        if self.cache_manager:
            await self.cache_manager.cleanup()

        self._initialized = False
        logger.info("Cleanup complete")

    async def health(self) -> dict:
        store_health = await self.store.health_check() if self.store else {"status": "error"}
        health = {
            "status": "healthy" if store_health.get("status") == "healthy" else "degraded",
            "version": self.config.app_version,
            "store": store_health,
            "collections": self.config.get_database_collections(),
            "uptime_seconds": (datetime.now(timezone.utc) - self.start_time).total_seconds(),
            "timestamp": datetime.now(timezone.utc),
        }
        if self.cache_manager:
            health["cache"] = await self.cache_manager.health_check()
        return health


def create_app(context: Optional[IdentityServiceContext] = None) -> FastAPI:
    """Build the FastAPI application; a prepared context may be injected"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage service lifecycle"""
        logger.info("Starting Identity Service...")
        app.state.identity_service = context or IdentityServiceContext()
        await app.state.identity_service.initialize()
        logger.info("Identity Service started successfully")

        yield

        logger.info("Shutting down Identity Service...")
        await app.state.identity_service.cleanup()
        logger.info("Identity Service shutdown complete")

    config = context.config if context else get_config()
    configure_logging(config.logging)

    app = FastAPI(
        title=config.app_name,
        version=config.app_version,
        description="Phone identity resolution for the trustee portal sign-in",
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_origins,
        allow_credentials=config.security.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)

    @app.get("/health")
    async def health_check():
        """Health check covering the query store and Redis"""
        return await app.state.identity_service.health()

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics"""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/")
    async def root():
        """Root endpoint with service information"""
        return {
            "service": config.app_name,
            "version": config.app_version,
            "store": config.store.backend,
            "documentation": "/docs",
            "health": "/health"
        }

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_config()
    uvicorn.run(
        "main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        log_level=settings.logging.level.lower(),
        access_log=False,
        reload=False
    )
