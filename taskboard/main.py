import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from taskboard.cache.layer import CacheLayer
from taskboard.core.config import Settings, get_settings
from taskboard.core.errors import register_exception_handlers
from taskboard.core.logging_setup import setup_logging
from taskboard.database import Database
from taskboard.routers import auth, tasks, users
from taskboard.services.user_service import ensure_default_user
from taskboard.storage import ObjectStorage, SupabaseStorage

logger = logging.getLogger(__name__)


def build_storage(settings: Settings) -> ObjectStorage | None:
    if not settings.storage_enabled:
        logger.warning("STORAGE_URL/STORAGE_KEY not set, avatar uploads are disabled")
        return None
    return SupabaseStorage(
        settings.storage_url,
        settings.storage_key,
        settings.storage_bucket,
        cache_control=settings.storage_cache_control,
    )


def create_app(
    settings: Settings | None = None,
    *,
    redis: Redis | None = None,
    storage: ObjectStorage | None = None,
    http_client: httpx.AsyncClient | None = None,
    cache_timer=None,
) -> FastAPI:
    """
    Build the application. Dependencies not passed in are constructed from
    settings when the app starts and closed when it stops.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.jwt_secret == "change-me":
            logger.warning("JWT_SECRET is not set, using the development default")

        database = Database(settings.database_url, echo=settings.database_echo)
        await database.create_all()

        cache_kwargs = {"timer": cache_timer} if cache_timer else {}
        cache = CacheLayer(settings, redis=redis, **cache_kwargs)
        await cache.init_cache()

        app.state.settings = settings
        app.state.database = database
        app.state.cache = cache
        app.state.storage = storage if storage is not None else build_storage(settings)
        app.state.http_client = http_client or httpx.AsyncClient()

        if settings.seed_default_user:
            async with database.session_factory() as session:
                await ensure_default_user(session, settings)

        logger.info("%s started", settings.app_name)
        yield

        await cache.close()
        if app.state.storage is not None:
            await app.state.storage.aclose()
        await app.state.http_client.aclose()
        await database.dispose()
        logger.info("%s stopped", settings.app_name)

    app = FastAPI(
        title=settings.app_name,
        description="Task management API with cached task listing and bearer-token auth",
        swagger_ui_parameters={"displayRequestDuration": True},
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    # Include routers
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(tasks.router)

    @app.get("/")
    async def root():
        return {
            "message": f"Welcome to {settings.app_name}",
            "docs": "/docs",
            "version": "1.0.0",
        }

    @app.get("/health")
    async def health_check():
        cache = app.state.cache
        # Also gives a degraded cache the chance to reconnect
        await cache.init_cache()
        status = "degraded" if cache.degraded else "healthy"
        return {"status": status, "cache": cache.get_stats()}

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
