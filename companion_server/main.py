from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import APIRouter, Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from companion_server.core.config import Settings, get_settings
from companion_server.core.logging import setup_logging
from companion_server.core.runtime import CompanionRuntime
from companion_server.services.consent import ConsentSurface

from companion_server.api.errors import install_error_handlers
from companion_server.api.rate_limit import limit_by_client

from companion_server.api.routes_auth import router as auth_router
from companion_server.api.routes_player import router as player_router
from companion_server.api.routes_ws import content_router, realtime_router
from companion_server.api.routes_operator import router as operator_router

log = logging.getLogger("app")

API_V1_PREFIX = "/api/v1"

RedisFactory = Callable[[Settings], Redis]


def default_redis_factory(settings: Settings) -> Redis:
    return Redis.from_url(settings.redis_url, decode_responses=False)


def build_v1_router() -> APIRouter:
    # global ceiling per client on top of the per-route limits
    router = APIRouter(dependencies=[Depends(limit_by_client("global", 100, 60))])
    router.include_router(auth_router)
    router.include_router(player_router)
    return router


def create_app(
    settings: Optional[Settings] = None,
    *,
    redis_factory: RedisFactory = default_redis_factory,
    surface: Optional[ConsentSurface] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level)
        log.info("app_starting")

        os.makedirs(settings.data_dir, exist_ok=True)

        redis = redis_factory(settings)
        await redis.ping()
        log.info("redis_connected")

        runtime = CompanionRuntime(settings, redis, surface=surface)
        app.state.redis = redis
        app.state.runtime = runtime
        app.state.rate_limiters = {}

        await runtime.start()
        log.info("runtime_ready")

        try:
            yield
        finally:
            try:
                await runtime.stop()
            except Exception:
                log.exception("error_stopping_runtime")

            try:
                await redis.aclose()
            except Exception:
                log.exception("error_closing_redis")

    app = FastAPI(
        title=settings.app_name,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_error_handlers(app)

    # websocket routes do not go through the HTTP rate limiters
    app.include_router(build_v1_router(), prefix=API_V1_PREFIX)
    app.include_router(realtime_router, prefix=API_V1_PREFIX)
    app.include_router(content_router)
    app.include_router(operator_router)

    @app.get("/health")
    def health():
        return {
            "ok": True,
            "app": settings.app_name,
            "env": settings.app_env,
        }

    return app


app = create_app()
