from __future__ import annotations

import logging
import sys

import structlog
from fastapi import FastAPI

from .api.errors import register_error_handlers
from .api.routes.transcodes import router as transcodes_router
from .api.routes.videos import router as videos_router
from .core.config import Settings, get_settings
from .services.runtime import TranscodeRuntime, build_runtime
from .telemetry import setup_prometheus


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        stream=sys.stdout,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_app(
    runtime: TranscodeRuntime | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    settings = settings or (runtime.settings if runtime else get_settings())
    configure_logging(settings.log_level)
    app = FastAPI(title=settings.project_name, version="0.1.0")
    app.state.runtime = runtime or build_runtime(settings)

    @app.on_event("startup")
    async def _startup() -> None:
        await app.state.runtime.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await app.state.runtime.stop()

    @app.get("/healthz")
    def healthz() -> dict[str, str | bool | int]:
        pool = app.state.runtime.pool
        return {"ok": pool.started, "service": "transcode", "backlog": pool.backlog}

    app.include_router(transcodes_router, prefix=settings.api_v1_prefix)
    app.include_router(videos_router, prefix=settings.api_v1_prefix)
    register_error_handlers(app)

    if settings.enable_prometheus_metrics:
        setup_prometheus(app, settings.prometheus_metrics_path)

    return app


app = create_app()
