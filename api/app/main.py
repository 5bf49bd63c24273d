from contextlib import asynccontextmanager
import logging
import time
import uuid

from fastapi import FastAPI
from starlette.requests import Request

from app.api.router import api_router
from app.core.config import get_settings
from app.core.telemetry import (
    TelemetryRuntime,
    configure_api_logging,
    setup_api_telemetry,
    shutdown_api_telemetry,
)
from app.services.realtime import get_realtime_hub
from app.services.repository import get_repository

REQUEST_ID_HEADER = "X-Request-ID"

settings = get_settings()
configure_api_logging(settings.log_level)
logger = logging.getLogger(__name__)
_telemetry_runtime: TelemetryRuntime | None = None


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info("api starting environment=%s store_backend=%s", settings.environment, settings.store_backend)
    try:
        yield
    finally:
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(app, _telemetry_runtime)
        await get_repository().close()
        get_repository.cache_clear()
        get_realtime_hub.cache_clear()
        logger.info("api stopped")


app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_api_telemetry(app, settings)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    response.headers[REQUEST_ID_HEADER] = request_id
    logger.info(
        "http request request_id=%s method=%s path=%s status=%s duration_ms=%.2f",
        request_id,
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)
