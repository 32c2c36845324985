from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.requests import Request

from classifieds.api.router import api_router
from classifieds.core.config import get_settings
from classifieds.core.telemetry import TelemetryRuntime, setup_api_telemetry, shutdown_api_telemetry
from classifieds.services.images import CloudinaryImageUploader
from classifieds.services.repository import PostgresRepository

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    repository = PostgresRepository.from_settings(settings)
    image_uploader = CloudinaryImageUploader.from_settings(settings)
    if settings.database_url:
        await repository.open()
    else:
        logger.warning("CM_DATABASE_URL is not set; data endpoints will fail until it is configured")
    if not image_uploader.configured:
        logger.warning("Cloudinary credentials are not set; image uploads will be rejected")
    app.state.repository = repository
    app.state.image_uploader = image_uploader
    try:
        yield
    finally:
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(app, _telemetry_runtime)
        await image_uploader.close()
        await repository.close()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_api_telemetry(app, settings)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(part) for part in error.get("loc", ())[1:]) for error in exc.errors()]
    fields = [field for field in fields if field]
    message = "Invalid request"
    if fields:
        message = f"Invalid request fields: {', '.join(fields)}"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled error method=%s path=%s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"message": "Internal server error"})


app.include_router(api_router)
