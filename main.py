from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exception_handlers import http_exception_handler, request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from config import config, normalize_cors_origins
from routers import health, remote_sync
from services.errors import DomainError, ErrorKind
from services.scheduler_service import scheduler_service
from utils.prometheus import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

# Configure Logging
import logging_config  # This initializes logging

logger = logging.getLogger("projectsync.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting up application...")

    if config.SCHEDULER_ENABLED:
        try:
            scheduler_service.start()
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    if config.SCHEDULER_ENABLED:
        scheduler_service.shutdown()

app = FastAPI(lifespan=lifespan)

# Parse and normalize CORS origins from config (comma-separated string)
origins = normalize_cors_origins(config.CORS_ORIGINS)

logger.info(f"CORS allowed origins: {origins}")

cors_params = {
    "allow_origins": origins,
    "allow_credentials": True,
    "allow_methods": ["*"],
    "allow_headers": ["*"],
}

if config.CORS_ORIGIN_REGEX:
    cors_params["allow_origin_regex"] = config.CORS_ORIGIN_REGEX
    logger.info(f"CORS origin regex enabled: {config.CORS_ORIGIN_REGEX}")

app.add_middleware(
    CORSMiddleware,
    **cors_params,
)


HTTP_STATUS_CODE_MAP = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    422: "validation_error",
    429: "too_many_requests",
}

DOMAIN_ERROR_STATUS = {
    ErrorKind.INVALID_NAME: 400,
    ErrorKind.MISSING_PARAMETER: 400,
    ErrorKind.AUTH_EXPIRED: 401,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.NAME_CONFLICT: 409,
    ErrorKind.DUPLICATE_MAPPING: 409,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.QUOTA_EXCEEDED: 507,
    ErrorKind.TEMPLATE_PARTIAL_FAILURE: 207,
    ErrorKind.UNKNOWN: 502,
}


def _http_exception_to_api_error(exc: HTTPException) -> dict:
    detail = exc.detail
    if isinstance(detail, str):
        message = detail
    elif isinstance(detail, dict) and "message" in detail:
        message = str(detail["message"])
    else:
        message = str(detail) if detail else "Request error"

    payload = {
        "error": message,
        "code": HTTP_STATUS_CODE_MAP.get(exc.status_code, "http_error"),
        "message": message,
    }

    if not isinstance(detail, str):
        payload["details"] = detail

    return payload


@app.middleware("http")
async def ensure_api_json_error_response(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception:
        if request.url.path.startswith("/api"):
            logging.getLogger("projectsync.main").error(
                "Unhandled exception for API request", exc_info=True
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "An unexpected error occurred",
                    "code": "internal_server_error",
                    "message": "An unexpected error occurred",
                },
            )
        raise


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """Classified sync errors become JSON with a status derived from their kind."""
    status_code = DOMAIN_ERROR_STATUS.get(exc.kind, 502)
    if status_code >= 500 or exc.kind == ErrorKind.RATE_LIMITED:
        logger.warning(
            "Remote sync request failed",
            extra={"kind": exc.kind.value, "path": request.url.path, "http_status": exc.http_status},
        )
    return JSONResponse(
        status_code=status_code,
        content={
            "error": exc.user_message,
            "code": exc.kind.value,
            "message": exc.user_message,
            "details": exc.detail,
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler_for_api(request: Request, exc: HTTPException):
    """Normalize HTTPException responses for /api routes while preserving defaults elsewhere."""
    if request.url.path.startswith("/api"):
        return JSONResponse(status_code=exc.status_code, content=_http_exception_to_api_error(exc))

    return await http_exception_handler(request, exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Normalize validation errors for API routes while preserving default behavior elsewhere."""
    if request.url.path.startswith("/api"):
        return JSONResponse(
            status_code=422,
            content={
                "error": "Validation error",
                "code": "validation_error",
                "message": "Validation error",
                "details": exc.errors(),
            },
        )

    return await request_validation_exception_handler(request, exc)

app.include_router(remote_sync.router, prefix="/api/remote")
app.include_router(health.router)


@app.get("/metrics")
def prometheus_metrics():
    """Expose Prometheus metrics collected by the application."""
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)

@app.get("/")
def read_root():
    return {"message": "Project folder sync service"}
