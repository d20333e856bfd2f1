import time

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import exceptions
from .config import settings
from .logger import setup_logger
from .rate_limit import FixedWindowRateLimiter, NoOpRateLimiter

setup_logger(debug=settings.DEBUG, log_file=settings.LOG_FILE)

app = FastAPI(title="Taskboard API", version="1.0.0")

if settings.RATE_LIMIT_ENABLED:
    app.state.rate_limiter = FixedWindowRateLimiter(
        settings.RATE_LIMIT_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS
    )
else:
    app.state.rate_limiter = NoOpRateLimiter()

if settings.cors_origins_list:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

RATE_LIMIT_EXEMPT_PATHS = {"/api/health"}


def message_response(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message}, headers=headers)


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    path = request.url.path
    if not path.startswith("/api/") or path in RATE_LIMIT_EXEMPT_PATHS:
        return await call_next(request)

    key = request.client.host if request.client else "anonymous"
    result = request.app.state.rate_limiter.hit(key)
    if not result.allowed:
        error = exceptions.RateLimitedError(retry_after=result.reset)
        return message_response(
            error.status_code, error.message, headers={"Retry-After": str(result.reset)}
        )

    return await call_next(request)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.debug(
        "{} {} -> {} ({:.2f} ms)",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


@app.exception_handler(exceptions.AppException)
async def app_exception_handler(request: Request, exc: exceptions.AppException) -> JSONResponse:
    headers = None
    if isinstance(exc, exceptions.RateLimitedError) and exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}
    return message_response(exc.status_code, exc.message, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    return message_response(status.HTTP_400_BAD_REQUEST, validation_error_message(exc.errors()))


def validation_error_message(errors) -> str:
    if not errors:
        return "Validation failed"

    error = errors[0]
    message = error.get("msg", "Validation failed")
    # Messages from our own validators come through as "Value error, <message>"
    if error.get("type") == "value_error":
        return message.removeprefix("Value error, ")

    location = [str(part) for part in error.get("loc", ()) if part not in ("body", "path", "query")]
    field = ".".join(location)
    if error.get("type") == "missing" and not field:
        return "Request body is required"
    if error.get("type") == "missing":
        return f"Missing required field '{field}'"
    if error.get("type", "").startswith("uuid"):
        return f"Invalid {field} format"
    return f"Invalid field '{field}': {message}" if field else message


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return message_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error(
        "Unhandled error during {} {}", request.method, request.url.path
    )
    return message_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")
