"""
api/main.py -- FastAPI application entry point for the AG Billing credential service.

Thin request layer over the auth/ core: parses requests, calls
AccountService, maps results and AuthError kinds to HTTP responses.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware -- adds CORS headers for allowed browser origins
  2. log_requests   -- one access-log line per request

Lifespan builds every component exactly once from Settings (fail fast on bad
configuration), starts the background sweep task, and tears everything down
symmetrically on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.accounts import AccountService
from auth.errors import InvalidInput, TransientStorageError, UnsupportedAlgorithm
from auth.notify import LoggingNotifier
from auth.passwords import PasswordHasher
from auth.store import _DEFAULT_DB_URL, SqlCredentialStore
from auth.sweeper import CleanupSweeper
from auth.tokens import TokenIssuer
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("agbilling.api")

# ---------------------------------------------------------------------------
# Background sweep task
# ---------------------------------------------------------------------------


async def _sweep_loop(app: FastAPI, interval_seconds: int) -> None:
    """Run CleanupSweeper every interval_seconds.

    The sweep blocks on the store, so it runs in a worker thread via
    asyncio.to_thread and the event loop keeps serving requests. A failed pass
    is logged and retried on the next tick. CancelledError from task.cancel()
    during shutdown propagates out of asyncio.sleep and unwinds cleanly.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(app.state.sweeper.run)
        except TransientStorageError:
            logger.warning("Sweep skipped: credential store unavailable")
        except Exception:
            logger.exception("Error during cleanup of unverified accounts")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Settings -- invalid configuration aborts startup here.
      2. Token issuer -- a weak key raises ConfigurationError before any
         request is served.
      3. Store, then everything that depends on it.
      4. Sweep task last -- references app.state.sweeper.
    """
    settings = get_settings()
    logger.info("Credential service starting up")
    app.state.settings = settings
    app.state.token_issuer = TokenIssuer.from_settings(settings)
    app.state.store = SqlCredentialStore(
        settings.database_url or _DEFAULT_DB_URL,
        timeout=settings.store_timeout_seconds,
    )
    app.state.accounts = AccountService(
        app.state.store,
        PasswordHasher(settings.password_algorithm),
        app.state.token_issuer,
        LoggingNotifier(settings.verify_email_base_url),
    )
    app.state.sweeper = CleanupSweeper(app.state.store)
    logger.info("Credential store initialized")
    app.state.sweep_task = asyncio.create_task(_sweep_loop(app, settings.sweep_interval_seconds))

    yield

    # Shutdown
    app.state.sweep_task.cancel()
    app.state.store.close()
    logger.info("Credential service shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="AG Billing Credential API",
    description="Registration, email verification and bearer-token login.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Query strings are NOT logged -- verification links carry the raw
# token there.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler answers with the ErrorResponse envelope {"error": {...}}; the
# code field is stable, the status code alone never selects a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput) -> JSONResponse:
    return _error(400, "invalid_input", str(exc))


@app.exception_handler(TransientStorageError)
async def transient_storage_handler(request: Request, exc: TransientStorageError) -> JSONResponse:
    """503 -- nothing was committed; the client may retry later."""
    response = _error(503, "storage_unavailable", "Service temporarily unavailable.")
    response.headers["Retry-After"] = "5"
    return response


@app.exception_handler(UnsupportedAlgorithm)
async def unsupported_algorithm_handler(request: Request, exc: UnsupportedAlgorithm) -> JSONResponse:
    """A stored hash this build cannot evaluate. Server-side fault, never a 401."""
    logger.error("Unsupported password algorithm %r on %s", exc.algorithm_id, request.url.path)
    return _error(500, "auth_configuration_error", "Authentication configuration error.")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation.

    Only field locations and messages are echoed back -- never the submitted
    values, which may be passwords.
    """
    problems = "; ".join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors())
    return _error(422, "validation_error", "Request validation failed.", problems)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a {"code", "message"} dict as
    detail; use it directly rather than stringifying it.
    """
    headers = getattr(exc, "headers", None)
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=headers)
    response = _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    if headers:
        response.headers.update(headers)
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Lives on the app itself, outside the auth router, and checks the store.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and a database check."""
    database = "ok" if request.app.state.store.ping() else "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=VERSION,
        components={"app": "ok", "database": database},
    )
