from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from coldtrack.core.config import settings
from coldtrack.core.errors import AuthError, ColdTrackError, QueryError, QueryErrorKind, TransportError
from coldtrack.core.logging import configure_logging, get_logger
from coldtrack.core.middleware import LoggingMiddleware, RequestIDMiddleware
from coldtrack.core.session import SessionContext
from coldtrack.realtime.feed import LiveFeedClient, MqttFeedTransport
from coldtrack.realtime.selection import SelectionError, SelectionStateMachine
from coldtrack.realtime.store import build_selection_store
from coldtrack.services.analytics import AnalyticsCoordinator
from coldtrack.services.backend_client import BackendClient
from coldtrack.workers.reporting import ReportSink
from coldtrack.api.v1 import analytics, metrics, realtime, session


# Configure logging first
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events.
    Creates the monitor components on startup and releases them on shutdown.
    """
    logger.info("api_starting", env=settings.app_env)

    app.state.session = SessionContext()
    app.state.client = BackendClient(app.state.session)
    app.state.store = await build_selection_store()
    app.state.feed = LiveFeedClient(MqttFeedTransport())
    app.state.selection = SelectionStateMachine(app.state.client, app.state.feed, app.state.store)
    app.state.coordinator = AnalyticsCoordinator(app.state.client, app.state.session)
    app.state.report_sink = ReportSink()

    # Restoring needs a session for the sensor list; without one it is
    # finished after the first sign-in.
    try:
        await app.state.selection.initialize()
    except (AuthError, TransportError) as e:
        logger.warning("startup_warning", reason="Selection restore failed", error=str(e))

    logger.info(
        "api_started",
        app_env=settings.app_env,
        api_url=settings.api_url,
        selection_store=settings.selection_store,
        selection_state=app.state.selection.state.name,
    )

    yield

    # Shutdown
    logger.info("api_shutting_down")
    app.state.selection.close()
    await app.state.client.close()
    close_store = getattr(app.state.store, "close", None)
    if close_store is not None:
        await close_store()
    logger.info("api_shutdown_complete")


# Create FastAPI app
app = FastAPI(
    title="ColdTrack API",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan
)


# Add middleware (order matters!)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.app_env == "development" else [settings.app_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(session.router, prefix="/api/v1")
app.include_router(realtime.router, prefix="/api/v1")
app.include_router(analytics.router, prefix="/api/v1")
app.include_router(metrics.router)


@app.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint.

    Returns:
        Liveness plus the current session and selection state
    """
    return {
        "status": "healthy",
        "session": "active" if request.app.state.session.active else "none",
        "selection": request.app.state.selection.state.name,
    }


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


_QUERY_STATUS = {
    QueryErrorKind.MISSING_RANGE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    QueryErrorKind.INVERTED_RANGE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    QueryErrorKind.AUTH: status.HTTP_401_UNAUTHORIZED,
    QueryErrorKind.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    QueryErrorKind.TRANSPORT: status.HTTP_502_BAD_GATEWAY,
}


@app.exception_handler(QueryError)
async def query_error_handler(request: Request, exc: QueryError):
    logger.warning("query_error", path=request.url.path, kind=exc.kind.value)
    return _error_response(_QUERY_STATUS[exc.kind], exc.kind.value.upper(), exc.message)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    logger.warning("auth_error", path=request.url.path)
    return _error_response(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", exc.message)


@app.exception_handler(TransportError)
async def transport_error_handler(request: Request, exc: TransportError):
    logger.warning(
        "backend_error",
        path=request.url.path,
        status_code=exc.status_code,
        error=exc.message,
    )
    return _error_response(status.HTTP_502_BAD_GATEWAY, "BACKEND_ERROR", exc.message)


@app.exception_handler(SelectionError)
async def selection_error_handler(request: Request, exc: SelectionError):
    return _error_response(status.HTTP_409_CONFLICT, "INVALID_SELECTION", str(exc))


@app.exception_handler(ColdTrackError)
async def coldtrack_error_handler(request: Request, exc: ColdTrackError):
    return _error_response(status.HTTP_409_CONFLICT, "CONFLICT", str(exc))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handle request validation errors (422).
    """
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(x) for x in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    logger.warning(
        "validation_error",
        path=request.url.path,
        errors=errors
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": errors
            }
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Handle all unhandled exceptions.
    Logs full traceback and returns 500 error.
    """
    request_id = structlog.contextvars.get_contextvars().get("request_id", "unknown")

    logger.error(
        "unhandled_exception",
        exc_info=exc,
        path=request.url.path,
        method=request.method
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_SERVER_ERROR",
                "message": "An unexpected error occurred",
                "request_id": request_id
            }
        }
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "ColdTrack API",
        "version": "1.0.0",
        "status": "running"
    }
