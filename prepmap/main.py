"""
prepmap - roadmap hierarchy & progress tracking engine

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional, Tuple, Type

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from prepmap.api.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware
from prepmap.api.v1 import router as api_v1_router
from prepmap.config import Settings, get_settings
from prepmap.engines.cache.policy import CachePolicies
from prepmap.engines.cache.remote_cache import RemoteCache
from prepmap.engines.cache.transport import RoadmapApiClient
from prepmap.engines.progress.progress_store import ProgressStore
from prepmap.kernel.errors import (
    ClientRequestError,
    MalformedContentError,
    MutationInProgressError,
    PrerequisitesNotMetError,
    RoadmapError,
    RoadmapNotFoundError,
    StaleRevertError,
    TopicNotFoundError,
    TransientNetworkError,
)
from prepmap.kernel.events.event_bus import EventBus
from prepmap.logging_config import configure_logging, get_logger
from prepmap.orchestration.query_facade import QueryFacade
from prepmap.schemas.common import HealthResponse

logger = get_logger(__name__)

_ERROR_STATUS: Dict[Type[RoadmapError], int] = {
    MalformedContentError: status.HTTP_502_BAD_GATEWAY,
    TransientNetworkError: status.HTTP_503_SERVICE_UNAVAILABLE,
    PrerequisitesNotMetError: status.HTTP_409_CONFLICT,
    MutationInProgressError: status.HTTP_409_CONFLICT,
    StaleRevertError: status.HTTP_409_CONFLICT,
    RoadmapNotFoundError: status.HTTP_404_NOT_FOUND,
    TopicNotFoundError: status.HTTP_404_NOT_FOUND,
}


def status_for(exc: RoadmapError) -> int:
    """HTTP status for an engine failure."""
    if isinstance(exc, ClientRequestError):
        # Upstream 4xx is mirrored; anything else from the envelope is a bad gateway
        return exc.status_code if 400 <= exc.status_code < 500 else status.HTTP_502_BAD_GATEWAY
    for error_type, code in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def build_facade(settings: Settings) -> QueryFacade:
    """Wire client, cache, store and event bus from settings."""
    events = EventBus()
    client = RoadmapApiClient(settings.api_base_url, timeout=settings.http_timeout_seconds)
    cache = RemoteCache(policies=CachePolicies.from_settings(settings), event_bus=events)
    return QueryFacade(client, cache=cache, store=ProgressStore(), event_bus=events)


def _with_request_id(request: Request, content: dict) -> Tuple[dict, Dict[str, str]]:
    headers = {}
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers[REQUEST_ID_HEADER] = req_id
        content["request_id"] = req_id
    return content, headers


def create_app(facade: Optional[QueryFacade] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    A prebuilt facade is used as is (and not closed on shutdown); otherwise one
    is wired from settings during startup.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        configure_logging(
            log_level=settings.log_level,
            environment=settings.environment,
            debug=settings.debug,
        )
        logger.info("Starting %s v%s", settings.project_name, settings.version)

        owned = app.state.facade is None
        if owned:
            app.state.facade = build_facade(settings)
            logger.info("Roadmap backend at %s", settings.api_base_url)

        yield

        logger.info("Shutting down...")
        await app.state.facade.cache.drain()
        if owned:
            await app.state.facade.client.aclose()
            app.state.facade = None
            logger.info("Backend client closed")

    app = FastAPI(
        title=settings.project_name,
        description="""
    Roadmap hierarchy & progress tracking engine.

    - **Roadmaps**: role -> level -> topic hierarchy with prerequisite locks
    - **Progress**: optimistic completion tracking with commit/revert
    - **Caching**: stale-while-revalidate over the content backend
    """,
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.facade = facade

    # Last added = outermost; CORS wraps everything
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RoadmapError)
    async def roadmap_error_handler(request: Request, exc: RoadmapError):
        """Map engine failures onto HTTP statuses with a stable error code."""
        code = status_for(exc)
        if code >= 500:
            logger.warning("Request failed: %s", exc.message, extra={"code": exc.code})
        content, headers = _with_request_id(request, {"detail": exc.message, "code": exc.code})
        if isinstance(exc, PrerequisitesNotMetError):
            content["missing"] = exc.missing
        if isinstance(exc, MalformedContentError) and exc.topic_ids:
            content["topic_ids"] = exc.topic_ids
        return JSONResponse(status_code=code, content=content, headers=headers)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        content, headers = _with_request_id(request, {"detail": exc.detail})
        return JSONResponse(status_code=exc.status_code, content=content, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append({
                "field": field,
                "message": error["msg"],
                "type": error["type"],
            })
        content, headers = _with_request_id(request, {"detail": "Validation error", "errors": errors})
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=content,
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception("Unhandled exception: %s", exc)
        detail = str(exc) if settings.debug else "Internal server error"
        content, headers = _with_request_id(request, {"detail": detail})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=content,
            headers=headers,
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request):
        """Check application health."""
        current = request.app.state.facade
        cached = len(current.cache.entries()) if current is not None else 0
        return HealthResponse(status="ok", version=settings.version, cached_keys=cached)

    app.include_router(api_v1_router, prefix=settings.api_v1_prefix)
    return app


app = create_app()


# Main entry point for development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "prepmap.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().debug,
    )
