# main.py
import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from jobcrm.config import build_sqlalchemy_db_url, settings
from jobcrm.database import Base, engine
from jobcrm import models  # noqa: F401  (registers tables on Base.metadata)
from jobcrm.api.routes.chat import router as chat_router
from jobcrm.api.routes.classify import router as classify_router
from jobcrm.api.routes.documents import router as documents_router
from jobcrm.api.routes.enrichment import router as enrichment_router
from jobcrm.api.routes.generate import router as generate_router
from jobcrm.api.routes.health import router as health_router
from jobcrm.api.routes.interviews import router as interviews_router
from jobcrm.api.routes.jobs import router as jobs_router
from jobcrm.routers import auth, users
from jobcrm.routers.admin import router as admin_router
from jobcrm.routers.dependencies import EnvelopeError
from jobcrm.services.ab_testing import DEFAULT_TESTS, initialize_ab_tests
from jobcrm.services.benchmarks import benchmark
from jobcrm.services.llm_client import LLMClient, LLMConfigurationError
from jobcrm.services.rate_limiter import rate_limiters
from jobcrm.services.tracing import extract_correlation_id


logger = logging.getLogger("jobcrm")

UNMATCHED_ENDPOINT = "unmatched"
CLEANUP_INTERVAL_SECONDS = 300
METRIC_RETENTION = timedelta(days=7)


def endpoint_label(request: Request) -> str:
    """Route template for metric names, so /api/jobs/1 and /api/jobs/2 share one series."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ENDPOINT


def sweep_memory_stores(now: datetime | None = None) -> int:
    """Drop old benchmark samples and expired rate-limit windows; returns windows removed."""
    now = now or datetime.now(timezone.utc)
    benchmark.cleanup(now - METRIC_RETENTION)
    removed = rate_limiters.cleanup_all()
    logger.debug("memory sweep removed %s rate-limit windows", removed)
    return removed


async def _sweep_periodically() -> None:
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
        sweep_memory_stores()


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.llm = LLMClient.from_settings()
        if not app.state.llm.configured:
            logger.warning("OPENAI_API_KEY is not set; model-backed endpoints will answer 503")
        initialize_ab_tests(DEFAULT_TESTS)
        sweeper = asyncio.create_task(_sweep_periodically())
        yield
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper

    application = FastAPI(
        title=settings.app_name,
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.middleware("http")
    async def performance_middleware(request: Request, call_next):
        started = time.perf_counter()
        correlation_id = extract_correlation_id(request.headers)
        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.perf_counter() - started) * 1000
            benchmark.record_api_performance(endpoint_label(request), request.method, duration_ms, 500, correlation_id)
            logger.exception("unhandled error %s %s correlation_id=%s", request.method, request.url.path, correlation_id)
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "details": str(exc) or "Unknown error"},
                headers={"x-correlation-id": correlation_id},
            )
        duration_ms = (time.perf_counter() - started) * 1000
        benchmark.record_api_performance(endpoint_label(request), request.method, duration_ms, response.status_code, correlation_id)
        logger.debug("%s %s -> %s in %.1fms", request.method, request.url.path, response.status_code, duration_ms)
        return response

    @application.exception_handler(LLMConfigurationError)
    async def llm_not_configured(_request: Request, exc: LLMConfigurationError):
        return JSONResponse(status_code=503, content={"error": str(exc)})

    @application.exception_handler(EnvelopeError)
    async def envelope_error(_request: Request, exc: EnvelopeError):
        return exc.to_response()

    application.include_router(auth.router, prefix="/auth", tags=["auth"])
    application.include_router(users.router, prefix="/users", tags=["users"])
    application.include_router(admin_router)

    # Fixed /jobs/... paths must be registered ahead of /jobs/{job_id}.
    application.include_router(health_router, prefix=settings.api_prefix)
    application.include_router(generate_router, prefix=settings.api_prefix)
    application.include_router(enrichment_router, prefix=settings.api_prefix)
    application.include_router(interviews_router, prefix=settings.api_prefix)
    application.include_router(jobs_router, prefix=settings.api_prefix)
    application.include_router(classify_router, prefix=settings.api_prefix)
    application.include_router(documents_router, prefix=settings.api_prefix)
    application.include_router(chat_router, prefix=settings.api_prefix)

    # Avoid accidental schema changes in shared MySQL databases.
    db_url = build_sqlalchemy_db_url(settings)
    if db_url.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    return application


app = create_app()
