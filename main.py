import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from contextlib import asynccontextmanager
from typing import Optional
import asyncio
import logging

from audit_service import AuditService
from auth import auth_router
from config import Settings, settings as default_settings
from database import build_engine, build_sessionmaker, create_all
from date_utils import utcnow
from document_service import DocumentService
from exceptions import OnboardingError, StoreError
from middleware import SecurityHeadersMiddleware
from rate_limit import limiter, rate_limit_exceeded_handler
from review_service import ReviewScheduler
from routers.audit import audit_router
from routers.customers import customers_router
from routers.dashboard import dashboard_router
from routers.documents import documents_router
from routers.reviews import reviews_router
from schemas import HealthResponse, error_body

log = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def review_scheduler_loop(app: FastAPI) -> None:
    """Run the review catch-up every REVIEW_SCHEDULER_INTERVAL_SECONDS until cancelled."""
    app_settings: Settings = app.state.settings
    interval = app_settings.REVIEW_SCHEDULER_INTERVAL_SECONDS
    log.info(f"Review scheduler loop started, interval {interval}s")
    while True:
        try:
            async with app.state.session_factory() as db:
                await ReviewScheduler.run_scheduler(db, app_settings.REVIEW_INTERVAL_MONTHS)
        except Exception:
            # keep the loop alive on any failure
            log.exception("Review scheduler run failed, retrying next interval")
        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app_settings: Settings = app.state.settings
    configure_logging(app_settings.LOG_LEVEL)

    if app_settings.CREATE_TABLES_ON_STARTUP:
        log.info("Creating database tables")
        await create_all(app.state.engine)

    scheduler_task = None
    if app_settings.REVIEW_SCHEDULER_INTERVAL_SECONDS > 0:
        scheduler_task = asyncio.create_task(review_scheduler_loop(app))

    log.info("[OK] Application ready")
    yield

    if scheduler_task is not None:
        scheduler_task.cancel()
        try:
            await scheduler_task
        except asyncio.CancelledError:
            pass
        except Exception:
            log.exception("Review scheduler task failed")
    await app.state.engine.dispose()
    log.info("Application stopped")


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(OnboardingError)
    async def onboarding_error_handler(request: Request, exc: OnboardingError):
        if isinstance(exc, StoreError):
            log.error(f"Store error on {request.method} {request.url.path}: {exc.message}")
            return JSONResponse(status_code=exc.status_code, content=error_body(StoreError.default_message))
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_body("Invalid request", errors=errors))

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        log.error(f"Database error on {request.method} {request.url.path}", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(StoreError.default_message),
        )


def create_app(settings: Optional[Settings] = None, engine: Optional[AsyncEngine] = None) -> FastAPI:
    """
    Build the application. Tests pass their own settings and engine;
    production uses the environment configuration.
    """
    settings = settings or default_settings
    engine = engine or build_engine(settings.DATABASE_URL)
    session_factory = build_sessionmaker(engine)

    app = FastAPI(title="Customer Onboarding API", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.audit = AuditService(session_factory)
    app.state.documents = DocumentService(
        storage_dir=settings.DOCUMENT_STORAGE_DIR,
        max_bytes=settings.DOCUMENT_MAX_BYTES,
        url_expire_seconds=settings.DOCUMENT_URL_EXPIRE_SECONDS,
        secret_key=settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )

    limiter.enabled = settings.RATE_LIMIT_ENABLED
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(SecurityHeadersMiddleware, enforce_https=settings.ENFORCE_HTTPS)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    @app.get("/")
    async def root():
        return {"message": "Server is running!"}

    @app.get("/health", response_model=HealthResponse)
    @limiter.exempt
    async def health():
        return HealthResponse(status="ok", time=utcnow())

    # --- API Routers ---
    app.include_router(auth_router, prefix="/api/auth")
    app.include_router(customers_router, prefix="/api")
    app.include_router(reviews_router, prefix="/api")
    app.include_router(dashboard_router, prefix="/api")
    app.include_router(documents_router, prefix="/api")
    app.include_router(audit_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
