from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from .config import settings
from .database import SessionLocal
from .errors import TransientStoreError, register_error_handlers
from .routes.search import router as search_router
from .schemas import HealthResponse
from .services.cache_service import ListingCacheInvalidator, get_cache_gateway
from .telemetry.logging_utils import configure_logging
from .telemetry.middleware import TelemetryMiddleware

configure_logging(settings.log_level, settings.perf_log_level)
app = FastAPI(title=settings.app_name, version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TelemetryMiddleware)
register_error_handlers(app)

ListingCacheInvalidator(get_cache_gateway()).install(SessionLocal)

app.include_router(search_router, prefix="/api")


@app.get("/health", response_model=HealthResponse)
def healthcheck() -> HealthResponse:
    try:
        with SessionLocal() as session:
            session.execute(text("SELECT 1"))
    except OperationalError as exc:
        raise TransientStoreError("Listing store is unreachable") from exc
    return HealthResponse(status="ok")
