import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from yumyum.api.deps import get_pipeline
from yumyum.api.routes import admin, auth, cron
from yumyum.core.config import get_settings
from yumyum.core.logging import setup_logging
from yumyum.db.session import create_db_and_tables
from yumyum.schemas.common import ErrorResponse, HealthResponse

VERSION = "1.0.0"

# Initialize logging
setup_logging()

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    yield
    # Only close a pipeline that was actually built
    if get_pipeline.cache_info().currsize:
        await get_pipeline().close()


app = FastAPI(
    title="YumYum Metrics",
    description="Daily crypto market metric aggregation",
    version=VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
    lifespan=lifespan,
)

# Security headers middleware
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["X-Request-ID"] = str(uuid.uuid4())
    return response

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Global exception handler
@app.exception_handler(500)
async def internal_server_error(request: Request, exc: Exception):
    logger.error(f"Internal server error: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(detail="Internal server error", error_code="internal_error").model_dump()
    )

# Include routers
app.include_router(cron.router, tags=["pipeline"])
app.include_router(admin.router, prefix="/admin", tags=["pipeline"])
app.include_router(auth.router, prefix="/auth", tags=["auth"])

# Health check endpoint
@app.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(
        status="healthy",
        version=VERSION,
        timestamp=datetime.utcnow()
    )
