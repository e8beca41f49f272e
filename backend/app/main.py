from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
from contextlib import asynccontextmanager

from app.config import get_settings
from app.database import check_db_connection
from app.api.auth_routes import router as auth_router
from app.api.recovery_routes import router as recovery_router
from app.api.oauth_routes import router as oauth_router
from app.api.user_routes import router as user_router
from app.services.scheduler import start_scheduler, stop_scheduler
from app.services.token_service import TokenService
from app.logging_config import setup_logging, log_requests_middleware
from app.error_handlers import register_error_handlers
from app.middleware.rate_limit import limiter, rate_limit_handler, SlowAPIMiddleware
from app.middleware.security import CsrfMiddleware, SecurityHeadersMiddleware, RequestSizeLimitMiddleware
from slowapi.errors import RateLimitExceeded

settings = get_settings()

# Configure production logging with rotation
setup_logging(
    log_level=settings.log_level,
    log_dir=settings.log_dir,
    app_name="salon-auth",
    enable_json=settings.log_json
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown tasks"""
    # Startup
    logger.info("Starting application...")

    # Refuse to sign tokens with a missing or placeholder key
    TokenService.ensure_signing_key()

    if not check_db_connection():
        logger.error("Database unreachable at startup")
        raise RuntimeError("Database unreachable at startup")

    if settings.scheduler_enabled:
        start_scheduler()
        logger.info("Background scheduler started")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    if settings.scheduler_enabled:
        stop_scheduler()
        logger.info("Background scheduler stopped")
    app.state.limiter.reset()


app = FastAPI(
    title=settings.app_name,
    description="Authentication and session security for the salon app",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,  # Disable docs in production
    redoc_url="/redoc" if settings.debug else None,
)

# Add security headers middleware (added first, runs last)
app.add_middleware(
    SecurityHeadersMiddleware,
    enable_hsts=settings.enable_hsts and not settings.debug,
    frame_options="DENY",
)

# Add request size limit middleware
app.add_middleware(
    RequestSizeLimitMiddleware,
    max_content_length=settings.max_request_size
)

# Double-submit CSRF check for cookie-carrying browser requests
if settings.csrf_enabled and not settings.debug:
    app.add_middleware(
        CsrfMiddleware,
        cookie_name=settings.csrf_cookie_name,
        header_name=settings.csrf_header_name,
    )

# Add CORS middleware
cors_origins = settings.cors_origins if settings.cors_origins else ([settings.frontend_url] if settings.debug else [])
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "Retry-After"],
)

# Add rate limiting middleware
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
app.add_middleware(SlowAPIMiddleware)

# Register error handlers
register_error_handlers(app)

# Add request logging middleware
if settings.enable_request_logging:
    app.middleware("http")(log_requests_middleware)

# Include API routers
app.include_router(auth_router, prefix="/api")
app.include_router(oauth_router, prefix="/api")
app.include_router(recovery_router, prefix="/api")
app.include_router(user_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": settings.app_name,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint with database connectivity test"""
    db_connected = check_db_connection()

    logger.debug("Health check performed", extra={"db_connected": db_connected})

    return {
        "status": "healthy" if db_connected else "unhealthy",
        "service": settings.app_name,
        "database": "connected" if db_connected else "disconnected"
    }
