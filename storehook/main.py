"""
StoreHook API - multi-tenant WooCommerce webhook ingestion

FastAPI application entry point.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import observability modules
from storehook.config import settings
from storehook.exceptions import StoreHookError
from storehook.logging_config import configure_logging, get_logger
from storehook.sentry_config import configure_sentry, capture_exception
from storehook.middleware.logging import LoggingMiddleware
from storehook.routes.metrics import router as metrics_router

# Import route modules
from storehook.routes.webhooks import router as webhooks_router
from storehook.services.woocommerce import client_factory

# Initialize logging first
configure_logging()

# Initialize Sentry (if SENTRY_DSN is set)
configure_sentry()

logger = get_logger(component="app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("app_started", environment=settings.ENVIRONMENT, version=settings.APP_VERSION)
    yield
    await client_factory.aclose()
    logger.info("app_stopped")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Multi-tenant WooCommerce webhook ingestion and webhook lifecycle management",
    lifespan=lifespan,
)

# Add logging middleware FIRST (runs before other middleware)
app.add_middleware(LoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================
# Error handlers ({"error": ..., "message": ...})
# ============================================

@app.exception_handler(StoreHookError)
async def storehook_error_handler(request: Request, exc: StoreHookError):
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Validation error", "message": problems},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        route=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=exc
    )
    capture_exception(exc, route=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "message": "An unexpected error occurred"},
    )


# Include metrics endpoint FIRST (so it's always available)
app.include_router(metrics_router)

# Include webhook routes
app.include_router(webhooks_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT
    }
