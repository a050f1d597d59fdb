"""
Tablehold - card guarantee and no-show penalty API
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
import structlog

from app.config import settings
from app.api import auth, guarantee, public
from app.guarantee.errors import GuaranteeError, PaymentProviderError
from app.webhooks import stripe as stripe_webhooks
from app.webhooks import workflow

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting Tablehold API", version="1.0.0", stripe_configured=settings.stripe_configured)
    yield
    logger.info("Shutting down Tablehold API")


# Create FastAPI application
app = FastAPI(
    title="Tablehold",
    description="Card guarantees and no-show penalties for reservations",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GuaranteeError)
async def guarantee_error_handler(request: Request, exc: GuaranteeError):
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder({"message": exc.message, "code": exc.code, **exc.extra}),
    )


@app.exception_handler(PaymentProviderError)
async def payment_provider_error_handler(request: Request, exc: PaymentProviderError):
    logger.error("Payment processor error", path=request.url.path, error=str(exc), code=exc.code)
    return JSONResponse(
        status_code=502,
        content={"message": str(exc), "code": "payment_provider_error"},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({
            "message": "Invalid request",
            "code": "validation_error",
            "errors": exc.errors(),
        }),
    )


# Health check endpoints
@app.get("/health")
async def health():
    """Basic health check"""
    return {"status": "healthy", "service": "api", "version": "1.0.0"}


@app.get("/health/ready")
async def ready():
    """Readiness check with dependency verification"""
    from app.database import SessionLocal

    checks = {}

    # Check database
    try:
        async with SessionLocal() as db:
            await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"failed: {str(e)}"

    # Check Redis
    try:
        from app.jobs.celery_app import celery_app
        celery_app.control.ping(timeout=1)
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"failed: {str(e)}"

    checks["stripe"] = "ok" if settings.stripe_configured else "not_configured"

    all_ok = checks["database"] == "ok" and checks["redis"] == "ok"

    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks,
    }


# Include API routers
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(guarantee.router, prefix="/guarantee", tags=["Guarantee"])
app.include_router(public.router, prefix="/guarantee/public", tags=["Guarantee (public)"])

# Include webhook routers
app.include_router(stripe_webhooks.router, prefix="/guarantee/webhook", tags=["Webhooks"])
app.include_router(workflow.router, prefix="/guarantee", tags=["Booking workflow"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
    )
