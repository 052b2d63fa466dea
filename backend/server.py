from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
from database import database
from middleware import api_rate_limit_middleware
from routes import intake, uploads, preparer, profile
from services.identity_provider import identity_provider
from services.sensitive_fields import codec_ready, init_codec
from services.storage_adapter import storage_adapter
from utils.audit import drain_audit_tasks
from utils.errors import IntakePortalError
from utils.rate_limiter import RateLimiter, parse_limit

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

API_RATE_LIMIT = parse_limit(os.getenv("API_RATE_LIMIT"), (120, 15 * 60))
INTAKE_RATE_LIMIT = parse_limit(os.getenv("INTAKE_RATE_LIMIT"), (8, 5 * 60))

SECURITY_HEADERS = {
    "Content-Security-Policy": "default-src 'self'; frame-ancestors 'none'; base-uri 'self'; object-src 'none'",
    "Referrer-Policy": "no-referrer",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Cross-Origin-Resource-Policy": "same-site",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}


def create_rate_limiters(app: FastAPI) -> None:
    """One limiter per policy for the life of the process."""
    app.state.api_rate_limiter = RateLimiter(
        *API_RATE_LIMIT,
        message="Too many requests. Please try again later.",
    )
    app.state.intake_rate_limiter = RateLimiter(
        *INTAKE_RATE_LIMIT,
        message="Too many intake submissions. Please wait a few minutes and try again.",
    )


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Tax Intake API")

    # Missing or malformed key is fatal: refuse to serve rather than store plaintext
    init_codec()
    await database.connect()

    if not storage_adapter.configured:
        logger.warning("Object storage not configured. Upload endpoints will return 503.")
    if not identity_provider.configured:
        logger.warning("Identity provider not configured. Authenticated endpoints will return 503.")

    yield

    # Shutdown
    logger.info("Shutting down Tax Intake API")
    await drain_audit_tasks()
    await database.close()

# Create FastAPI app
app = FastAPI(
    title="Tax Intake API",
    description="Secure tax intake, document screening and review tracking",
    version="1.0.0",
    lifespan=lifespan
)
create_rate_limiters(app)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(api_rate_limit_middleware)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    if os.getenv("ENVIRONMENT") == "production":
        response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains; preload"
    return response


# Include routers
app.include_router(intake.router)
app.include_router(uploads.router)
app.include_router(preparer.router)
app.include_router(profile.router)

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development"),
        "storage_configured": storage_adapter.configured,
        "identity_configured": identity_provider.configured,
        "encryption_configured": codec_ready(),
    }


@app.exception_handler(IntakePortalError)
async def domain_exception_handler(request: Request, exc: IntakePortalError):
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
    headers = None
    if "retry_after" in exc.extra:
        headers = {"Retry-After": str(exc.extra["retry_after"])}
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_payload(),
        headers=headers,
    )


# Body/query shape errors are client-fixable, so 400 rather than FastAPI's 422
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    logger.warning(
        "Request validation failed path=%s errors=%s",
        request.url.path,
        [(e.get("loc"), e.get("type")) for e in errors],
    )
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Missing or invalid required fields.",
            "error_code": "VALIDATION_FAILED",
            "errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors],
        },
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )
