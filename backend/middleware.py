from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from typing import Optional
import logging
from models import Identity
from services.access_guard import authenticate, require_preparer
from services.identity_provider import identity_provider
from utils.errors import ConfigurationError, RateLimited, Unauthorized

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


def get_identity_provider():
    """FastAPI dependency; tests override it with a stub provider."""
    return identity_provider


def bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization") or ""
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[len("Bearer "):].strip() or None


def client_key(request: Request) -> str:
    """Rate-limit key for the caller."""
    return request.client.host if request.client else "unknown"


async def get_current_identity(
    request: Request,
    provider=Depends(get_identity_provider),
) -> Optional[Identity]:
    """Identity for endpoints that also accept anonymous callers.

    A missing or unusable token means anonymous, not an error.
    """
    token = bearer_token(request)
    if not token:
        return None
    try:
        return await authenticate(token, provider)
    except (Unauthorized, ConfigurationError) as e:
        logger.info(f"Treating request as anonymous: {e.message}")
        return None


async def require_auth(
    request: Request,
    provider=Depends(get_identity_provider),
) -> Identity:
    """Require a valid bearer token."""
    return await authenticate(bearer_token(request), provider)


async def require_preparer_auth(identity: Identity = Depends(require_auth)) -> Identity:
    """Require an authenticated preparer."""
    return require_preparer(identity)


async def enforce_intake_rate_limit(request: Request) -> None:
    """Stricter per-caller limit on intake submission and update."""
    limiter = request.app.state.intake_rate_limiter
    key = client_key(request)
    allowed, message = await limiter.check_rate_limit(key)
    if not allowed:
        logger.warning(f"Intake rate limit exceeded for {key}")
        raise RateLimited(message, retry_after=limiter.retry_after(key))


async def api_rate_limit_middleware(request: Request, call_next):
    """API-wide limiter. Runs as HTTP middleware so it sees every /api call."""
    if request.url.path.startswith(API_PREFIX):
        limiter = request.app.state.api_rate_limiter
        key = client_key(request)
        allowed, message = await limiter.check_rate_limit(key)
        if not allowed:
            logger.warning(f"API rate limit exceeded for {key}")
            error = RateLimited(message, retry_after=limiter.retry_after(key))
            return JSONResponse(
                status_code=error.status_code,
                content=error.to_payload(),
                headers={"Retry-After": str(limiter.retry_after(key))},
            )
    return await call_next(request)
