from datetime import datetime, timezone

from fastapi import Header, HTTPException, Request
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_429_TOO_MANY_REQUESTS

from .cache import rate_cache
from .config import settings

def require_api_key(x_api_key: str | None = Header(default=None, alias="x-api-key")):
    """Header key check; open access while API_KEY is unset."""
    if settings.API_KEY and x_api_key != settings.API_KEY:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid API key")

def _caller(request: Request) -> str:
    host = request.client.host if request.client else "unknown"
    return f"{request.headers.get('x-api-key') or 'anon'}:{host}"

def rate_limit(request: Request):
    """
    Fixed one-minute window per caller (API key + client IP). Every search
    can fan out to paid providers, so this guards spend as much as load.
    """
    window = datetime.now(timezone.utc).strftime("%Y%m%d%H%M")
    key = f"{_caller(request)}:{window}"
    try:
        hits = int(rate_cache.get(key) or 0) + 1
    except ValueError:
        hits = 1
    if hits > max(1, settings.RATE_LIMIT_RPM):
        raise HTTPException(status_code=HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")
    rate_cache.set(key, str(hits))
