import time

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# HTTP
REQ_COUNT = Counter("http_requests_total", "Total HTTP requests", ["path", "method", "code"])
REQ_LATENCY = Histogram("http_request_duration_seconds", "Request latency", ["path", "method"])

# Pipeline
PIPELINE_RUNS = Counter("dealscan_pipeline_runs_total", "Search pipeline runs", ["outcome"])
SEARCH_CACHE = Counter("dealscan_search_cache_total", "Search cache lookups", ["result"])
UPSTREAM_CALLS = Counter("dealscan_upstream_calls_total", "External provider calls", ["source", "outcome"])
TIER_LATENCY = Histogram("dealscan_tier_duration_seconds", "Enrichment tier duration", ["tier"])
SAVED_DEALS = Counter("dealscan_saved_deals_total", "Listings persisted as deals")

def _route_path(request: Request) -> str:
    # Template (/v1/properties/{listing_id}) keeps one series per route
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)

class PromMiddleware(BaseHTTPMiddleware):
    """Request count and latency, labelled by route template."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response: Response = await call_next(request)
        path, method = _route_path(request), request.method
        REQ_LATENCY.labels(path=path, method=method).observe(time.perf_counter() - started)
        REQ_COUNT.labels(path=path, method=method, code=str(response.status_code)).inc()
        return response

async def metrics_endpoint(request: Request):
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
