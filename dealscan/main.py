from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.logging import REQUEST_ID_HEADER, CorrelationIdMiddleware, configure_logging
from .core.metrics import PromMiddleware, metrics_endpoint
from .routers.properties import router as properties_router
from .services.pipeline import SearchPipeline
from .services.scheduler import PipelineScheduler

meta = APIRouter(tags=["meta"])

@meta.get("/health")
def health():
    return {"status": "ok"}

@meta.get("/ping")
def ping():
    return {"pong": True}

def _cors_origins() -> list[str]:
    origins = [o.strip() for o in (settings.ALLOW_ORIGINS or "").split(",") if o.strip()]
    return origins or ["*"]

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Starts the background pipeline when SCHEDULER_ENABLED is set; stops it on shutdown."""
    scheduler = PipelineScheduler(SearchPipeline()) if settings.SCHEDULER_ENABLED else None
    app.state.scheduler = scheduler
    if scheduler:
        scheduler.start()
    try:
        yield
    finally:
        if scheduler:
            await scheduler.stop()

def create_app() -> FastAPI:
    """
    Build the API: JSON logs, CORS for the map frontend, request ids,
    optional Prometheus, then the meta and property routes under /v1.
    """
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="DealScan",
        version="1.0.0",
        description="Listing valuation and deal scoring with tiered enrichment, caching and streamed progress.",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["ETag", REQUEST_ID_HEADER],
    )
    app.add_middleware(CorrelationIdMiddleware)

    if settings.PROMETHEUS_ENABLED:
        app.add_middleware(PromMiddleware)
        app.add_route("/v1/metrics", metrics_endpoint, methods=["GET"])

    app.include_router(meta, prefix="/v1")
    app.include_router(properties_router, prefix="/v1", tags=["properties"])
    return app

app = create_app()
