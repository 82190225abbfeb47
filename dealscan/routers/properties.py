import json
from fastapi import APIRouter, Depends, Header, HTTPException, Response, Query, Request
from fastapi.responses import StreamingResponse
from ..schemas import SearchRequest, SearchResponse, PipelineRunRequest, PipelineSummary, DistressType
from ..schemas import BoundsIn, SearchFilters as FilterParams
from ..services.pipeline import SearchPipeline, SearchFilters
from ..services.scheduler import SchedulerConfig
from ..data.base import Bounds, ListingStore
from ..data.store import store as default_store
from ..core.security import require_api_key, rate_limit
from ..core.utils import payload_etag
from ..errors import InvalidSearchError, PipelineError

router = APIRouter()

def pipeline_dep() -> SearchPipeline:
    # Clients are cheap to build; the store and search cache are module-level and shared.
    return SearchPipeline()

def store_dep() -> ListingStore:
    return default_store

def _bounds(raw) -> Bounds | None:
    if raw is None:
        return None
    data = raw if isinstance(raw, dict) else raw.model_dump()
    return Bounds(**data)

@router.post("/properties/search", response_model=SearchResponse)
async def post_search(
    body: SearchRequest,
    response: Response,
    if_none_match: str | None = Header(default=None),
    _auth = Depends(require_api_key),     # API key guard
    _lim  = Depends(rate_limit),          # Rate limiting
    svc: SearchPipeline = Depends(pipeline_dep),
):
    if body.latitude is None or body.longitude is None:
        raise HTTPException(status_code=400, detail="latitude and longitude are required")

    try:
        filters = SearchFilters.from_dict(body.filters.model_dump() if body.filters else None)
        payload, from_cache = await svc.search(
            body.latitude, body.longitude, body.radius, filters, _bounds(body.bounds)
        )
    except InvalidSearchError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PipelineError as e:
        raise HTTPException(status_code=502, detail=str(e))

    etag = payload_etag(payload)
    if if_none_match and if_none_match == etag:
        return Response(status_code=304, headers={"ETag": etag})
    response.headers["ETag"] = etag
    return {**payload, "cached": from_cache, "etag": etag}

def _sse(event: str, data) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"

@router.get("/properties/search/stream")
async def stream_search(
    request: Request,
    latitude: float | None = Query(default=None),
    longitude: float | None = Query(default=None),
    radius: float | None = Query(default=None, gt=0, le=100),
    filters: str | None = Query(default=None, description="JSON-encoded filter set"),
    bounds: str | None = Query(default=None, description="JSON-encoded {north,south,east,west}"),
    _auth = Depends(require_api_key),
    _lim  = Depends(rate_limit),
    svc: SearchPipeline = Depends(pipeline_dep),
):
    async def events():
        try:
            # Same pydantic ranges as the POST body
            params = FilterParams.model_validate_json(filters) if filters else None
            parsed_filters = SearchFilters.from_dict(params.model_dump() if params else None)
            parsed_bounds = _bounds(BoundsIn.model_validate_json(bounds)) if bounds else None
        except (ValueError, TypeError, InvalidSearchError) as e:
            yield _sse("error", {"error": f"invalid filters: {e}"})
            return

        stream = svc.stream_search(latitude, longitude, radius, parsed_filters, parsed_bounds)
        try:
            async for event in stream:
                # Stop at the next event boundary once the client has gone
                if await request.is_disconnected():
                    break
                yield _sse(event.event, event.data)
        finally:
            await stream.aclose()

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )

@router.get("/properties")
async def list_properties(
    min_score: int | None = Query(default=None, ge=0, le=100),
    min_discount: float | None = Query(default=None, ge=0, le=50),
    distress_type: DistressType | None = Query(default=None),
    _auth = Depends(require_api_key),
    store: ListingStore = Depends(store_dep),
):
    return await store.find(
        min_score=min_score,
        min_discount=min_discount,
        distress_type=None if distress_type == "none" else distress_type,
    )

@router.get("/properties/{listing_id}")
async def get_property(
    listing_id: str,
    _auth = Depends(require_api_key),
    store: ListingStore = Depends(store_dep),
):
    doc = await store.get(listing_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Not found")
    return doc

@router.post("/properties/pipeline", response_model=PipelineSummary)
async def trigger_pipeline(
    body: PipelineRunRequest | None = None,
    _auth = Depends(require_api_key),
    _lim  = Depends(rate_limit),
    svc: SearchPipeline = Depends(pipeline_dep),
):
    cfg = SchedulerConfig()
    lat, lng, radius = cfg.lat, cfg.lng, cfg.radius_miles
    if body and body.latitude is not None and body.longitude is not None:
        lat, lng, radius = body.latitude, body.longitude, body.radius or radius
    try:
        return await svc.run_pipeline(lat, lng, radius)
    except InvalidSearchError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PipelineError as e:
        raise HTTPException(status_code=502, detail=str(e))
