import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from ..core.cache import Cache, search_cache
from ..core.config import settings
from ..core.metrics import PIPELINE_RUNS, SAVED_DEALS, SEARCH_CACHE, UPSTREAM_CALLS
from ..core.utils import canonical_json
from ..data.avm_client import avm_client
from ..data.base import (
    AvmSource, Bounds, DelinquencySource, HotDealEvent, LienSource, ListingRecord, ListingSource,
    ListingStore, Notifier, PointEstimateSource,
)
from ..data.delinquency_client import delinquency_client
from ..data.lien_client import lien_client
from ..data.listings_client import listings_client
from ..data.notifier import notifier_client
from ..data.point_estimate_client import point_estimate_client
from ..data.store import store as default_store
from ..errors import InvalidSearchError, PipelineError
from ..models.estimator import apply_estimate
from ..models.market import build_market_snapshot
from ..models.scoring import rescore, valuation_meta
from .enrichment import EnrichmentOrchestrator, ProgressCallback, is_worth_saving

logger = logging.getLogger(__name__)

DISTRESS_TYPES = ("delinquent", "lien", "as-is", "pre-foreclosure")
# Only these need the paid distress lookups before filtering
ENRICHING_DISTRESS_TYPES = ("delinquent", "lien")

# Phase → (start %, end %)
PHASE_PERCENT = {
    "fetching": (5, 5),
    "aggregating": (15, 15),
    "scoring": (20, 20),
    "refining": (20, 45),
    "enriching": (45, 70),
    "validating": (70, 90),
    "filtering": (92, 92),
    "done": (100, 100),
}

@dataclass
class SearchFilters:
    property_type: Optional[str] = None
    distress_type: Optional[str] = None
    min_score: Optional[int] = None
    min_discount: Optional[float] = None

    def __post_init__(self):
        if self.distress_type in (None, "", "none"):
            self.distress_type = None
        elif self.distress_type not in DISTRESS_TYPES:
            raise InvalidSearchError(f"unknown distress_type {self.distress_type!r}")

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "SearchFilters":
        d = d or {}
        return cls(
            property_type=d.get("property_type") or None,
            distress_type=d.get("distress_type"),
            min_score=d.get("min_score"),
            min_discount=d.get("min_discount"),
        )

    @property
    def active(self) -> bool:
        return bool(self.property_type or self.distress_type or self.min_score or self.min_discount)

    @property
    def needs_distress_check(self) -> bool:
        return self.distress_type in ENRICHING_DISTRESS_TYPES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "property_type": self.property_type,
            "distress_type": self.distress_type,
            "min_score": self.min_score,
            "min_discount": self.min_discount,
        }

@dataclass
class PipelineEvent:
    event: str                      # progress | results | error
    data: Dict[str, Any]
    summary: Optional[Dict[str, Any]] = field(default=None, repr=False)

class _Progress:
    """Builds progress events and keeps percent non-decreasing."""

    def __init__(self):
        self.percent = 0

    def __call__(self, phase: str, message: str, percent: int,
                 current: Optional[int] = None, total: Optional[int] = None) -> PipelineEvent:
        self.percent = max(self.percent, min(100, int(percent)))
        return PipelineEvent("progress", {
            "phase": phase, "message": message,
            "current": current, "total": total, "percent": self.percent,
        })

def search_cache_key(lat: float, lng: float, radius: float, filters: SearchFilters,
                     bounds: Optional[Bounds]) -> str:
    bounds_part = canonical_json(vars(bounds)) if bounds else ""
    return f"{round(lat, 3)},{round(lng, 3)},{radius}|{canonical_json(filters.to_dict())}|{bounds_part}"

class SearchPipeline:
    """
    Orchestrates one search:
      cache → fetch → aggregate → estimate+score → refine → [distress check] → validate → filter/persist
    Exposed both as an event stream (for SSE) and as a plain awaitable.
    """

    def __init__(
        self,
        listings: Optional[ListingSource] = None,
        delinquency: Optional[DelinquencySource] = None,
        liens: Optional[LienSource] = None,
        point_estimates: Optional[PointEstimateSource] = None,
        avm: Optional[AvmSource] = None,
        store: Optional[ListingStore] = None,
        notifier: Optional[Notifier] = None,
        cache: Optional[Cache] = None,
        orchestrator: Optional[EnrichmentOrchestrator] = None,
        *,
        max_pages: Optional[int] = None,
        min_results: Optional[int] = None,
        hot_deal_score: Optional[int] = None,
    ):
        # Data adapters (mock or HTTP)
        self.listings = listings or listings_client()
        self.store = store or default_store
        self.notifier = notifier or notifier_client()
        self.cache = cache if cache is not None else search_cache
        self.orchestrator = orchestrator or EnrichmentOrchestrator(
            delinquency or delinquency_client(),
            liens or lien_client(),
            point_estimates or point_estimate_client(),
            avm or avm_client(),
        )
        self.max_pages = settings.MAX_PAGES if max_pages is None else max_pages
        self.min_results = settings.MIN_RESULTS if min_results is None else min_results
        self.hot_deal_score = settings.HOT_DEAL_SCORE if hot_deal_score is None else hot_deal_score

    # ----- public API -----

    async def run_search(
        self, lat: Optional[float], lng: Optional[float], radius: Optional[float] = None,
        filters: Optional[SearchFilters] = None, bounds: Optional[Bounds] = None,
    ) -> Dict[str, Any]:
        """Run to completion and return {results, area_median, geo}."""
        payload, _ = await self.search(lat, lng, radius, filters, bounds)
        return payload

    async def search(
        self, lat: Optional[float], lng: Optional[float], radius: Optional[float] = None,
        filters: Optional[SearchFilters] = None, bounds: Optional[Bounds] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        """Like run_search, also reporting whether the payload came from cache."""
        self._validate(lat, lng)
        async for event in self.stream_search(lat, lng, radius, filters, bounds):
            if event.event == "error":
                raise PipelineError(event.data.get("error", "search failed"))
            if event.event == "results":
                return event.data, bool(event.summary and event.summary.get("cached"))
        raise PipelineError("search ended without results")

    async def run_pipeline(self, lat: float, lng: float, radius: Optional[float] = None) -> Dict[str, Any]:
        """Unfiltered, uncached run used by the scheduler; returns counts only."""
        self._validate(lat, lng)
        async for event in self.stream_search(lat, lng, radius, use_cache=False):
            if event.event == "error":
                raise PipelineError(event.data.get("error", "pipeline failed"))
            if event.event == "results":
                return event.summary
        return {"scraped": 0, "enriched": 0, "saved": 0, "alerted": 0}

    async def stream_search(
        self, lat: Optional[float], lng: Optional[float], radius: Optional[float] = None,
        filters: Optional[SearchFilters] = None, bounds: Optional[Bounds] = None,
        use_cache: bool = True,
    ) -> AsyncIterator[PipelineEvent]:
        """
        Yields progress events, then exactly one `results` or `error` event.
        Stopping iteration early is safe; lookups already issued for the
        current tier are left to finish on their own.
        """
        progress = _Progress()
        try:
            self._validate(lat, lng)
            filters = filters or SearchFilters()
            radius = radius if radius and radius > 0 else settings.DEFAULT_RADIUS_MILES
            key = search_cache_key(lat, lng, radius, filters, bounds)

            if use_cache:
                cached = self._cache_get(key)
                if cached is not None:
                    PIPELINE_RUNS.labels(outcome="cached").inc()
                    yield progress("done", "Loaded cached results", 100)
                    yield PipelineEvent("results", cached, {"cached": True})
                    return

            yield progress("fetching", "Fetching listings...", PHASE_PERCENT["fetching"][0])
            listings = await self._fetch(lat, lng, radius, filters, bounds)

            yield progress("aggregating", f"Found {len(listings)} listings, computing market data",
                           PHASE_PERCENT["aggregating"][0])
            snapshot = build_market_snapshot(listings)
            area_median = snapshot.area_price_median
            logger.info(
                "Market data: %d locality+type, %d locality $/sqft medians, area $/sqft %.0f",
                len(snapshot.ppsf_by_locality_type), len(snapshot.ppsf_by_locality), snapshot.area_ppsf_median,
            )

            for listing in listings:
                if listing.price and listing.price > 0:
                    apply_estimate(listing, snapshot)
                rescore(listing)
            yield progress("scoring", "Scored listings against local market", PHASE_PERCENT["scoring"][0])

            async for event in self._tier(progress, "refining", "Verifying value of",
                                          self.orchestrator.refine_valuations, listings):
                yield event

            if filters.needs_distress_check:
                async for event in self._tier(progress, "enriching", "Checking",
                                              self.orchestrator.check_distress, listings):
                    yield event

            async for event in self._tier(progress, "validating", "Validating",
                                          self.orchestrator.validate_top_deals, listings):
                yield event

            yield progress("filtering", "Filtering and saving deals", PHASE_PERCENT["filtering"][0])
            results, saved = await self._filter_and_persist(listings, filters)
            alerted = await self._announce(saved)

            payload = {
                "results": results,
                "area_median": area_median,
                "geo": {"lat": lat, "lng": lng},
            }
            if use_cache:
                self._cache_set(key, payload)
            summary = {
                "scraped": len(listings),
                "enriched": sum(1 for l in listings if l.enriched),
                "saved": len(saved),
                "alerted": alerted,
            }
            PIPELINE_RUNS.labels(outcome="ok").inc()
            logger.info("Search complete: %s", json.dumps(summary))
            yield progress("done", "Complete", 100)
            yield PipelineEvent("results", payload, summary)
        except Exception as exc:
            PIPELINE_RUNS.labels(outcome="error").inc()
            if not isinstance(exc, InvalidSearchError):
                logger.exception("Search failed")
            yield PipelineEvent("error", {"error": str(exc)})

    # ----- stages -----

    @staticmethod
    def _validate(lat: Optional[float], lng: Optional[float]) -> None:
        if lat is None or lng is None:
            raise InvalidSearchError("latitude and longitude are required")
        if not (-90 <= lat <= 90 and -180 <= lng <= 180):
            raise InvalidSearchError("latitude/longitude out of range")

    async def _fetch(self, lat: float, lng: float, radius: float, filters: SearchFilters,
                     bounds: Optional[Bounds]) -> List[ListingRecord]:
        collected: List[ListingRecord] = []
        keep_paging = filters.active or bounds is not None
        page = 1
        while page <= self.max_pages:
            try:
                raw, has_more = await self.listings.search_near(lat, lng, radius, page)
            except Exception as exc:
                UPSTREAM_CALLS.labels(source="listings", outcome="error").inc()
                logger.warning("Listing search failed on page %d: %s", page, exc)
                break
            UPSTREAM_CALLS.labels(source="listings", outcome="ok").inc()

            for listing in raw:
                if filters.property_type and listing.property_type != filters.property_type:
                    continue
                if filters.distress_type == "pre-foreclosure" and not (
                    listing.listing_status == "preForeclosure" or listing.distress.is_pre_foreclosure
                ):
                    continue
                if filters.distress_type == "as-is" and not listing.distress.is_as_is:
                    continue
                if bounds is not None and not bounds.contains(listing.location):
                    continue
                collected.append(listing)

            if not has_more or not keep_paging or len(collected) >= self.min_results:
                break
            page += 1
        logger.info("Fetched %d listings near [%s, %s] over %d page(s)", len(collected), lat, lng, page)
        return collected

    async def _tier(
        self,
        progress: _Progress,
        phase: str,
        verb: str,
        tier: Callable[[List[ListingRecord], Optional[ProgressCallback]], Awaitable[List[ListingRecord]]],
        listings: List[ListingRecord],
    ) -> AsyncIterator[PipelineEvent]:
        """
        Run one tier as a task and relay its per-listing progress while it runs.
        """
        start, end = PHASE_PERCENT[phase]
        queue: asyncio.Queue = asyncio.Queue()
        yield progress(phase, f"{phase.capitalize()}...", start)

        task = asyncio.create_task(tier(listings, lambda i, n, street: queue.put_nowait((i, n, street))))
        task.add_done_callback(_log_orphan_failure)

        def relay(item: Tuple[int, int, str]) -> PipelineEvent:
            i, n, street = item
            return progress(phase, f"{verb} {street or 'property'}...", start + round(i / n * (end - start)), i, n)

        while True:
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({task, getter}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                yield relay(getter.result())
                continue
            getter.cancel()
            break
        while not queue.empty():
            yield relay(queue.get_nowait())
        await task

    async def _filter_and_persist(
        self, listings: List[ListingRecord], filters: SearchFilters
    ) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        kept: List[Tuple[ListingRecord, Optional[str]]] = []
        saved: List[Dict[str, Any]] = []
        for listing in listings:
            if filters.distress_type == "delinquent" and not listing.distress.is_delinquent:
                continue
            if filters.distress_type == "lien" and not listing.distress.has_lien:
                continue
            rescore(listing)
            if filters.min_score and listing.deal_score < filters.min_score:
                continue
            if filters.min_discount:
                discount = listing.discount_percent
                if discount is not None and discount < filters.min_discount:
                    continue

            doc_id = None
            if is_worth_saving(listing):
                try:
                    doc = await self.store.upsert(listing)
                    doc_id = doc["id"]
                    saved.append(doc)
                    SAVED_DEALS.inc()
                except Exception as exc:
                    logger.warning("Failed to save %s: %s", listing.address.street, exc)
            kept.append((listing, doc_id))

        kept.sort(key=lambda pair: pair[0].deal_score, reverse=True)
        results = []
        for listing, doc_id in kept:
            item = listing.to_dict()
            item["id"] = doc_id
            item["saved"] = doc_id is not None
            item["valuation_meta"] = valuation_meta(listing)
            results.append(item)
        return results, saved

    async def _announce(self, saved: List[Dict[str, Any]]) -> int:
        """Emit a hot-deal event for each newly saved high scorer (once per listing)."""
        alerted = 0
        for doc in saved:
            if doc.get("deal_score", 0) <= self.hot_deal_score or doc.get("alert_sent"):
                continue
            est, price = doc.get("estimated_value"), doc.get("price")
            discount = (est - price) / est * 100.0 if est and price else None
            event = HotDealEvent(listing_id=doc["id"], listing=doc, deal_score=doc["deal_score"],
                                 discount_percent=discount)
            try:
                await self.notifier.notify(event)
                await self.store.mark_alerted(doc["id"])
                alerted += 1
            except Exception as exc:
                logger.warning("Hot deal alert failed for %s: %s", doc["id"], exc)
        return alerted

    # ----- cache -----

    def _cache_get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = self.cache.get(key)
            if raw is None:
                SEARCH_CACHE.labels(result="miss").inc()
                return None
            entry = json.loads(raw)
            SEARCH_CACHE.labels(result="hit").inc()
            return entry["payload"]
        except Exception as exc:
            SEARCH_CACHE.labels(result="error").inc()
            logger.warning("Search cache read failed, treating as miss: %s", exc)
            return None

    def _cache_set(self, key: str, payload: Dict[str, Any]) -> None:
        entry = {"payload": payload, "cached_at": datetime.now(timezone.utc).isoformat()}
        try:
            self.cache.set(key, json.dumps(entry, separators=(',', ':')))
        except Exception as exc:
            logger.warning("Search cache write failed: %s", exc)

def _log_orphan_failure(task: asyncio.Task) -> None:
    # Retrieves the exception of tiers whose consumer went away mid-run
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Tier task ended with %r", task.exception())
