import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from ..core.config import settings
from ..core.metrics import TIER_LATENCY, UPSTREAM_CALLS
from ..data.base import (
    AvmSource, DelinquencyResult, DelinquencySource, EXTERNAL_SOURCES, LienResult, LienSource,
    ListingRecord, PointEstimateSource, ValuationSource, VERIFIED_SOURCES,
)
from ..models.estimator import is_point_estimate_plausible
from ..models.scoring import rescore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]

CHEAP_RATIO = 0.9
STALE_LISTING_DAYS = 45
SIGNIFICANT_PRICE_DROP = 10
MIN_UNVERIFIED_RATIO = 0.4

def worth_enriching(listing: ListingRecord) -> bool:
    """
    Pre-screen before spending paid lookups: the listing must already show
    some sign of a deal or of seller pressure.
    """
    d = listing.distress
    if d.is_pre_foreclosure or d.is_as_is:
        return True
    if listing.price and listing.estimated_value and listing.price < listing.estimated_value * CHEAP_RATIO:
        return True
    if listing.days_on_market > STALE_LISTING_DAYS:
        return True
    if d.price_drop_percent and d.price_drop_percent > SIGNIFICANT_PRICE_DROP:
        return True
    return False

def is_worth_saving(listing: ListingRecord, min_score: Optional[int] = None) -> bool:
    """
    Persistence gate. A >60% discount resting only on our own statistics is
    far more often a bad estimate than a real deal, so it is not saved.
    """
    min_score = settings.SAVE_MIN_SCORE if min_score is None else min_score
    if listing.deal_score <= min_score:
        return False
    if listing.valuation_source in EXTERNAL_SOURCES:
        return True
    ratio = listing.price_to_value
    return ratio is not None and ratio >= MIN_UNVERIFIED_RATIO

def merge_distress(
    listing: ListingRecord,
    delinquency: DelinquencyResult,
    lien: Optional[LienResult],
    enriched_at: datetime,
) -> ListingRecord:
    """
    Fold tier-1 lookups into the listing. Flags only ever go from False to
    True; values are filled in only where the listing has none.
    """
    d = listing.distress
    d.is_delinquent = d.is_delinquent or delinquency.is_delinquent
    d.is_pre_foreclosure = d.is_pre_foreclosure or delinquency.is_pre_foreclosure
    if delinquency.equity_percent is not None:
        d.equity_percent = delinquency.equity_percent
    if lien is not None:
        d.has_lien = d.has_lien or lien.has_lien
        if lien.price_drop_percent is not None:
            d.price_drop_percent = max(d.price_drop_percent or 0, lien.price_drop_percent)

    if (not listing.estimated_value or listing.estimated_value <= 0) and delinquency.fallback_market_value:
        listing.estimated_value = max(0, delinquency.fallback_market_value)
        listing.valuation_source = ValuationSource.EXTERNAL_POINT
    if not listing.days_on_market and delinquency.days_on_market:
        listing.days_on_market = delinquency.days_on_market

    listing.enriched = True
    listing.enriched_at = enriched_at
    return rescore(listing)

def _ratio_or_one(listing: ListingRecord) -> float:
    ratio = listing.price_to_value
    return ratio if ratio is not None else 1.0

class EnrichmentOrchestrator:
    """
    Three escalating tiers of external verification, each capped by a budget.

    - distress check: one batched lien lookup + per-listing delinquency lookups
    - valuation refinement: per-listing point estimates for unverified values
    - top-deal validation: AVM lookups for the few best-scoring listings

    Every tier mutates listings in place and re-scores them. A failed lookup
    only skips that listing for that tier.
    """

    def __init__(
        self,
        delinquency: DelinquencySource,
        liens: LienSource,
        point_estimates: PointEstimateSource,
        avm: AvmSource,
        *,
        distress_budget: Optional[int] = None,
        refine_budget: Optional[int] = None,
        validate_budget: Optional[int] = None,
        validate_min_score: Optional[int] = None,
        prior_weight: Optional[float] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.delinquency = delinquency
        self.liens = liens
        self.point_estimates = point_estimates
        self.avm = avm
        self.distress_budget = settings.TIER1_BUDGET if distress_budget is None else distress_budget
        self.refine_budget = settings.TIER2_BUDGET if refine_budget is None else refine_budget
        self.validate_budget = settings.TIER3_BUDGET if validate_budget is None else validate_budget
        self.validate_min_score = settings.TIER3_MIN_SCORE if validate_min_score is None else validate_min_score
        self.prior_weight = settings.TIER3_PRIOR_WEIGHT if prior_weight is None else prior_weight
        self.clock = clock

    async def _call(self, source: str, what: str, coro: Awaitable[Any]) -> Tuple[bool, Any]:
        try:
            result = await coro
        except Exception as exc:
            UPSTREAM_CALLS.labels(source=source, outcome="error").inc()
            logger.warning("%s lookup failed for %s: %s", source, what, exc)
            return False, None
        UPSTREAM_CALLS.labels(source=source, outcome="ok").inc()
        return True, result

    async def _run_each(
        self,
        batch: List[ListingRecord],
        work: Callable[[ListingRecord], Awaitable[None]],
        on_progress: Optional[ProgressCallback],
    ) -> None:
        """Run `work` concurrently over the batch, reporting each completion."""
        total = len(batch)
        done = 0

        async def one(listing: ListingRecord) -> None:
            nonlocal done
            await work(listing)
            done += 1
            if on_progress:
                on_progress(done, total, listing.address.street)

        await asyncio.gather(*(one(l) for l in batch))

    # ----- Tier 1 -----

    def distress_candidates(self, listings: List[ListingRecord]) -> List[ListingRecord]:
        candidates = [l for l in listings if not l.enriched and worth_enriching(l)]
        candidates.sort(key=_ratio_or_one)
        return candidates[: self.distress_budget]

    async def check_distress(
        self, listings: List[ListingRecord], on_progress: Optional[ProgressCallback] = None
    ) -> List[ListingRecord]:
        batch = self.distress_candidates(listings)
        if not batch:
            return []
        logger.info("Distress check: %d of %d listings", len(batch), len(listings))

        with TIER_LATENCY.labels(tier="distress").time():
            ok, lien_map = await self._call(
                "lien", f"batch of {len(batch)}", self.liens.lookup_batch([l.address for l in batch])
            )
            lien_map = lien_map if ok and lien_map else {}

            async def work(listing: ListingRecord) -> None:
                ok, result = await self._call("delinquency", listing.address.street,
                                              self.delinquency.lookup(listing.address))
                if not ok or result is None:
                    return
                merge_distress(listing, result, lien_map.get(listing.address.street_key), self.clock())

            await self._run_each(batch, work, on_progress)
        return batch

    # ----- Tier 2 -----

    def refine_candidates(self, listings: List[ListingRecord]) -> List[ListingRecord]:
        candidates = [
            l for l in listings
            if l.price and l.price > 0 and l.valuation_source not in VERIFIED_SOURCES
        ]
        candidates.sort(key=lambda l: l.deal_score, reverse=True)
        return candidates[: self.refine_budget]

    async def refine_valuations(
        self, listings: List[ListingRecord], on_progress: Optional[ProgressCallback] = None
    ) -> List[ListingRecord]:
        batch = self.refine_candidates(listings)
        if not batch:
            return []

        refined: List[ListingRecord] = []

        async def work(listing: ListingRecord) -> None:
            ok, result = await self._call("point-estimate", listing.address.street,
                                          self.point_estimates.lookup(listing.address))
            if not ok or result is None:
                return
            if not is_point_estimate_plausible(result.point_estimate, listing):
                logger.info("Point estimate %s rejected for %s (price %s)",
                            result.point_estimate, listing.address.street, listing.price)
                return
            listing.estimated_value = result.point_estimate
            listing.valuation_source = ValuationSource.VERIFIED_EXTERNAL
            if result.rent_estimate:
                listing.rent_estimate = result.rent_estimate
            rescore(listing)
            refined.append(listing)

        with TIER_LATENCY.labels(tier="refine").time():
            await self._run_each(batch, work, on_progress)
        logger.info("Valuation refinement: %d of %d verified", len(refined), len(batch))
        return batch

    # ----- Tier 3 -----

    def validate_candidates(self, listings: List[ListingRecord]) -> List[ListingRecord]:
        candidates = [l for l in listings if l.deal_score >= self.validate_min_score]
        candidates.sort(key=lambda l: l.deal_score, reverse=True)
        return candidates[: self.validate_budget]

    async def validate_top_deals(
        self, listings: List[ListingRecord], on_progress: Optional[ProgressCallback] = None
    ) -> List[ListingRecord]:
        batch = self.validate_candidates(listings)
        if not batch:
            return []

        async def work(listing: ListingRecord) -> None:
            ok, result = await self._call("avm", listing.address.street, self.avm.lookup(listing.address))
            if not ok or result is None or not result.value or result.value <= 0:
                return
            prior = listing.estimated_value
            if listing.valuation_source in VERIFIED_SOURCES and prior and prior > 0:
                w = self.prior_weight
                listing.estimated_value = round(w * prior + (1 - w) * result.value)
                listing.valuation_source = ValuationSource.BLENDED_VERIFIED
            else:
                listing.estimated_value = result.value
                listing.valuation_source = ValuationSource.VERIFIED_EXTERNAL
            listing.avm = result
            rescore(listing)

        with TIER_LATENCY.labels(tier="validate").time():
            await self._run_each(batch, work, on_progress)
        return batch
