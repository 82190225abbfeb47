"""
Market-value inference for a single listing.

Priority: a plausible third-party point estimate, then a size-adjusted
$/sqft estimate cross-checked against the locality price median, then the
price median alone. A $/sqft figure from a thin sample drifts badly for
listings far from the typical size, so when it disagrees with the price
median it is blended toward it or dropped.
"""

from typing import Optional, Tuple

from ..data.base import ListingRecord, ValuationSource
from .market import MarketDataSnapshot, locality_key, locality_type_key

# Point estimate vs asking price outside this band is usually a lot/building value
MIN_POINT_RATIO = 0.4
MAX_POINT_RATIO = 2.5
MAX_PLAUSIBLE_PPSF = 2000

EXTREME_DIVERGENCE_HIGH = 3.0
EXTREME_DIVERGENCE_LOW = 0.25
MODERATE_DIVERGENCE_HIGH = 1.5
MODERATE_DIVERGENCE_LOW = 0.5
PRICE_MEDIAN_BLEND_WEIGHT = 0.7

def is_point_estimate_plausible(estimate: Optional[float], listing: ListingRecord) -> bool:
    """Sanity gate for any third-party point valuation of this listing."""
    if not estimate or estimate <= 0 or not listing.price or listing.price <= 0:
        return False
    ratio = estimate / listing.price
    if ratio < MIN_POINT_RATIO or ratio > MAX_POINT_RATIO:
        return False
    if listing.sqft and listing.sqft > 0 and estimate / listing.sqft > MAX_PLAUSIBLE_PPSF:
        return False
    return True

def _first_positive(*values: Optional[float]) -> float:
    for v in values:
        if v and v > 0:
            return v
    return 0

def estimate_with_source(listing: ListingRecord, snapshot: MarketDataSnapshot) -> Tuple[float, ValuationSource]:
    if is_point_estimate_plausible(listing.external_point_estimate, listing):
        return listing.external_point_estimate, ValuationSource.EXTERNAL_POINT

    loc, loc_type = locality_key(listing), locality_type_key(listing)
    price_median = _first_positive(
        snapshot.price_by_locality_type.get(loc_type),
        snapshot.price_by_locality.get(loc),
        snapshot.area_price_median,
    )

    if listing.sqft and listing.sqft > 0:
        ppsf = _first_positive(
            snapshot.ppsf_by_locality_type.get(loc_type),
            snapshot.ppsf_by_locality.get(loc),
            snapshot.area_ppsf_median,
        )
        if ppsf > 0:
            ppsf_estimate = round(ppsf * listing.sqft)
            if price_median > 0:
                divergence = ppsf_estimate / price_median
                if divergence > EXTREME_DIVERGENCE_HIGH or divergence < EXTREME_DIVERGENCE_LOW:
                    return price_median, ValuationSource.RAW_PRICE_MEDIAN
                if divergence > MODERATE_DIVERGENCE_HIGH or divergence < MODERATE_DIVERGENCE_LOW:
                    w = PRICE_MEDIAN_BLEND_WEIGHT
                    return round(w * price_median + (1 - w) * ppsf_estimate), ValuationSource.AREA_DENSITY
            return ppsf_estimate, ValuationSource.AREA_DENSITY

    return price_median, ValuationSource.RAW_PRICE_MEDIAN

def estimate_market_value(listing: ListingRecord, snapshot: MarketDataSnapshot) -> float:
    value, _ = estimate_with_source(listing, snapshot)
    return value

def apply_estimate(listing: ListingRecord, snapshot: MarketDataSnapshot) -> ListingRecord:
    value, source = estimate_with_source(listing, snapshot)
    listing.estimated_value = max(0, value)
    listing.valuation_source = source
    return listing
