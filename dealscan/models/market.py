"""Per-run market data: trimmed medians of price and $/sqft by locality."""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from ..data.base import ListingRecord
from .stats import trimmed_median

MIN_BUCKET_SAMPLES = 3

def locality_key(listing: ListingRecord) -> str:
    return listing.address.postal_code or "unknown"

def locality_type_key(listing: ListingRecord) -> str:
    return f"{locality_key(listing)}|{listing.property_type or 'unknown'}"

@dataclass(frozen=True)
class MarketDataSnapshot:
    ppsf_by_locality_type: Dict[str, float] = field(default_factory=dict)
    ppsf_by_locality: Dict[str, float] = field(default_factory=dict)
    price_by_locality_type: Dict[str, float] = field(default_factory=dict)
    price_by_locality: Dict[str, float] = field(default_factory=dict)
    area_ppsf_median: float = 0
    area_price_median: float = 0

def _medians(buckets: Dict[str, List[float]], min_samples: int) -> Dict[str, float]:
    return {k: trimmed_median(v) for k, v in buckets.items() if len(v) >= min_samples}

def build_market_snapshot(listings: Iterable[ListingRecord]) -> MarketDataSnapshot:
    """
    Aggregate the working set into locality medians.

    Only priced listings with a known location contribute. Locality+type
    buckets and locality $/sqft buckets need at least 3 samples to be
    emitted; locality price medians are always emitted since they are the
    last locality-specific fallback.
    """
    ppsf_lt: Dict[str, List[float]] = defaultdict(list)
    ppsf_l: Dict[str, List[float]] = defaultdict(list)
    price_lt: Dict[str, List[float]] = defaultdict(list)
    price_l: Dict[str, List[float]] = defaultdict(list)

    for listing in listings:
        if not listing.price or listing.price <= 0 or not listing.location.known:
            continue
        loc, loc_type = locality_key(listing), locality_type_key(listing)
        price_lt[loc_type].append(listing.price)
        price_l[loc].append(listing.price)
        if listing.sqft and listing.sqft > 0:
            ppsf = listing.price / listing.sqft
            ppsf_lt[loc_type].append(ppsf)
            ppsf_l[loc].append(ppsf)

    all_ppsf = [v for vals in ppsf_l.values() for v in vals]
    all_prices = [v for vals in price_l.values() for v in vals]

    return MarketDataSnapshot(
        ppsf_by_locality_type=_medians(ppsf_lt, MIN_BUCKET_SAMPLES),
        ppsf_by_locality=_medians(ppsf_l, MIN_BUCKET_SAMPLES),
        price_by_locality_type=_medians(price_lt, MIN_BUCKET_SAMPLES),
        price_by_locality=_medians(price_l, 1),
        area_ppsf_median=trimmed_median(all_ppsf),
        area_price_median=trimmed_median(all_prices),
    )
