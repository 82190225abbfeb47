from typing import Dict, Any
from ..data.base import ListingRecord, ValuationSource

MAX_SCORE = 100
LONG_ON_MARKET_DAYS = 60

# (upper bound on price/value ratio, points), checked in order
RATIO_POINTS = [(0.75, 40), (0.80, 25), (0.85, 15)]

def score_deal(listing: ListingRecord) -> int:
    """
    Additive 0-100 deal score.

      40/25/15 pts - price under 75/80/85% of estimated value
      30 pts       - mortgage delinquent
      10 pts       - more than 60 days on market
      10 pts       - lien on record
      10 pts       - listed as-is / cash only

    Pure function of the listing, so it is re-run after every tier. A
    listing without an asking price scores 0.
    """
    if not listing.price or listing.price <= 0:
        return 0

    score = 0
    ratio = listing.price_to_value
    if ratio is not None:
        for bound, points in RATIO_POINTS:
            if ratio < bound:
                score += points
                break

    d = listing.distress
    if d.is_delinquent:
        score += 30
    if listing.days_on_market > LONG_ON_MARKET_DAYS:
        score += 10
    if d.has_lien:
        score += 10
    if d.is_as_is:
        score += 10

    return max(0, min(score, MAX_SCORE))

def rescore(listing: ListingRecord) -> ListingRecord:
    listing.deal_score = score_deal(listing)
    return listing

def valuation_meta(listing: ListingRecord) -> Dict[str, Any]:
    """Source label, confidence level and comparable count for display."""
    source = listing.valuation_source or ValuationSource.RAW_PRICE_MEDIAN
    return {
        "source": source.value,
        "confidence": listing.valuation_confidence,
        "comp_count": len(listing.avm.comparables) if listing.avm else 0,
    }
