import pytest

from dealscan.data.base import AvmResult, Comparable, ValuationSource
from dealscan.models.scoring import rescore, score_deal, valuation_meta

from conftest import make_listing


@pytest.mark.parametrize(
    "price, expected",
    [
        (140_000, 40),   # 0.70
        (150_000, 25),   # exactly 0.75 is not "under 75%"
        (155_000, 25),
        (160_000, 15),   # exactly 0.80
        (169_000, 15),
        (170_000, 0),    # exactly 0.85
        (250_000, 0),
    ],
)
def test_price_ratio_bands(price, expected):
    assert score_deal(make_listing(price=price, estimated_value=200_000)) == expected


def test_every_signal_saturates_at_100():
    listing = make_listing(
        price=100_000, estimated_value=200_000, days_on_market=90,
        is_delinquent=True, has_lien=True, is_as_is=True,
    )
    assert score_deal(listing) == 100


def test_distress_points_add_up():
    listing = make_listing(price=300_000, estimated_value=200_000, is_delinquent=True)
    assert score_deal(listing) == 30
    listing.distress.has_lien = True
    assert score_deal(listing) == 40
    listing.distress.is_as_is = True
    assert score_deal(listing) == 50


def test_days_on_market_threshold():
    assert score_deal(make_listing(days_on_market=60)) == 0
    assert score_deal(make_listing(days_on_market=61)) == 10


def test_missing_estimate_scores_no_price_points():
    listing = make_listing(price=50_000, estimated_value=None, is_as_is=True)
    assert score_deal(listing) == 10


@pytest.mark.parametrize("price", [0, None, -5])
def test_unpriced_listing_scores_zero_despite_distress(price):
    listing = make_listing(
        price=price, estimated_value=200_000, days_on_market=90,
        is_delinquent=True, has_lien=True, is_as_is=True,
    )
    assert score_deal(listing) == 0
    assert rescore(listing).deal_score == 0


def test_score_never_decreases_as_distress_is_added():
    listing = make_listing(price=165_000, estimated_value=200_000)
    previous = score_deal(listing)
    for flag in ("is_delinquent", "has_lien", "is_as_is"):
        setattr(listing.distress, flag, True)
        current = score_deal(listing)
        assert current >= previous
        previous = current


def test_rescore_writes_back():
    listing = make_listing(price=140_000, estimated_value=200_000)
    assert rescore(listing).deal_score == 40


def test_valuation_meta():
    listing = make_listing(estimated_value=200_000, valuation_source=ValuationSource.BLENDED_VERIFIED)
    listing.avm = AvmResult(value=210_000, comparables=[Comparable("1 A St", 200_000), Comparable("2 A St", 220_000)])
    assert valuation_meta(listing) == {"source": "blended-verified", "confidence": "high", "comp_count": 2}

    bare = make_listing()
    assert valuation_meta(bare) == {"source": "raw-price-median", "confidence": "low", "comp_count": 0}


def test_score_never_decreases_as_price_falls():
    flags = {"is_delinquent": True, "days_on_market": 90}
    scores = [
        score_deal(make_listing(price=price, estimated_value=200_000, **flags))
        for price in range(240_000, 40_000, -5_000)
    ]
    assert scores == sorted(scores)
