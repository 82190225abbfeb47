"""Shared fixtures and builders for pipeline tests."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest

from dealscan.core.cache import Cache
from dealscan.data.base import (
    Address,
    DelinquencyResult,
    DistressFlags,
    GeoPoint,
    ListingRecord,
    ValuationSource,
)
from dealscan.data.store import InMemoryStore
from dealscan.services.enrichment import EnrichmentOrchestrator
from dealscan.services.pipeline import SearchPipeline


def make_listing(
    street: str = "100 Main St",
    *,
    price: float = 200_000,
    sqft: float | None = 1000,
    postal_code: str = "33101",
    property_type: str = "condo",
    lat: float = 25.76,
    lng: float = -80.19,
    days_on_market: int = 0,
    estimated_value: float | None = None,
    valuation_source: ValuationSource | None = None,
    deal_score: int = 0,
    **flags: Any,
) -> ListingRecord:
    """
    Build a ListingRecord for tests.

    Args:
        street: Street line, also the lien/store key.
        price: Asking price.
        sqft: Floor area, None for unknown.
        estimated_value: Pre-set valuation (skips estimation in unit tests).
        **flags: DistressFlags fields, e.g. is_delinquent=True.

    Returns:
        ListingRecord with a known location unless lat/lng are both 0.
    """
    return ListingRecord(
        address=Address(street=street, city="Miami", state="FL", postal_code=postal_code),
        price=price,
        sqft=sqft,
        property_type=property_type,
        location=GeoPoint(lat=lat, lng=lng),
        days_on_market=days_on_market,
        estimated_value=estimated_value,
        valuation_source=valuation_source,
        deal_score=deal_score,
        distress=DistressFlags(**flags),
    )


def make_listings(n: int, postal_code: str = "33101") -> list[ListingRecord]:
    """n listings in one zip with spread-out sizes and prices."""
    return [
        make_listing(
            f"{100 + i} Ocean Dr",
            price=150_000 + i * 7_500,
            sqft=900 + i * 25,
            postal_code=postal_code,
            days_on_market=i * 5,
            lat=25.70 + i * 0.001,
            lng=-80.20 + i * 0.001,
        )
        for i in range(n)
    ]


class StubListingSource:
    """Listing source returning fresh copies of fixed pages and counting calls."""

    def __init__(self, pages: list[list[ListingRecord]]):
        self.pages = pages
        self.calls = 0

    async def search_near(self, lat, lng, radius_miles, page=1):
        self.calls += 1
        items = self.pages[page - 1] if page <= len(self.pages) else []
        copies = [ListingRecord.from_dict(l.to_dict()) for l in items]
        return copies, page < len(self.pages)


@pytest.fixture
def delinquency():
    source = AsyncMock()
    source.lookup.return_value = DelinquencyResult()
    return source


@pytest.fixture
def liens():
    source = AsyncMock()
    source.lookup_batch.return_value = {}
    return source


@pytest.fixture
def point_estimates():
    source = AsyncMock()
    source.lookup.return_value = None
    return source


@pytest.fixture
def avm():
    source = AsyncMock()
    source.lookup.return_value = None
    return source


@pytest.fixture
def notifier():
    n = AsyncMock()
    n.notify.return_value = True
    return n


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def search_cache():
    return Cache("test-search", ttl_seconds=300, maxsize=32, use_redis=False)


@pytest.fixture
def orchestrator(delinquency, liens, point_estimates, avm):
    return EnrichmentOrchestrator(delinquency, liens, point_estimates, avm)


@pytest.fixture
def build_pipeline(orchestrator, store, notifier, search_cache):
    """Factory: pipeline over the given listing pages with stubbed providers."""

    def _build(pages: list[list[ListingRecord]], **kwargs: Any) -> tuple[SearchPipeline, StubListingSource]:
        source = StubListingSource(pages)
        pipeline = SearchPipeline(
            listings=source,
            store=kwargs.pop("store", store),
            notifier=notifier,
            cache=kwargs.pop("cache", search_cache),
            orchestrator=kwargs.pop("orchestrator", orchestrator),
            **kwargs,
        )
        return pipeline, source

    return _build
