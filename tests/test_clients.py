"""Provider adapters: deterministic mocks, payload parsing and HTTP error handling."""

import httpx
import pytest

from dealscan.data.avm_client import HttpAvm, MockAvm
from dealscan.data.base import Address
from dealscan.data.delinquency_client import MockDelinquency, _loan_flags
from dealscan.data.lien_client import HttpLiens, MockLiens, parse_lien_record
from dealscan.data.listings_client import HttpListings, MockListings, normalize_listing
from dealscan.data.point_estimate_client import HttpPointEstimates, MockPointEstimates
from dealscan.errors import UpstreamError

ADDR = Address(street="12 Palm Ave", city="Miami", state="FL", postal_code="33139")


@pytest.fixture
def fake_http(monkeypatch):
    """Route every httpx.AsyncClient created by the clients through a handler."""
    real_client = httpx.AsyncClient

    def install(handler):
        transport = httpx.MockTransport(handler)
        monkeypatch.setattr(httpx, "AsyncClient", lambda **kw: real_client(transport=transport, **kw))

    return install


class TestMocks:
    @pytest.mark.asyncio
    async def test_mock_listings_are_reproducible_and_paged(self):
        source = MockListings()
        first, more = await source.search_near(25.7617, -80.1918, 10, page=1)
        again, _ = await source.search_near(25.7617, -80.1918, 10, page=1)
        last, more_after_last = await source.search_near(25.7617, -80.1918, 10, page=2)

        assert len(first) == 25 and more is True
        assert more_after_last is False
        assert [l.to_dict() for l in first] == [l.to_dict() for l in again]
        assert {l.address.street for l in first}.isdisjoint({l.address.street for l in last})
        assert all(l.price > 0 and l.location.known for l in first)

    @pytest.mark.asyncio
    async def test_mock_listings_vary_by_location(self):
        source = MockListings()
        miami, _ = await source.search_near(25.7617, -80.1918, 10)
        tampa, _ = await source.search_near(27.9506, -82.4572, 10)
        assert [l.price for l in miami] != [l.price for l in tampa]

    @pytest.mark.asyncio
    async def test_mock_lookups_are_stable_per_address(self):
        assert await MockDelinquency().lookup(ADDR) == await MockDelinquency().lookup(ADDR)
        assert await MockPointEstimates().lookup(ADDR) == await MockPointEstimates().lookup(ADDR)

    @pytest.mark.asyncio
    async def test_mock_point_estimate_rent_ratio(self):
        est = await MockPointEstimates().lookup(ADDR)
        assert 180_000 <= est.point_estimate < 330_000
        assert est.rent_estimate == round(est.point_estimate * 0.007)

    @pytest.mark.asyncio
    async def test_mock_avm_band_and_comps(self):
        result = await MockAvm().lookup(ADDR)
        assert 200_000 <= result.value < 500_000
        assert result.value_low < result.value < result.value_high
        assert len(result.comparables) == 2

    @pytest.mark.asyncio
    async def test_mock_liens_keyed_by_normalized_street(self):
        messy = Address(street="  12   PALM Ave ", city="Miami", state="FL")
        out = await MockLiens().lookup_batch([messy])
        assert list(out) == ["12 palm ave"]


class TestParsing:
    def test_normalize_nested_listing(self):
        item = {
            "property": {
                "zpid": 4321,
                "address": {"streetAddress": "5 Bay Rd", "city": "Miami", "state": "FL", "zipcode": "33139"},
                "location": {"latitude": 0, "longitude": 0},
                "price": {"value": 270_000, "priceChange": -30_000},
                "propertyType": "condo",
                "listing": {"listingStatus": "preForeclosure"},
                "livingArea": 900,
                "daysOnZillow": 12,
                "estimates": {"zestimate": 310_000, "rentZestimate": 2_400},
            }
        }
        listing = normalize_listing(item, 25.76, -80.19)

        assert listing.address.street == "5 Bay Rd"
        assert listing.address.postal_code == "33139"
        assert listing.price == 270_000
        assert (listing.location.lat, listing.location.lng) == (25.76, -80.19)
        assert listing.sqft == 900
        assert listing.days_on_market == 12
        assert listing.external_point_estimate == 310_000
        assert listing.rent_estimate == 2_400
        assert listing.distress.is_pre_foreclosure
        assert listing.distress.price_drop_percent == 10
        assert listing.listing_url.endswith("/4321_zpid/")

    def test_normalize_sparse_listing_uses_defaults(self):
        listing = normalize_listing({"price": 99_000, "address": {"street": "1 A St"}}, 1.0, 2.0)
        assert listing.property_type == "unknown"
        assert listing.sqft is None
        assert listing.days_on_market == 0
        assert listing.distress.price_drop_percent == 0
        assert listing.estimated_value is None

    def test_parse_lien_record_from_features_and_history(self):
        result = parse_lien_record({
            "features": [{"key": "Tax Lien"}],
            "prices": [
                {"dateSeen": "2024-06-01", "amountMax": 180_000},
                {"dateSeen": "2024-01-01", "amountMax": 200_000},
            ],
        })
        assert result.has_lien
        assert result.price_drop_percent == 10

    def test_parse_lien_record_from_amount(self):
        assert parse_lien_record({"taxLienAmount": 5_000}).has_lien

    def test_parse_empty_lien_record(self):
        result = parse_lien_record({})
        assert (result.has_lien, result.price_drop_percent, result.lien_amount) == (False, 0, 0)

    @pytest.mark.parametrize(
        "status, expected",
        [("Default", (True, False)), ("In Foreclosure", (False, True)), ("Current", (False, False)), (None, (False, False))],
    )
    def test_loan_flags(self, status, expected):
        assert _loan_flags(status) == expected


class TestHttpClients:
    @pytest.mark.asyncio
    async def test_listings_page_count(self, fake_http):
        def handler(request):
            assert request.url.params["page"] == "1"
            return httpx.Response(200, json={
                "searchResults": [{"property": {"address": {"streetAddress": "1 A St"}, "price": {"value": 1}}}],
                "resultsCount": {"totalPages": 2},
            })

        fake_http(handler)
        listings, more = await HttpListings("https://listings.test", "k").search_near(25.0, -80.0, 5)
        assert len(listings) == 1 and more

    @pytest.mark.asyncio
    async def test_avm_not_found_is_none(self, fake_http):
        fake_http(lambda request: httpx.Response(404))
        assert await HttpAvm("https://avm.test", "k").lookup(ADDR) is None

    @pytest.mark.asyncio
    async def test_avm_server_error_raises(self, fake_http):
        fake_http(lambda request: httpx.Response(503))
        with pytest.raises(httpx.HTTPStatusError):
            await HttpAvm("https://avm.test", "k").lookup(ADDR)

    @pytest.mark.asyncio
    async def test_avm_parses_comparables(self, fake_http):
        fake_http(lambda request: httpx.Response(200, json={
            "price": 310_000, "priceLow": 290_000, "priceHigh": 330_000,
            "comparables": [{"formattedAddress": "9 Near St", "price": 305_000, "squareFootage": 1100}],
        }))
        result = await HttpAvm("https://avm.test", "k").lookup(ADDR)
        assert result.value == 310_000
        assert result.comparables[0].address == "9 Near St"

    @pytest.mark.asyncio
    async def test_point_estimate_bad_payload_raises_upstream_error(self, fake_http):
        fake_http(lambda request: httpx.Response(200, json=["unexpected"]))
        with pytest.raises(UpstreamError):
            await HttpPointEstimates("https://pe.test", "k").lookup(ADDR)

    @pytest.mark.asyncio
    async def test_point_estimate_status_message_means_no_estimate(self, fake_http):
        fake_http(lambda request: httpx.Response(200, json={"message": "404: Property not found"}))
        assert await HttpPointEstimates("https://pe.test", "k").lookup(ADDR) is None

    @pytest.mark.asyncio
    async def test_lien_batch_matches_records_back(self, fake_http):
        other = Address(street="7 Other St", city="Miami", state="FL")

        def handler(request):
            assert b" OR " in request.content
            return httpx.Response(200, json={"records": [{"address": "12 PALM AVE", "taxLienAmount": 900}]})

        fake_http(handler)
        out = await HttpLiens("https://liens.test", "k").lookup_batch([ADDR, other])

        assert out["12 palm ave"].has_lien
        assert not out["7 other st"].has_lien
