from typing import List, Tuple, Dict, Any
from .base import ListingSource, ListingRecord, Address, GeoPoint, DistressFlags
from ..core.utils import fnv1a_32, seeded_uniforms
from ..core.config import settings
import httpx

MOCK_PAGE_SIZE = 25
MOCK_PAGES = 2

_STREETS = ["Main St", "Oak Ave", "Elm Blvd", "Pine Rd", "Maple Dr", "Cedar Ln",
            "Birch Way", "Walnut St", "Spruce Ave", "Ash Ct", "Bay Rd", "Coral Way"]
_TYPES = ["singleFamily", "condo", "townhouse", "multiFamily"]

class MockListings(ListingSource):
    """
    Synthetic for-sale listings around a point. Same coordinates and page
    always produce the same listings, so searches are reproducible offline.
    """
    async def search_near(self, lat: float, lng: float, radius_miles: float, page: int = 1) -> Tuple[List[ListingRecord], bool]:
        seed = fnv1a_32(f"{round(lat, 3)},{round(lng, 3)}")
        zips = [f"{33100 + int(seeded_uniforms(seed + z, 1)[0] * 90) + z * 100:05d}" for z in range(3)]
        out: List[ListingRecord] = []
        for i in range((page - 1) * MOCK_PAGE_SIZE, page * MOCK_PAGE_SIZE):
            r = seeded_uniforms(seed + i * 7919, 12)
            zone = int(r[0] * len(zips)) % len(zips)
            sqft = 700 + int(r[2] * 2300)
            # Each zip gets its own $/sqft level, listings scatter +/-30% around it
            ppsf = (180 + zone * 60) * (0.7 + r[3] * 0.6)
            price = int(round(sqft * ppsf, -3))

            if r[4] < 0.6:
                point_estimate = int(round(price * (0.9 + r[4] * 0.5), -2))
            elif r[4] < 0.7:
                point_estimate = price * 3  # building/lot value, fails plausibility
            else:
                point_estimate = None

            pre_foreclosure = r[7] > 0.9
            out.append(ListingRecord(
                address=Address(
                    street=f"{(i + 1) * 100 + int(r[1] * 90)} {_STREETS[i % len(_STREETS)]}",
                    city="Mock City", state="FL", postal_code=zips[zone],
                ),
                price=price,
                location=GeoPoint(lat=round(lat + (r[8] - 0.5) * 0.1, 6),
                                  lng=round(lng + (r[9] - 0.5) * 0.1, 6)),
                property_type=_TYPES[int(r[5] * len(_TYPES)) % len(_TYPES)],
                listing_status="preForeclosure" if pre_foreclosure else "forSale",
                sqft=sqft,
                bedrooms=2 + int(r[10] * 4),
                bathrooms=1 + int(r[11] * 3),
                days_on_market=int(r[6] * 120),
                photo_url=f"https://picsum.photos/seed/{zips[zone]}{i}/400/300",
                external_point_estimate=point_estimate,
                distress=DistressFlags(
                    is_as_is=r[11] > 0.85,
                    is_pre_foreclosure=pre_foreclosure,
                    price_drop_percent=int(r[10] * 25) if r[10] < 0.3 else 0,
                ),
            ))
        return out, page < MOCK_PAGES

def normalize_listing(item: Dict[str, Any], lat: float, lng: float) -> ListingRecord:
    """
    Map one provider search result onto ListingRecord.
    Provider nests most fields; anything absent falls back to defaults.
    """
    p = item.get("property") or item
    addr = p.get("address") or {}
    loc = p.get("location") or {}
    listing = p.get("listing") or {}
    price_obj = p.get("price") if isinstance(p.get("price"), dict) else {"value": p.get("price")}
    estimates = p.get("estimates") or {}

    price = price_obj.get("value") or 0
    # A negative priceChange is a reduction from the previous asking price
    price_change = price_obj.get("priceChange") or 0
    price_drop = 0
    if price_change < 0 and price:
        price_drop = round(abs(price_change) / (price - price_change) * 100)

    media = p.get("media") or {}
    photo_links = media.get("propertyPhotoLinks") or {}
    photo_url = photo_links.get("highResolutionLink") or photo_links.get("mediumSizeLink")
    zpid = p.get("zpid")
    status = listing.get("listingStatus") or "unknown"

    return ListingRecord.from_dict({
        "address": {
            "street": addr.get("streetAddress") or addr.get("street"),
            "city": addr.get("city"),
            "state": addr.get("state"),
            "postal_code": addr.get("zipcode") or addr.get("zip"),
        },
        "price": price,
        # `or` on purpose: a 0 coordinate falls through to the search centre
        "location": {
            "lat": loc.get("latitude") or p.get("latitude") or lat,
            "lng": loc.get("longitude") or p.get("longitude") or lng,
        },
        "property_type": p.get("propertyType"),
        "listing_status": status,
        "sqft": p.get("livingArea"),
        "bedrooms": p.get("bedrooms"),
        "bathrooms": p.get("bathrooms"),
        "days_on_market": p.get("daysOnZillow") or p.get("daysOnMarket"),
        "listing_url": p.get("listingUrl") or (f"https://www.zillow.com/homedetails/{zpid}_zpid/" if zpid else None),
        "photo_url": photo_url,
        "photos": (media.get("allPropertyPhotos") or {}).get("medium") or ([photo_url] if photo_url else []),
        "external_point_estimate": estimates.get("zestimate"),
        "rent_estimate": estimates.get("rentZestimate"),
        "distress": {
            "is_pre_foreclosure": status == "preForeclosure",
            "price_drop_percent": price_drop,
        },
    })

class HttpListings(ListingSource):
    """
    Client for a listings search API keyed by coordinates.
    """
    def __init__(self, base_url: str, api_key: str | None = None, timeout: float = 20):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    async def search_near(self, lat: float, lng: float, radius_miles: float, page: int = 1) -> Tuple[List[ListingRecord], bool]:
        headers = {"x-api-key": self.api_key} if self.api_key else {}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            r = await client.get(
                f"{self.base_url}/search/bycoordinates",
                params={"latitude": lat, "longitude": lng, "radius": radius_miles, "page": page},
                headers=headers,
            )
            r.raise_for_status()
            j = r.json()
        items = j.get("searchResults") or []
        total_pages = (j.get("resultsCount") or {}).get("totalPages") or 1
        return [normalize_listing(i, lat, lng) for i in items], page < total_pages

def listings_client() -> ListingSource:
    """
    Factory picks mock or http based on env flags.
    """
    if settings.LISTINGS_PROVIDER == "http" and settings.LISTINGS_BASE_URL:
        return HttpListings(settings.LISTINGS_BASE_URL, settings.LISTINGS_API_KEY)
    return MockListings()
