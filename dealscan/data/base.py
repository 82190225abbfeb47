from typing import Protocol, List, Optional, Dict, Any, Tuple
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum

from ..core.utils import normalize_address

# ----- Data shapes (thin & explicit) -----

@dataclass
class GeoPoint:
    lat: float
    lng: float

    @property
    def known(self) -> bool:
        # (0, 0) is what providers send when they have no coordinates
        return not (self.lat == 0 and self.lng == 0)

@dataclass
class Bounds:
    north: float
    south: float
    east: float
    west: float

    def contains(self, point: GeoPoint) -> bool:
        if not point.known:
            return False
        return self.south <= point.lat <= self.north and self.west <= point.lng <= self.east

@dataclass
class Address:
    street: str
    city: str = ""
    state: str = ""
    postal_code: str = ""

    @property
    def full(self) -> str:
        return f"{self.street}, {self.city}, {self.state} {self.postal_code}".strip()

    @property
    def street_key(self) -> str:
        return normalize_address(self.street)

    @property
    def natural_key(self) -> Tuple[str, str]:
        """Upsert key: one stored record per street + postal code."""
        return self.street_key, self.postal_code.strip()

class ValuationSource(str, Enum):
    EXTERNAL_POINT = "external-point"        # provider point estimate, screened
    AREA_DENSITY = "area-density"            # $/sqft × sqft, cross-checked
    RAW_PRICE_MEDIAN = "raw-price-median"    # locality price median
    VERIFIED_EXTERNAL = "verified-external"  # per-listing lookup (tier 2/3)
    BLENDED_VERIFIED = "blended-verified"    # tier 2 estimate blended with AVM

# Sources backed by a third-party figure rather than our own statistics
EXTERNAL_SOURCES = frozenset({
    ValuationSource.EXTERNAL_POINT,
    ValuationSource.VERIFIED_EXTERNAL,
    ValuationSource.BLENDED_VERIFIED,
})
VERIFIED_SOURCES = frozenset({ValuationSource.VERIFIED_EXTERNAL, ValuationSource.BLENDED_VERIFIED})

CONFIDENCE_BY_SOURCE = {
    ValuationSource.VERIFIED_EXTERNAL: "high",
    ValuationSource.BLENDED_VERIFIED: "high",
    ValuationSource.EXTERNAL_POINT: "medium",
    ValuationSource.AREA_DENSITY: "low",
    ValuationSource.RAW_PRICE_MEDIAN: "low",
}

@dataclass
class DistressFlags:
    is_delinquent: bool = False
    has_lien: bool = False
    is_as_is: bool = False
    is_pre_foreclosure: bool = False
    equity_percent: Optional[float] = None
    price_drop_percent: Optional[float] = None

@dataclass
class Comparable:
    address: str
    price: int
    sqft: Optional[int] = None
    distance: Optional[float] = None
    sale_date: Optional[str] = None

@dataclass
class AvmResult:
    value: int
    value_low: Optional[int] = None
    value_high: Optional[int] = None
    comparables: List[Comparable] = field(default_factory=list)

@dataclass
class PointEstimate:
    point_estimate: Optional[int]
    rent_estimate: Optional[int] = None

@dataclass
class DelinquencyResult:
    is_delinquent: bool = False
    is_pre_foreclosure: bool = False
    equity_percent: Optional[float] = None
    fallback_market_value: Optional[int] = None
    days_on_market: Optional[int] = None

@dataclass
class LienResult:
    has_lien: bool = False
    price_drop_percent: Optional[float] = None
    lien_amount: Optional[int] = None

@dataclass
class ListingRecord:
    """Working unit that flows through the pipeline and is mutated by each tier."""
    address: Address
    price: float
    location: GeoPoint = field(default_factory=lambda: GeoPoint(0.0, 0.0))
    property_type: str = "unknown"
    listing_status: str = "unknown"
    sqft: Optional[float] = None
    bedrooms: Optional[float] = None
    bathrooms: Optional[float] = None
    days_on_market: int = 0
    listing_url: Optional[str] = None
    photo_url: Optional[str] = None
    photos: List[str] = field(default_factory=list)

    estimated_value: Optional[float] = None
    external_point_estimate: Optional[float] = None
    rent_estimate: Optional[float] = None
    valuation_source: Optional[ValuationSource] = None
    avm: Optional[AvmResult] = None

    distress: DistressFlags = field(default_factory=DistressFlags)

    deal_score: int = 0
    enriched: bool = False
    enriched_at: Optional[datetime] = None

    @property
    def valuation_confidence(self) -> str:
        return CONFIDENCE_BY_SOURCE.get(self.valuation_source, "low")

    @property
    def price_to_value(self) -> Optional[float]:
        if self.price and self.price > 0 and self.estimated_value and self.estimated_value > 0:
            return self.price / self.estimated_value
        return None

    @property
    def discount_percent(self) -> Optional[float]:
        if self.price and self.estimated_value and self.estimated_value > 0:
            return (self.estimated_value - self.price) / self.estimated_value * 100.0
        return None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ListingRecord":
        """
        Build a record from a loose mapping (provider payloads, stored docs).
        Anything missing resolves to an explicit default here, so downstream
        code never checks for absent keys.
        """
        addr = d.get("address") or {}
        loc = d.get("location") or {}
        flags = d.get("distress") or {}
        avm = d.get("avm")
        source = d.get("valuation_source")
        enriched_at = d.get("enriched_at")
        if isinstance(enriched_at, str):
            enriched_at = datetime.fromisoformat(enriched_at)
        return cls(
            address=Address(
                street=addr.get("street") or "Unknown",
                city=addr.get("city") or "",
                state=addr.get("state") or "",
                postal_code=str(addr.get("postal_code") or ""),
            ),
            price=float(d.get("price") or 0),
            location=GeoPoint(lat=float(loc.get("lat") or 0.0), lng=float(loc.get("lng") or 0.0)),
            property_type=d.get("property_type") or "unknown",
            listing_status=d.get("listing_status") or "unknown",
            sqft=_positive_or_none(d.get("sqft")),
            bedrooms=d.get("bedrooms"),
            bathrooms=d.get("bathrooms"),
            days_on_market=max(0, int(d.get("days_on_market") or 0)),
            listing_url=d.get("listing_url"),
            photo_url=d.get("photo_url"),
            photos=list(d.get("photos") or []),
            estimated_value=d.get("estimated_value"),
            external_point_estimate=_positive_or_none(d.get("external_point_estimate")),
            rent_estimate=d.get("rent_estimate"),
            valuation_source=ValuationSource(source) if source else None,
            avm=AvmResult(
                value=avm["value"],
                value_low=avm.get("value_low"),
                value_high=avm.get("value_high"),
                comparables=[Comparable(**c) for c in avm.get("comparables") or []],
            ) if avm else None,
            distress=DistressFlags(
                is_delinquent=bool(flags.get("is_delinquent")),
                has_lien=bool(flags.get("has_lien")),
                is_as_is=bool(flags.get("is_as_is")),
                is_pre_foreclosure=bool(flags.get("is_pre_foreclosure")),
                equity_percent=flags.get("equity_percent"),
                price_drop_percent=flags.get("price_drop_percent"),
            ),
            deal_score=int(d.get("deal_score") or 0),
            enriched=bool(d.get("enriched")),
            enriched_at=enriched_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready view; the derived confidence is included for clients."""
        out = asdict(self)
        out["valuation_source"] = self.valuation_source.value if self.valuation_source else None
        out["valuation_confidence"] = self.valuation_confidence
        out["enriched_at"] = self.enriched_at.isoformat() if self.enriched_at else None
        return out

def _positive_or_none(value: Any) -> Optional[float]:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    return v if v > 0 else None

@dataclass
class HotDealEvent:
    """Emitted by the coordinator for each newly persisted high-scoring deal."""
    listing_id: str
    listing: Dict[str, Any]
    deal_score: int
    discount_percent: Optional[float] = None

# ----- Protocols (interfaces) -----

class ListingSource(Protocol):
    async def search_near(
        self, lat: float, lng: float, radius_miles: float, page: int = 1
    ) -> Tuple[List[ListingRecord], bool]: ...

class DelinquencySource(Protocol):
    async def lookup(self, address: Address) -> DelinquencyResult: ...

class LienSource(Protocol):
    async def lookup_batch(self, addresses: List[Address]) -> Dict[str, LienResult]: ...

class AvmSource(Protocol):
    async def lookup(self, address: Address) -> Optional[AvmResult]: ...

class PointEstimateSource(Protocol):
    async def lookup(self, address: Address) -> Optional[PointEstimate]: ...

class ListingStore(Protocol):
    async def upsert(self, listing: ListingRecord) -> Dict[str, Any]: ...
    async def find(
        self, min_score: Optional[int] = None, min_discount: Optional[float] = None,
        distress_type: Optional[str] = None,
    ) -> List[Dict[str, Any]]: ...
    async def get(self, listing_id: str) -> Optional[Dict[str, Any]]: ...
    async def mark_alerted(self, listing_id: str) -> None: ...

class Notifier(Protocol):
    async def notify(self, event: HotDealEvent) -> bool: ...
