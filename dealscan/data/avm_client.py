from datetime import date, timedelta
from typing import Optional
from .base import AvmSource, AvmResult, Comparable, Address
from ..core.utils import address_seed, seeded_uniforms, money_band
from ..core.config import settings
import httpx

class MockAvm(AvmSource):
    """
    Deterministic automated-valuation output with a couple of sold comps.
    """
    async def lookup(self, address: Address) -> Optional[AvmResult]:
        seed = address_seed("avm", address.street_key)
        base = 200_000 + int(seeded_uniforms(seed, 1)[0] * 300_000)
        low, high = money_band(base, seed)
        today = date.today()
        comps = [
            Comparable(address="100 Mock Comp St", price=round(base * 0.95), sqft=1200, distance=0.3,
                       sale_date=(today - timedelta(days=45)).isoformat()),
            Comparable(address="200 Mock Comp Ave", price=round(base * 1.02), sqft=1350, distance=0.5,
                       sale_date=(today - timedelta(days=120)).isoformat()),
        ]
        return AvmResult(value=base, value_low=low, value_high=high, comparables=comps)

class HttpAvm(AvmSource):
    """
    Valuation endpoint returning price, range and comparables for an address.
    """
    def __init__(self, base_url: str, api_key: str, timeout: float = 15):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    async def lookup(self, address: Address) -> Optional[AvmResult]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            r = await client.get(
                f"{self.base_url}/avm/value",
                params={"address": address.full},
                headers={"X-Api-Key": self.api_key},
            )
            if r.status_code == 404:
                return None
            r.raise_for_status()
            d = r.json()
        if not d or not d.get("price"):
            return None
        comps = [
            Comparable(
                address=c.get("formattedAddress") or c.get("addressLine1") or "",
                price=c.get("price") or c.get("lastSalePrice") or 0,
                sqft=c.get("squareFootage"),
                distance=c.get("distance"),
                sale_date=c.get("lastSaleDate"),
            ) for c in d.get("comparables") or []
        ]
        return AvmResult(value=d["price"], value_low=d.get("priceLow"), value_high=d.get("priceHigh"),
                         comparables=comps)

def avm_client() -> AvmSource:
    if settings.AVM_PROVIDER == "http" and settings.AVM_BASE_URL and settings.AVM_API_KEY:
        return HttpAvm(settings.AVM_BASE_URL, settings.AVM_API_KEY, timeout=settings.HTTP_TIMEOUT_SECONDS)
    return MockAvm()
