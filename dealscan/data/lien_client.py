from typing import Dict, List, Any
from .base import LienSource, LienResult, Address
from ..core.utils import address_seed, seeded_uniforms, normalize_address
from ..core.config import settings
import httpx

class MockLiens(LienSource):
    """
    Synthetic lien / price-history data, stable per street.
    """
    async def lookup_batch(self, addresses: List[Address]) -> Dict[str, LienResult]:
        out: Dict[str, LienResult] = {}
        for addr in addresses:
            r = seeded_uniforms(address_seed("lien", addr.street_key), 3)
            has_lien = r[0] < 0.35
            out[addr.street_key] = LienResult(
                has_lien=has_lien,
                price_drop_percent=round(r[1] * 30) if r[1] < 0.5 else 0,
                lien_amount=round(r[2] * 15_000) if has_lien else 0,
            )
        return out

def _price_drop_percent(prices: List[Dict[str, Any]]) -> float:
    """Oldest vs newest asking price; 0 when the price went up or history is thin."""
    if len(prices) < 2:
        return 0
    ordered = sorted(prices, key=lambda p: p.get("dateSeen") or "")
    oldest = ordered[0].get("amountMax") or ordered[0].get("amountMin")
    newest = ordered[-1].get("amountMax") or ordered[-1].get("amountMin")
    if oldest and newest and oldest > newest:
        return round((oldest - newest) / oldest * 100)
    return 0

def parse_lien_record(record: Dict[str, Any]) -> LienResult:
    features = [(f.get("key") or "").lower() for f in record.get("features") or []]
    lien_amount = record.get("taxLienAmount") or 0
    return LienResult(
        has_lien=any("lien" in f for f in features) or lien_amount > 0,
        price_drop_percent=_price_drop_percent(record.get("prices") or []),
        lien_amount=lien_amount,
    )

class HttpLiens(LienSource):
    """
    One OR-query covering every address in the batch; results are keyed
    by normalized street so callers can match them back.
    """
    def __init__(self, base_url: str, api_key: str, timeout: float = 15):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    async def lookup_batch(self, addresses: List[Address]) -> Dict[str, LienResult]:
        if not addresses:
            return {}
        clauses = [
            f'(address:"{a.street}" AND city:"{a.city}" AND province:"{a.state}")' for a in addresses
        ]
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            r = await client.post(
                f"{self.base_url}/properties/search",
                json={"query": " OR ".join(clauses), "format": "JSON",
                      "num_records": len(addresses), "download": False},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            r.raise_for_status()
            records = r.json().get("records") or []

        by_street = {}
        for rec in records:
            street = rec.get("address") or rec.get("streetAddress") or ""
            if street:
                by_street[normalize_address(street)] = rec

        out: Dict[str, LienResult] = {}
        for addr in addresses:
            rec = by_street.get(addr.street_key)
            out[addr.street_key] = parse_lien_record(rec) if rec else LienResult()
        return out

def lien_client() -> LienSource:
    if settings.LIEN_PROVIDER == "http" and settings.LIEN_BASE_URL and settings.LIEN_API_KEY:
        return HttpLiens(settings.LIEN_BASE_URL, settings.LIEN_API_KEY, timeout=settings.HTTP_TIMEOUT_SECONDS)
    return MockLiens()
