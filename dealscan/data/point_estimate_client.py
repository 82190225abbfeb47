from typing import Optional
from .base import PointEstimateSource, PointEstimate, Address
from ..core.utils import address_seed, seeded_uniforms
from ..core.config import settings
from ..errors import UpstreamError
import httpx

class MockPointEstimates(PointEstimateSource):
    """
    Stable per-address point estimate plus a rent estimate (~0.7% of value).
    """
    async def lookup(self, address: Address) -> Optional[PointEstimate]:
        seed = address_seed("point", address.street_key)
        base = 180_000 + int(seeded_uniforms(seed, 1)[0] * 150_000)
        return PointEstimate(point_estimate=base, rent_estimate=round(base * 0.007))

class HttpPointEstimates(PointEstimateSource):
    """
    Per-address estimate lookup. The provider answers 200 with a status
    message, so a missing payload is reported as None rather than raised.
    """
    def __init__(self, base_url: str, api_key: str, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    async def lookup(self, address: Address) -> Optional[PointEstimate]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            r = await client.get(
                f"{self.base_url}/byaddress",
                params={"propertyaddress": address.full},
                headers={"x-api-key": self.api_key},
            )
            r.raise_for_status()
            d = r.json()
        if not isinstance(d, dict):
            raise UpstreamError("point-estimate", f"unexpected payload for {address.street!r}")
        if d.get("message") not in (None, "200: Success"):
            return None
        if not d.get("zestimate"):
            return None
        return PointEstimate(point_estimate=d["zestimate"], rent_estimate=d.get("rentZestimate"))

def point_estimate_client() -> PointEstimateSource:
    if (settings.POINT_ESTIMATE_PROVIDER == "http" and settings.POINT_ESTIMATE_BASE_URL
            and settings.POINT_ESTIMATE_API_KEY):
        return HttpPointEstimates(settings.POINT_ESTIMATE_BASE_URL, settings.POINT_ESTIMATE_API_KEY,
                                  timeout=settings.HTTP_TIMEOUT_SECONDS)
    return MockPointEstimates()
