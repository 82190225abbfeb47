from .base import DelinquencySource, DelinquencyResult, Address
from ..core.utils import address_seed, seeded_uniforms
from ..core.config import settings
import httpx

class MockDelinquency(DelinquencySource):
    """
    Synthetic mortgage-distress data, stable per address.
    """
    async def lookup(self, address: Address) -> DelinquencyResult:
        seed = address_seed("delinquency", address.street_key)
        r = seeded_uniforms(seed, 4)
        return DelinquencyResult(
            is_delinquent=r[0] < 0.4,
            is_pre_foreclosure=r[0] < 0.2,
            equity_percent=round(r[1] * 100),
            fallback_market_value=180_000 + int(r[2] * 120_000),
            days_on_market=int(r[3] * 180),
        )

def _loan_flags(loan_status: str) -> tuple[bool, bool]:
    status = (loan_status or "").lower()
    delinquent = any(k in status for k in ("default", "delinqu", "forbear"))
    pre_foreclosure = "foreclos" in status
    return delinquent, pre_foreclosure

class HttpDelinquency(DelinquencySource):
    """
    Property-detail + sale-detail lookups against a property data API.
    There is no batch endpoint, so this is called once per listing.
    """
    def __init__(self, base_url: str, api_key: str, timeout: float = 15):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    async def lookup(self, address: Address) -> DelinquencyResult:
        params = {
            "address1": address.street,
            "address2": f"{address.city}, {address.state} {address.postal_code}",
        }
        headers = {"apikey": self.api_key, "Accept": "application/json"}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            prop_r = await client.get(f"{self.base_url}/property/detail", params=params, headers=headers)
            prop_r.raise_for_status()
            sale_r = await client.get(f"{self.base_url}/sale/detail", params=params, headers=headers)
            sale_r.raise_for_status()

        prop = (prop_r.json().get("property") or [{}])[0]
        sale = (sale_r.json().get("property") or [{}])[0]
        mortgage = prop.get("mortgage") or {}
        assessment = prop.get("assessment") or {}

        delinquent, pre_foreclosure = _loan_flags(mortgage.get("loanStatusCode"))

        # Equity: assessed value vs outstanding mortgage
        assessed = ((assessment.get("assessed") or {}).get("assdTtlValue")) or 0
        loan = ((mortgage.get("amount") or {}).get("loanAmt")) or 0
        equity = round((assessed - loan) / assessed * 100) if assessed > 0 else None

        return DelinquencyResult(
            is_delinquent=delinquent,
            is_pre_foreclosure=pre_foreclosure,
            equity_percent=equity,
            fallback_market_value=((sale.get("sale") or {}).get("amount") or {}).get("saleAmt"),
            days_on_market=None,
        )

def delinquency_client() -> DelinquencySource:
    if settings.DELINQUENCY_PROVIDER == "http" and settings.DELINQUENCY_BASE_URL and settings.DELINQUENCY_API_KEY:
        return HttpDelinquency(settings.DELINQUENCY_BASE_URL, settings.DELINQUENCY_API_KEY,
                               timeout=settings.HTTP_TIMEOUT_SECONDS)
    return MockDelinquency()
