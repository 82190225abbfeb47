import logging
from .base import Notifier, HotDealEvent
from ..core.config import settings
import httpx

logger = logging.getLogger(__name__)

_FLAG_LABELS = [
    ("is_delinquent", "Mortgage Delinquent"),
    ("is_pre_foreclosure", "Pre-Foreclosure"),
    ("has_lien", "Lien"),
    ("is_as_is", "As-Is / Cash Only"),
]

def format_deal_alert(event: HotDealEvent) -> str:
    """Plain-text alert body shared by every notifier."""
    d = event.listing
    addr = d.get("address") or {}
    full_address = f"{addr.get('street')}, {addr.get('city')}, {addr.get('state')} {addr.get('postal_code')}"
    if event.discount_percent is not None:
        discount_text = f"{round(event.discount_percent)}% under market"
    else:
        discount_text = "below market value"

    flags = d.get("distress") or {}
    distress = [label for key, label in _FLAG_LABELS if flags.get(key)]
    distress_text = ", ".join(distress) if distress else "None confirmed"

    sqft = f"{int(d['sqft'])} sqft | " if d.get("sqft") else ""
    est = d.get("estimated_value")
    return "\n".join([
        f"DEAL ALERT: {full_address} is {discount_text}.",
        f"Price: ${d.get('price', 0):,.0f} | Market: ${est:,.0f}" if est else f"Price: ${d.get('price', 0):,.0f}",
        f"Deal Score: {event.deal_score}/100",
        f"Distress: {distress_text}",
        f"{sqft}{d.get('days_on_market', 0)} days on market",
        d.get("listing_url") or "No link available",
    ])

class LogNotifier(Notifier):
    """
    Used when no delivery channel is configured: the alert goes to the log.
    """
    async def notify(self, event: HotDealEvent) -> bool:
        logger.info("Hot deal alert (not delivered):\n%s", format_deal_alert(event))
        return False

class WebhookNotifier(Notifier):
    """
    POSTs the alert text to a chat/webhook endpoint.
    """
    def __init__(self, url: str, timeout: float = 10):
        self.url = url
        self.timeout = timeout

    async def notify(self, event: HotDealEvent) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.post(self.url, json={
                    "text": format_deal_alert(event),
                    "listing_id": event.listing_id,
                    "deal_score": event.deal_score,
                })
                r.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Alert delivery failed for %s: %s", event.listing_id, exc)
            return False
        logger.info("Alert delivered for %s (score %s)", event.listing_id, event.deal_score)
        return True

def notifier_client() -> Notifier:
    if settings.NOTIFIER_PROVIDER == "webhook" and settings.NOTIFY_WEBHOOK_URL:
        return WebhookNotifier(settings.NOTIFY_WEBHOOK_URL)
    return LogNotifier()
