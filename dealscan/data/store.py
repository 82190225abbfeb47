import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from .base import ListingStore, ListingRecord
from ..core.config import settings

try:
    import redis.asyncio as aioredis  # Optional dependency
except Exception:
    aioredis = None

def listing_id(listing: ListingRecord) -> str:
    street, postal_code = listing.address.natural_key
    return hashlib.sha1(f"{street}|{postal_code}".encode("utf-8")).hexdigest()[:16]

def _matches(doc: Dict[str, Any], min_score: Optional[int], min_discount: Optional[float],
             distress_type: Optional[str]) -> bool:
    if min_score is not None and doc.get("deal_score", 0) < min_score:
        return False
    if min_discount:
        est, price = doc.get("estimated_value"), doc.get("price")
        if not est or not price or price > est * (1 - min_discount / 100.0):
            return False
    flags = doc.get("distress") or {}
    flag_for = {
        "delinquent": "is_delinquent",
        "lien": "has_lien",
        "as-is": "is_as_is",
        "pre-foreclosure": "is_pre_foreclosure",
    }
    if distress_type in flag_for and not flags.get(flag_for[distress_type]):
        return False
    return True

def _merge(existing: Optional[Dict[str, Any]], listing: ListingRecord) -> Dict[str, Any]:
    now = datetime.now(timezone.utc).isoformat()
    doc = listing.to_dict()
    doc["id"] = listing_id(listing)
    doc["created_at"] = (existing or {}).get("created_at", now)
    doc["updated_at"] = now
    doc["alert_sent"] = bool((existing or {}).get("alert_sent"))
    return doc

class InMemoryStore(ListingStore):
    """
    Process-local store keyed by street + postal code. Good for dev and tests.
    """
    def __init__(self):
        self._docs: Dict[str, Dict[str, Any]] = {}

    async def upsert(self, listing: ListingRecord) -> Dict[str, Any]:
        doc = _merge(self._docs.get(listing_id(listing)), listing)
        self._docs[doc["id"]] = doc
        return dict(doc)

    async def find(self, min_score: Optional[int] = None, min_discount: Optional[float] = None,
                   distress_type: Optional[str] = None) -> List[Dict[str, Any]]:
        docs = [dict(d) for d in self._docs.values() if _matches(d, min_score, min_discount, distress_type)]
        docs.sort(key=lambda d: d.get("deal_score", 0), reverse=True)
        return docs

    async def get(self, listing_id: str) -> Optional[Dict[str, Any]]:
        doc = self._docs.get(listing_id)
        return dict(doc) if doc else None

    async def mark_alerted(self, listing_id: str) -> None:
        if listing_id in self._docs:
            self._docs[listing_id]["alert_sent"] = True

class RedisStore(ListingStore):
    """
    One JSON document per listing under `listing:{id}`, plus an index set.
    """
    INDEX_KEY = "listing:ids"

    def __init__(self, url: str):
        self.redis = aioredis.Redis.from_url(url, decode_responses=True)

    async def _load(self, listing_id: str) -> Optional[Dict[str, Any]]:
        raw = await self.redis.get(f"listing:{listing_id}")
        return json.loads(raw) if raw else None

    async def upsert(self, listing: ListingRecord) -> Dict[str, Any]:
        doc = _merge(await self._load(listing_id(listing)), listing)
        await self.redis.set(f"listing:{doc['id']}", json.dumps(doc))
        await self.redis.sadd(self.INDEX_KEY, doc["id"])
        return doc

    async def find(self, min_score: Optional[int] = None, min_discount: Optional[float] = None,
                   distress_type: Optional[str] = None) -> List[Dict[str, Any]]:
        docs = []
        for lid in await self.redis.smembers(self.INDEX_KEY):
            doc = await self._load(lid)
            if doc and _matches(doc, min_score, min_discount, distress_type):
                docs.append(doc)
        docs.sort(key=lambda d: d.get("deal_score", 0), reverse=True)
        return docs

    async def get(self, listing_id: str) -> Optional[Dict[str, Any]]:
        return await self._load(listing_id)

    async def mark_alerted(self, listing_id: str) -> None:
        doc = await self._load(listing_id)
        if doc:
            doc["alert_sent"] = True
            await self.redis.set(f"listing:{listing_id}", json.dumps(doc))

def listing_store() -> ListingStore:
    if settings.STORE_PROVIDER == "redis" and aioredis is not None:
        return RedisStore(settings.REDIS_URL)
    return InMemoryStore()

# Shared by the API and the scheduler so both see the same saved deals
store = listing_store()
