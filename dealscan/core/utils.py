import hashlib
import json
from typing import Any

FNV_OFFSET = 0x811C9DC5
FNV_PRIME = 0x01000193
MASK32 = 0xFFFFFFFF

def normalize_address(street: str | None) -> str:
    """
    Street key shared by the store, the lien batch matcher and mock seeds:
    lowercase, single-spaced, without trailing punctuation.
    """
    return " ".join((street or "").lower().replace(",", " ").split()).rstrip(".")

def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a; stable across processes, unlike hash()."""
    h = FNV_OFFSET
    for byte in text.encode("utf-8"):
        h = ((h ^ byte) * FNV_PRIME) & MASK32
    return h

def address_seed(namespace: str, street_key: str) -> int:
    """Seed for one mock provider's view of one address."""
    return fnv1a_32(f"{namespace}:{street_key}")

def seeded_uniforms(seed: int, n: int = 1) -> list[float]:
    """
    n floats in [0, 1) from a Mulberry32-style mixer. Pure function of the
    seed, so mock providers need no RNG state.
    """
    state = (seed + 0x6D2B79F5) & MASK32
    values = []
    for _ in range(n):
        state = (state ^ (state >> 15)) * (state | 1) & MASK32
        state ^= state + ((state ^ (state >> 7)) * (state | 61) & MASK32)
        values.append(((state ^ (state >> 14)) & MASK32) / 2**32)
    return values

def money_band(value: int, seed: int, min_spread: float = 0.05, max_spread: float = 0.12) -> tuple[int, int]:
    """Low/high range around a value; the spread is seeded so it is stable per address."""
    spread = min_spread + seeded_uniforms(seed + 1)[0] * (max_spread - min_spread)
    return round(value * (1 - spread)), round(value * (1 + spread))

def canonical_json(value: Any) -> str:
    """Key-sorted, compact JSON; equal values always give equal strings."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"))

def payload_etag(payload: Any) -> str:
    """Weak ETag over the canonical JSON form of a response payload."""
    digest = hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()
    return f'W/"{digest[:24]}"'
