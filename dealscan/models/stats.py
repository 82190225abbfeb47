from typing import Iterable

TRIM_FRACTION = 0.15
MIN_TRIM_SAMPLES = 5

def median(values: Iterable[float]) -> float:
    """Plain median; 0 for an empty sample."""
    s = sorted(values)
    if not s:
        return 0
    mid = len(s) // 2
    if len(s) % 2 == 0:
        return (s[mid - 1] + s[mid]) / 2
    return s[mid]

def trimmed_median(values: Iterable[float]) -> float:
    """
    Median after dropping floor(15% × n) samples from each end.
    Below 5 samples nothing is trimmed.
    """
    s = sorted(values)
    if len(s) < MIN_TRIM_SAMPLES:
        return median(s)
    trim = int(len(s) * TRIM_FRACTION)
    return median(s[trim:len(s) - trim])
