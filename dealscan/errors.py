class DealScanError(Exception):
    """Base class for pipeline errors."""

class InvalidSearchError(DealScanError):
    """
    A search request that cannot run: latitude or longitude missing or out
    of range, or an unknown distress filter. Raised before any provider call.
    """

class UpstreamError(DealScanError):
    """
    A provider lookup failed. Enrichment tiers catch it per listing and keep
    the listing's previous values.
    """
    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")

class PipelineError(DealScanError):
    """The synchronous search ended with an error event."""
