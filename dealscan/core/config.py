import os
from pydantic import BaseModel

class Settings(BaseModel):
    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Search cache (5 minute TTL, bounded LRU)
    SEARCH_CACHE_TTL_SECONDS: int = int(os.getenv("SEARCH_CACHE_TTL_SECONDS", "300"))
    SEARCH_CACHE_MAXSIZE: int = int(os.getenv("SEARCH_CACHE_MAXSIZE", "256"))

    # Data providers: mock | http
    LISTINGS_PROVIDER: str = os.getenv("LISTINGS_PROVIDER", "mock")
    LISTINGS_BASE_URL: str | None = os.getenv("LISTINGS_BASE_URL")
    LISTINGS_API_KEY: str | None = os.getenv("LISTINGS_API_KEY")
    DELINQUENCY_PROVIDER: str = os.getenv("DELINQUENCY_PROVIDER", "mock")
    DELINQUENCY_BASE_URL: str | None = os.getenv("DELINQUENCY_BASE_URL")
    DELINQUENCY_API_KEY: str | None = os.getenv("DELINQUENCY_API_KEY")
    LIEN_PROVIDER: str = os.getenv("LIEN_PROVIDER", "mock")
    LIEN_BASE_URL: str | None = os.getenv("LIEN_BASE_URL")
    LIEN_API_KEY: str | None = os.getenv("LIEN_API_KEY")
    AVM_PROVIDER: str = os.getenv("AVM_PROVIDER", "mock")
    AVM_BASE_URL: str | None = os.getenv("AVM_BASE_URL")
    AVM_API_KEY: str | None = os.getenv("AVM_API_KEY")
    POINT_ESTIMATE_PROVIDER: str = os.getenv("POINT_ESTIMATE_PROVIDER", "mock")
    POINT_ESTIMATE_BASE_URL: str | None = os.getenv("POINT_ESTIMATE_BASE_URL")
    POINT_ESTIMATE_API_KEY: str | None = os.getenv("POINT_ESTIMATE_API_KEY")
    HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "15"))

    # Search paging
    DEFAULT_RADIUS_MILES: float = float(os.getenv("DEFAULT_RADIUS_MILES", "10"))
    MAX_PAGES: int = int(os.getenv("MAX_PAGES", "3"))
    MIN_RESULTS: int = int(os.getenv("MIN_RESULTS", "20"))

    # Enrichment tiers
    TIER1_BUDGET: int = int(os.getenv("TIER1_BUDGET", "15"))   # distress/lien check
    TIER2_BUDGET: int = int(os.getenv("TIER2_BUDGET", "20"))   # point-estimate refinement
    TIER3_BUDGET: int = int(os.getenv("TIER3_BUDGET", "2"))    # AVM validation
    TIER3_MIN_SCORE: int = int(os.getenv("TIER3_MIN_SCORE", "70"))
    TIER3_PRIOR_WEIGHT: float = float(os.getenv("TIER3_PRIOR_WEIGHT", "0.6"))

    # Persistence & alerts
    SAVE_MIN_SCORE: int = int(os.getenv("SAVE_MIN_SCORE", "50"))
    HOT_DEAL_SCORE: int = int(os.getenv("HOT_DEAL_SCORE", "80"))
    STORE_PROVIDER: str = os.getenv("STORE_PROVIDER", "memory")    # memory | redis
    NOTIFIER_PROVIDER: str = os.getenv("NOTIFIER_PROVIDER", "log")  # log | webhook
    NOTIFY_WEBHOOK_URL: str | None = os.getenv("NOTIFY_WEBHOOK_URL")

    # Scheduled pipeline (default location: Miami, FL)
    SCHEDULER_ENABLED: bool = os.getenv("SCHEDULER_ENABLED", "false").lower() == "true"
    PIPELINE_INTERVAL_MINUTES: int = int(os.getenv("PIPELINE_INTERVAL_MINUTES", "30"))
    DEFAULT_LAT: float = float(os.getenv("DEFAULT_LAT", "25.7617"))
    DEFAULT_LNG: float = float(os.getenv("DEFAULT_LNG", "-80.1918"))

    # Security
    API_KEY: str | None = os.getenv("API_KEY")
    RATE_LIMIT_RPM: int = int(os.getenv("RATE_LIMIT_RPM", "60"))

    # CORS
    ALLOW_ORIGINS: str = os.getenv("ALLOW_ORIGINS", "*")

    # Cache
    USE_REDIS: bool = os.getenv("USE_REDIS", "false").lower() == "true"
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Metrics
    PROMETHEUS_ENABLED: bool = os.getenv("PROMETHEUS_ENABLED", "true").lower() == "true"

settings = Settings()
