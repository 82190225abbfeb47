from typing import Literal
from pydantic import BaseModel, ConfigDict, Field

DistressType = Literal["none", "delinquent", "lien", "as-is", "pre-foreclosure"]

class SearchFilters(BaseModel):
    property_type: str | None = None
    distress_type: DistressType | None = None
    min_score: int | None = Field(default=None, ge=0, le=100)
    min_discount: float | None = Field(default=None, ge=0, le=50)

class BoundsIn(BaseModel):
    north: float
    south: float
    east: float
    west: float

class SearchRequest(BaseModel):
    # Optional here so a missing coordinate gets a 400 with a clear message
    latitude: float | None = None
    longitude: float | None = None
    radius: float | None = Field(default=None, gt=0, le=100)
    filters: SearchFilters | None = None
    bounds: BoundsIn | None = None

class Address(BaseModel):
    street: str
    city: str
    state: str
    postal_code: str

class Distress(BaseModel):
    is_delinquent: bool = False
    has_lien: bool = False
    is_as_is: bool = False
    is_pre_foreclosure: bool = False
    equity_percent: float | None = None
    price_drop_percent: float | None = None

class ListingOut(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    address: Address
    price: float
    property_type: str
    sqft: float | None = None
    days_on_market: int = 0
    estimated_value: float | None = None
    valuation_source: str | None = None
    valuation_confidence: str = "low"
    distress: Distress
    deal_score: int = Field(ge=0, le=100)
    enriched: bool = False
    saved: bool = False

class Geo(BaseModel):
    lat: float
    lng: float

class SearchResponse(BaseModel):
    results: list[ListingOut]
    area_median: float
    geo: Geo
    cached: bool = False
    etag: str | None = None

class PipelineRunRequest(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    radius: float | None = Field(default=None, gt=0, le=100)

class PipelineSummary(BaseModel):
    scraped: int
    enriched: int
    saved: int
    alerted: int = 0
