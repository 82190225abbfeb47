"""HTTP surface: search, streaming, stored deals and manual pipeline runs."""

import json

import pytest
from fastapi.testclient import TestClient

from dealscan.core.cache import rate_cache
from dealscan.data.base import PointEstimate
from dealscan.main import create_app
from dealscan.routers.properties import pipeline_dep, store_dep

from conftest import make_listing, make_listings


@pytest.fixture
def client(build_pipeline, store, verify_hot_deal):
    rate_cache.clear()
    pipeline, source = build_pipeline([make_listings(6) + [make_listing(
        "1 Hot St", price=150_000, sqft=1000, days_on_market=90, is_delinquent=True, is_as_is=True,
    )]])
    app = create_app()
    app.dependency_overrides[pipeline_dep] = lambda: pipeline
    app.dependency_overrides[store_dep] = lambda: store
    with TestClient(app) as c:
        c.source = source
        yield c


@pytest.fixture
def verify_hot_deal(point_estimates):
    async def lookup(address):
        return PointEstimate(point_estimate=300_000) if address.street == "1 Hot St" else None

    point_estimates.lookup.side_effect = lookup


def parse_sse(text):
    events = []
    for block in text.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((lines["event"], json.loads(lines["data"])))
    return events


def test_health(client):
    assert client.get("/v1/health").json() == {"status": "ok"}


def test_search_returns_scored_results_with_etag(client):
    r = client.post("/v1/properties/search", json={"latitude": 25.76, "longitude": -80.19, "radius": 10})
    assert r.status_code == 200
    body = r.json()
    assert body["cached"] is False
    assert body["etag"] == r.headers["ETag"]
    assert body["results"][0]["address"]["street"] == "1 Hot St"
    assert body["results"][0]["saved"] is True
    assert "X-Request-Id" in r.headers


def test_repeat_search_is_cached_and_conditional_get_is_304(client):
    req = {"latitude": 25.76, "longitude": -80.19, "radius": 10}
    first = client.post("/v1/properties/search", json=req)
    second = client.post("/v1/properties/search", json=req)
    assert second.json()["cached"] is True
    assert second.headers["ETag"] == first.headers["ETag"]
    assert client.source.calls == 1

    r = client.post("/v1/properties/search", json=req, headers={"If-None-Match": first.headers["ETag"]})
    assert r.status_code == 304


def test_search_without_coordinates_is_400(client):
    r = client.post("/v1/properties/search", json={"latitude": 25.76})
    assert r.status_code == 400
    assert client.source.calls == 0


def test_search_rejects_unknown_distress_type(client):
    r = client.post("/v1/properties/search", json={
        "latitude": 25.76, "longitude": -80.19, "filters": {"distress_type": "bankrupt"},
    })
    assert r.status_code == 422


def test_stream_emits_progress_then_results(client):
    r = client.get("/v1/properties/search/stream", params={
        "latitude": 25.76, "longitude": -80.19, "radius": 10,
        "filters": json.dumps({"min_score": 0}),
    })
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")

    events = parse_sse(r.text)
    kinds = [kind for kind, _ in events]
    assert kinds[-1] == "results"
    assert set(kinds[:-1]) == {"progress"}
    percents = [data["percent"] for kind, data in events if kind == "progress"]
    assert percents == sorted(percents) and percents[-1] == 100
    assert events[-1][1]["results"][0]["deal_score"] == 90


def test_stream_reports_errors_as_events(client):
    r = client.get("/v1/properties/search/stream", params={"latitude": 25.76})
    events = parse_sse(r.text)
    assert [kind for kind, _ in events] == ["error"]


def test_stream_rejects_malformed_filters(client):
    r = client.get("/v1/properties/search/stream", params={
        "latitude": 25.76, "longitude": -80.19, "filters": "{not json",
    })
    kind, data = parse_sse(r.text)[0]
    assert kind == "error" and "invalid filters" in data["error"]


@pytest.mark.parametrize("filters", [
    {"min_score": 150},
    {"min_score": -1},
    {"min_discount": 75},
    {"distress_type": "bankrupt"},
])
def test_stream_applies_the_same_filter_ranges_as_post(client, filters):
    r = client.get("/v1/properties/search/stream", params={
        "latitude": 25.76, "longitude": -80.19, "filters": json.dumps(filters),
    })
    events = parse_sse(r.text)
    assert [kind for kind, _ in events] == ["error"]
    assert "invalid filters" in events[0][1]["error"]
    assert client.source.calls == 0


def test_saved_deals_can_be_listed_and_fetched(client):
    client.post("/v1/properties/search", json={"latitude": 25.76, "longitude": -80.19})

    deals = client.get("/v1/properties", params={"min_score": 80}).json()
    assert [d["address"]["street"] for d in deals] == ["1 Hot St"]
    assert client.get("/v1/properties", params={"distress_type": "lien"}).json() == []

    one = client.get(f"/v1/properties/{deals[0]['id']}")
    assert one.status_code == 200
    assert one.json()["deal_score"] == 90


def test_unknown_listing_is_404(client):
    assert client.get("/v1/properties/does-not-exist").status_code == 404


def test_manual_pipeline_run(client, notifier):
    r = client.post("/v1/properties/pipeline", json={"latitude": 25.76, "longitude": -80.19, "radius": 5})
    assert r.status_code == 200
    assert r.json() == {"scraped": 7, "enriched": 0, "saved": 1, "alerted": 1}
    notifier.notify.assert_awaited_once()


def test_manual_pipeline_rejects_bad_coordinates(client):
    r = client.post("/v1/properties/pipeline", json={"latitude": 123.0, "longitude": -80.19})
    assert r.status_code == 400


def test_metrics_endpoint(client):
    client.get("/v1/health")
    r = client.get("/v1/metrics")
    assert r.status_code == 200
    assert b"http_requests_total" in r.content
