"""REST API over the catalog, exercised through FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from reelkeeper.web.api import create_app, group_seasons


@pytest.fixture
def client(store):
    return TestClient(create_app(store))


def _seed(store):
    store.create_movie("Heat", "http://i/h", "http://s/h", added_by=1)
    store.create_movie("Inception", "http://i/i", "http://s/i", added_by=1)
    series_id = store.create_series("Dark", "http://i/d", added_by=1)
    store.add_episode(series_id, 2, 1, "Beginnings", "http://s/2-1", added_by=1)
    store.add_episode(series_id, 1, 2, "Lies", "http://s/1-2", added_by=1)
    store.add_episode(series_id, 1, 1, "Secrets", "http://s/1-1", added_by=1)
    store.create_movie("The Heat", "http://i/t", "http://s/t", added_by=1)
    return series_id


def test_list_movies_newest_first(client, store):
    _seed(store)
    body = client.get("/api/movies").json()
    assert [m["name"] for m in body["items"]] == ["The Heat", "Inception", "Heat"]
    assert body["total"] == 3
    assert body["page"] == 1


def test_movies_pagination(client, store):
    _seed(store)
    body = client.get("/api/movies", params={"page": 2, "limit": 2}).json()
    assert [m["name"] for m in body["items"]] == ["Heat"]
    assert body["limit"] == 2
    assert body["total"] == 3


def test_limit_is_clamped(client, store):
    _seed(store)
    assert client.get("/api/movies", params={"limit": 5000}).json()["limit"] == 100


def test_search_is_case_insensitive(client, store):
    _seed(store)
    body = client.get("/api/movies", params={"search": "heat"}).json()
    assert sorted(m["name"] for m in body["items"]) == ["Heat", "The Heat"]
    assert body["total"] == 2


@pytest.mark.parametrize("params", [{"page": 0}, {"limit": 0}, {"page": "x"}])
def test_bad_paging_is_400(client, params):
    resp = client.get("/api/movies", params=params)
    assert resp.status_code == 400
    assert "error" in resp.json()


def test_series_detail_nests_seasons(client, store):
    series_id = _seed(store)
    resp = client.get(f"/api/series/{series_id}")
    assert resp.status_code == 200
    body = resp.json()
    assert body["name"] == "Dark"
    assert [s["seasonNumber"] for s in body["seasons"]] == [1, 2]
    assert [e["episodeNumber"] for e in body["seasons"][0]["episodes"]] == [1, 2]
    assert client.get(f"/api/series/{series_id}").json() == body


def test_series_detail_not_found(client):
    resp = client.get("/api/series/does-not-exist")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Series not found"}


def test_media_merges_kinds(client, store):
    _seed(store)
    body = client.get("/api/media", params={"limit": 2}).json()
    assert [(i["kind"], i["name"]) for i in body["items"]] == [("movie", "The Heat"), ("series", "Dark")]
    assert body["total"] == 4


def test_stats(client, store):
    _seed(store)
    assert client.get("/api/stats").json() == {"movies": 3, "series": 1, "episodes": 3}


def test_store_failure_is_500(client, store):
    store.fail_reads = True
    resp = client.get("/api/movies")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to query catalog"}


def test_health(client, store):
    assert client.get("/health").json()["status"] == "OK"
    store.fail_reads = True
    resp = client.get("/health")
    assert resp.status_code == 503
    assert resp.json()["status"] == "degraded"


def test_unknown_route_uses_error_body(client):
    resp = client.get("/api/nothing")
    assert resp.status_code == 404
    assert "error" in resp.json()


def test_metrics_exposed(client):
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "reelkeeper_" in resp.text


def test_group_seasons_keeps_empty_registered_season():
    series = {"seasons": [3]}
    episodes = [{"seasonNumber": 1, "episodeNumber": 1}]
    grouped = group_seasons(series, episodes)
    assert [(g["seasonNumber"], len(g["episodes"])) for g in grouped] == [(1, 1), (3, 0)]
