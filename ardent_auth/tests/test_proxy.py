"""Tests for the CAPI proxy: cache first, upstream on miss, errors passed through."""
import json
from datetime import timedelta

import pytest

from ardent_auth.errors import NotSupported, Unauthorized, UpstreamFailure
from ardent_auth.proxy import JSON_CONTENT_TYPE, TEXT_CONTENT_TYPE, CapiProxy
from fakes import CAPI, make_session


@pytest.fixture
def signed_in(token_store, clock):
    token_store.upsert(make_session("A1", clock() + timedelta(hours=2), access_token="T1"))


@pytest.fixture
def proxy(frontier, token_store, cache_store, clock):
    return CapiProxy(frontier, token_store, cache_store, now=clock)


def test_unknown_resource_touches_nothing(proxy, fake_frontier, cache_store):
    with pytest.raises(NotSupported) as exc_info:
        proxy.fetch("A1", "passwords")
    assert exc_info.value.status_code == 404
    assert exc_info.value.body() == {"error": "Unsupported CAPI endpoint"}
    assert fake_frontier.requests == []
    assert cache_store.count() == 0


def test_cache_hit_makes_no_upstream_call(proxy, cache_store, fake_frontier, signed_in):
    cache_store.set("A1", "market", b'{"id": 5}', JSON_CONTENT_TYPE)
    result = proxy.fetch("A1", "market")
    assert result.cached is True
    assert result.body == b'{"id": 5}'
    assert result.content_type == JSON_CONTENT_TYPE
    assert fake_frontier.requests == []


def test_cache_hit_needs_no_session(proxy, cache_store, fake_frontier):
    cache_store.set("A1", "profile", b"{}", JSON_CONTENT_TYPE)
    assert proxy.fetch("A1", "profile").cached is True


def test_miss_fetches_with_stored_token_and_caches(proxy, cache_store, fake_frontier, signed_in):
    fake_frontier.on("GET", f"{CAPI}/profile", json={"commander": {"name": "Jameson", "credits": 1000}})

    result = proxy.fetch("A1", "profile")

    assert result.cached is False
    assert json.loads(result.body) == {"commander": {"name": "Jameson", "credits": 1000}}
    (request,) = fake_frontier.calls("GET", f"{CAPI}/profile")
    assert request.headers["Authorization"] == "Bearer T1"
    assert cache_store.get("A1", "profile").payload == result.body

    again = proxy.fetch("A1", "profile")
    assert again.cached is True
    assert len(fake_frontier.calls("GET", f"{CAPI}/profile")) == 1


def test_miss_without_session_is_unauthorized(proxy, fake_frontier):
    with pytest.raises(Unauthorized):
        proxy.fetch("A1", "market")
    assert fake_frontier.requests == []


def test_upstream_status_is_passed_through(proxy, cache_store, fake_frontier, signed_in):
    fake_frontier.on("GET", f"{CAPI}/fleetcarrier", status=503, text="Service Unavailable")
    with pytest.raises(UpstreamFailure) as exc_info:
        proxy.fetch("A1", "fleetcarrier")
    assert exc_info.value.status_code == 503
    assert exc_info.value.body() == {"error": "Frontier API request failed", "status": 503}
    assert cache_store.get("A1", "fleetcarrier") is None


def test_upstream_failure_leaves_existing_cache_alone(proxy, cache_store, fake_frontier, signed_in, clock):
    stale = CapiProxy(proxy.frontier, proxy.token_store, cache_store, max_age_seconds=60, now=clock)
    cache_store.set("A1", "shipyard", b'{"old": true}', JSON_CONTENT_TYPE)
    clock.current = cache_store.get("A1", "shipyard").updated_at + timedelta(minutes=5)
    fake_frontier.on("GET", f"{CAPI}/shipyard", status=422)
    with pytest.raises(UpstreamFailure):
        stale.fetch("A1", "shipyard")
    assert cache_store.get("A1", "shipyard").payload == b'{"old": true}'


def test_stale_entry_is_refetched_when_max_age_set(frontier, token_store, cache_store, fake_frontier, signed_in, clock):
    proxy = CapiProxy(frontier, token_store, cache_store, max_age_seconds=60, now=clock)
    cache_store.set("A1", "communitygoals", b'{"goals": []}', JSON_CONTENT_TYPE)
    clock.current = cache_store.get("A1", "communitygoals").updated_at + timedelta(seconds=30)
    assert proxy.fetch("A1", "communitygoals").cached is True

    clock.advance(seconds=60)
    fake_frontier.on("GET", f"{CAPI}/communitygoals", json={"goals": [{"id": 7}]})
    result = proxy.fetch("A1", "communitygoals")
    assert result.cached is False
    assert json.loads(result.body) == {"goals": [{"id": 7}]}


def test_journal_is_text_and_cached(proxy, cache_store, fake_frontier, signed_in):
    lines = '{"event":"Fileheader"}\n{"event":"Location"}\n'
    fake_frontier.on("GET", f"{CAPI}/journal", text=lines)
    result = proxy.fetch("A1", "journal")
    assert result.content_type == TEXT_CONTENT_TYPE
    assert result.body == lines.encode("utf-8")
    assert cache_store.get("A1", "journal").content_type == TEXT_CONTENT_TYPE


def test_visitedstars_streams_gzip_uncached(proxy, cache_store, fake_frontier, signed_in):
    blob = b"\x1f\x8b\x08\x00fake-gzip"
    fake_frontier.on("GET", f"{CAPI}/visitedstars", content=blob)
    result = proxy.fetch("A1", "visitedstars")
    assert result.body == blob
    assert result.content_type == "application/gzip"
    assert cache_store.get("A1", "visitedstars") is None


def test_root_document_is_not_cached(proxy, cache_store, fake_frontier, signed_in):
    fake_frontier.on("GET", f"{CAPI}/", json={"commander": {}, "lastSystem": {"name": "Sol"}})
    result = proxy.fetch_root("A1")
    assert json.loads(result.body)["lastSystem"] == {"name": "Sol"}
    assert cache_store.count() == 0


def test_journal_day(proxy, cache_store, fake_frontier, signed_in):
    fake_frontier.on("GET", f"{CAPI}/journal/2026/01/02", text='{"event":"Docked"}\n')
    result = proxy.fetch_journal_day("A1", "2026", "01", "02")
    assert result.body == b'{"event":"Docked"}\n'
    assert result.content_type == TEXT_CONTENT_TYPE
    assert cache_store.count() == 0


def test_journal_day_rejects_non_numeric_parts(proxy, fake_frontier, signed_in):
    with pytest.raises(NotSupported):
        proxy.fetch_journal_day("A1", "2026", "..", "02")
    assert fake_frontier.requests == []


def test_purge_removes_every_cached_resource(proxy, cache_store):
    cache_store.set("A1", "market", b"{}", JSON_CONTENT_TYPE)
    cache_store.set("A1", "profile", b"{}", JSON_CONTENT_TYPE)
    assert proxy.purge("A1") == 2
    assert cache_store.get("A1", "market") is None
