import time

import pytest
import requests

from storefront.services.geo import Coordinate
from storefront.services.geocoding import AddressResolver


class StubResolver(AddressResolver):
    """Resolver whose HTTP call is replaced by a canned answer."""

    def __init__(self, answer=None, **kwargs):
        kwargs.setdefault("min_interval_seconds", 0)
        super().__init__(**kwargs)
        self.answer = answer
        self.queries = []

    def _request(self, freeform):
        self.queries.append(freeform)
        if isinstance(self.answer, Exception):
            raise self.answer
        return self.answer


async def test_first_match_is_returned():
    resolver = StubResolver([{"lat": "-23.5505", "lon": "-46.6333"}, {"lat": "0", "lon": "0"}])
    assert await resolver.resolve("Praça da Sé, São Paulo") == Coordinate(-23.5505, -46.6333)


async def test_results_are_cached_by_normalised_query():
    resolver = StubResolver([{"lat": "1.5", "lon": "2.5"}])
    first = await resolver.resolve("Rua A, 1, Campinas")
    second = await resolver.resolve("  rua a,  1, CAMPINAS ")
    assert first == second == Coordinate(1.5, 2.5)
    assert len(resolver.queries) == 1


async def test_no_match_is_none_and_cached():
    resolver = StubResolver([])
    assert await resolver.resolve("Nowhere street") is None
    assert await resolver.resolve("Nowhere street") is None
    assert len(resolver.queries) == 1


@pytest.mark.parametrize(
    "error",
    [requests.Timeout("slow"), requests.ConnectionError("down"), requests.HTTPError("503")],
)
async def test_http_failures_are_none_and_not_cached(error):
    resolver = StubResolver(error)
    assert await resolver.resolve("Rua B, 2") is None
    assert await resolver.resolve("Rua B, 2") is None
    assert len(resolver.queries) == 2


@pytest.mark.parametrize("payload", [[{"lat": "x", "lon": "1"}], [{"display_name": "?"}], [None]])
async def test_malformed_payload_is_none(payload):
    assert await StubResolver(payload).resolve("Rua C, 3") is None


async def test_slow_geocoder_times_out():
    class SlowResolver(StubResolver):
        def _request(self, freeform):
            time.sleep(0.5)
            return [{"lat": "1", "lon": "1"}]

    resolver = SlowResolver(timeout_seconds=0.05)
    started = time.monotonic()
    assert await resolver.resolve("Rua D, 4") is None
    assert time.monotonic() - started < 0.4


@pytest.mark.parametrize("query", ["", "   "])
async def test_blank_query_is_not_sent(query):
    resolver = StubResolver([{"lat": "1", "lon": "1"}])
    assert await resolver.resolve(query) is None
    assert resolver.queries == []


async def test_requests_are_spaced_out():
    resolver = StubResolver([{"lat": "1", "lon": "1"}], min_interval_seconds=0.2)
    started = time.monotonic()
    await resolver.resolve("Rua E, 1")
    await resolver.resolve("Rua E, 2")
    assert time.monotonic() - started >= 0.2


async def test_timeout_covers_waiting_for_the_rate_limit():
    resolver = StubResolver(
        [{"lat": "1", "lon": "1"}], min_interval_seconds=0.5, timeout_seconds=0.1
    )
    assert await resolver.resolve("Rua F, 1") == Coordinate(latitude=1.0, longitude=1.0)

    started = time.monotonic()
    assert await resolver.resolve("Rua F, 2") is None
    assert time.monotonic() - started < 0.4
    assert resolver.queries == ["Rua F, 1"]
