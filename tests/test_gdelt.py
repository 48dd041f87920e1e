"""
Tests for GdeltSource: URL building, normalization and the end-to-end flows.
"""

import asyncio
import time

import pytest

from gateway.datasource import Article, GdeltMode, GdeltSource
from gateway.datasource.gdelt import normalize_articles
from gateway.settings import DEV_PROFILE

from tests.conftest import ARTICLES_PAYLOAD, Upstream, make_gateway


class TestBuildUrl:
    def test_query_is_component_encoded(self, upstream):
        gdelt = GdeltSource(make_gateway(upstream))

        url = gdelt.build_url('"climate change" sourcecountry:US', max_records=50, timespan="24h")

        assert url == (
            "https://api.gdeltproject.org/api/v2/doc/doc"
            "?query=%22climate%20change%22%20sourcecountry%3AUS"
            "&mode=ArtList&maxrecords=50&timespan=24h&format=json"
        )

    def test_mode_enum_and_string(self, upstream):
        gdelt = GdeltSource(make_gateway(upstream))

        assert "mode=TimelineTone" in gdelt.build_url("x", mode=GdeltMode.TIMELINE_TONE)
        assert "mode=ToneChart" in gdelt.build_url("x", mode="ToneChart")

    def test_custom_base_url(self, upstream):
        gdelt = GdeltSource(make_gateway(upstream), base_url="http://mirror/doc")
        assert gdelt.build_url("x").startswith("http://mirror/doc?query=x&")


class TestNormalization:
    def test_maps_raw_fields(self):
        [article] = normalize_articles(ARTICLES_PAYLOAD)

        assert article == Article(
            title="Strong earthquake hits coast",
            url="https://example.com/quake",
            source="example.com",
            date="20240101T120000Z",
            source_country="Japan",
            language="English",
            image="https://example.com/quake.jpg",
        )
        assert article.to_dict()["sourceCountry"] == "Japan"

    def test_missing_fields_become_empty_strings(self):
        [article] = normalize_articles({"articles": [{"title": "Only a title", "domain": None}]})

        assert article.title == "Only a title"
        assert article.source == ""
        assert article.image == ""

    def test_malformed_payloads(self):
        assert normalize_articles({}) == []
        assert normalize_articles([]) == []
        assert normalize_articles({"articles": "nope"}) == []
        assert len(normalize_articles({"articles": [{"title": "a"}, "junk"]})) == 1


class TestFetch:
    @pytest.mark.asyncio
    async def test_artlist_mode_is_case_insensitive(self, upstream):
        async with make_gateway(upstream) as gateway:
            articles = await GdeltSource(gateway).fetch("earthquake", mode="artlist")

            assert len(articles) == 1
            assert isinstance(articles[0], Article)

    @pytest.mark.asyncio
    async def test_other_modes_pass_through(self):
        timeline = {"timeline": [{"series": "Average Tone", "data": [{"value": -2.1}]}]}
        upstream = Upstream(body=timeline)
        async with make_gateway(upstream) as gateway:
            gdelt = GdeltSource(gateway)

            assert await gdelt.fetch_tone("sanctions") == timeline
            assert "mode=TimelineTone" in upstream.calls[0]

            await gdelt.fetch_count("sanctions")
            assert "mode=TimelineVolRaw" in upstream.calls[1]

    @pytest.mark.asyncio
    async def test_failures_degrade_per_mode(self):
        upstream = Upstream(status=500, body="error")
        async with make_gateway(upstream) as gateway:
            gdelt = GdeltSource(gateway)

            assert await gdelt.fetch("earthquake", caller="disasters") == []
            assert await gdelt.fetch_tone("earthquake", caller="narrative") == {}
            assert await gdelt.fetch_raw("https://api.gdeltproject.org/x", caller="raw") == {}

    @pytest.mark.asyncio
    async def test_fetch_raw_returns_payload(self, upstream):
        async with make_gateway(upstream) as gateway:
            gdelt = GdeltSource(gateway)
            assert await gdelt.fetch_raw("https://api.gdeltproject.org/x") == ARTICLES_PAYLOAD

    @pytest.mark.asyncio
    async def test_stats(self, upstream):
        async with make_gateway(upstream) as gateway:
            gdelt = GdeltSource(gateway)
            await gdelt.fetch("earthquake")

            assert gdelt.get_stats() == {
                "in_flight": 0,
                "queued": 0,
                "circuit_open": False,
                "consecutive_failures": 0,
                "cache_size": 1,
            }


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_five_simultaneous_callers_one_upstream_call(self):
        upstream = Upstream(delay=0.05)
        async with make_gateway(upstream) as gateway:
            gdelt = GdeltSource(gateway)

            results = await asyncio.gather(
                *(
                    gdelt.fetch("earthquake", mode=GdeltMode.ARTLIST, caller=f"svc{i}")
                    for i in range(5)
                )
            )

            assert len(upstream.calls) == 1
            assert all(r == results[0] for r in results)
            assert results[0][0].title == "Strong earthquake hits coast"

    @pytest.mark.asyncio
    async def test_default_threshold_of_429s_opens_breaker(self):
        threshold = DEV_PROFILE["circuit_threshold"]
        upstream = Upstream(status=429, body={})
        async with make_gateway(
            upstream,
            circuit_threshold=threshold,
            retry_max=2,
            retry_base_ms=1,
            timeout_ms=5000,
        ) as gateway:
            gdelt = GdeltSource(gateway)
            for i in range(3):
                assert await gdelt.fetch(f"query {i}") == []

            assert len(upstream.calls) == threshold == 8
            assert gateway.get_stats().circuit_open

            started = time.monotonic()
            result = await gateway.fetch(gdelt.build_url("query 9"))

            assert result == {"articles": []}
            assert time.monotonic() - started < 0.5
            assert len(upstream.calls) == 8
