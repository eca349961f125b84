import asyncio

import httpx

from reality_check.config import DEFAULT_SEARXNG_ENDPOINTS
from reality_check.endpoint_pool import EndpointPool
from reality_check.searxng_client import (
    SearchGateway,
    categorize_news,
    normalize_results,
    word_overlap,
)


def searx_payload(*items, total=None):
    return {"results": list(items), "number_of_results": total or 0, "suggestions": ["more"]}


async def test_failed_endpoint_rotates_to_next(make_client):
    seen = []

    def handler(request):
        seen.append(request.url.host)
        if request.url.host == "a.example":
            return httpx.Response(502)
        return httpx.Response(
            200,
            json=searx_payload({"title": "T", "content": "C", "url": "https://x.org/1", "score": 2.5}),
        )

    pool = EndpointPool(["https://a.example", "https://b.example"])
    gw = SearchGateway(pool, make_client(handler))
    found = await gw.search("solar storm")

    assert seen == ["a.example", "b.example"]
    assert found.source == "searxng"
    assert found.instance == "https://b.example"
    assert found.total_results == 1
    assert found.results[0].relevance == 1.0
    assert found.suggestions == ["more"]


async def test_concurrent_searches_each_reach_healthy_endpoint(make_client):
    tried = []

    async def handler(request):
        tried.append(request.url.host)
        await asyncio.sleep(0)
        if request.url.host == "bad.example":
            return httpx.Response(503)
        return httpx.Response(200, json=searx_payload({"title": "T", "content": "C", "url": "https://x.org/1"}))

    pool = EndpointPool(["https://bad.example", "https://good.example"])
    gw = SearchGateway(pool, make_client(handler))
    first, second = await asyncio.gather(gw.search("alpha"), gw.search("beta"))

    assert first.source == "searxng"
    assert second.source == "searxng"
    assert tried.count("bad.example") == 1
    assert tried.count("good.example") == 2


async def test_request_carries_query_and_categories(make_client):
    captured = {}

    def handler(request):
        captured.update(dict(request.url.params))
        return httpx.Response(200, json=searx_payload())

    gw = SearchGateway(EndpointPool(["https://a.example"]), make_client(handler), engines="bing")
    await gw.search("moon landing", ["general", "news"])

    assert captured["q"] == "moon landing"
    assert captured["format"] == "json"
    assert captured["categories"] == "general,news"
    assert captured["engines"] == "bing"


async def test_all_endpoints_failing_returns_mock(make_client):
    calls = []

    def handler(request):
        calls.append(request.url.host)
        raise httpx.ConnectError("down", request=request)

    pool = EndpointPool(DEFAULT_SEARXNG_ENDPOINTS)
    gw = SearchGateway(pool, make_client(handler))
    found = await gw.search("anything")

    assert len(calls) == 5
    assert len(set(calls)) == 5
    assert found.source == "mock"
    assert found.total_results >= 1
    assert found.results[0].title == "Latest developments in anything"


async def test_garbage_body_counts_as_failure(make_client):
    def handler(request):
        if request.url.host == "a.example":
            return httpx.Response(200, text="<html>rate limited</html>")
        return httpx.Response(200, json=["not", "an", "object"])

    gw = SearchGateway(EndpointPool(["https://a.example", "https://b.example"]), make_client(handler))
    found = await gw.search("x")
    assert found.source == "mock"


def test_normalize_results_shapes():
    data = {
        "results": [
            {"title": "No url"},
            {"title": "Only title", "url": "https://a.org"},
            {"title": "T", "snippet": "S", "link": "https://b.org", "publishedDate": "2024-01-02", "score": -3},
            "junk",
        ]
    }
    out = normalize_results(data)
    assert [r.url for r in out] == ["https://a.org", "https://b.org"]
    assert out[0].content == "Only title"
    assert out[0].relevance is None
    assert out[1].content == "S"
    assert out[1].published_date == "2024-01-02"
    assert out[1].relevance == 0.0


async def test_search_news_keeps_dated_or_news_urls(make_client):
    def handler(request):
        return httpx.Response(
            200,
            json=searx_payload(
                {"title": "AI chip", "content": "new software", "url": "https://site.com/a", "publishedDate": "2024-05-01"},
                {"title": "Evergreen", "content": "undated", "url": "https://site.com/b"},
                {"title": "Vote", "content": "election day", "url": "https://news.example.com/c"},
            ),
        )

    gw = SearchGateway(EndpointPool(["https://a.example"]), make_client(handler))
    articles = await gw.search_news("chips")

    assert [a.url for a in articles] == ["https://site.com/a", "https://news.example.com/c"]
    assert articles[0].source_name == "site.com (technology)"
    assert articles[1].source_name == "news.example.com (politics)"


async def test_fact_check_results_scored_by_overlap(make_client):
    captured = {}

    def handler(request):
        captured["q"] = request.url.params["q"]
        return httpx.Response(
            200,
            json=searx_payload({"title": "Is the sky green?", "content": "No.", "url": "https://www.snopes.com/x"}),
        )

    gw = SearchGateway(EndpointPool(["https://a.example"]), make_client(handler))
    hits = await gw.search_fact_checks("sky green")

    assert "site:snopes.com" in captured["q"]
    assert hits[0]["source"] == "snopes.com"
    assert hits[0]["relevance"] == 1.0


def test_word_overlap_and_categories():
    assert word_overlap("", "anything") == 0.0
    assert word_overlap("red apple", "an apple pie") == 0.5
    assert categorize_news("New vaccine trial") == "health"
    assert categorize_news("Local bakery opens") == "general"
