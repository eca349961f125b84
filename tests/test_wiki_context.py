import httpx

from reality_check.context import ContextRetriever, context_citations
from reality_check.endpoint_pool import EndpointPool
from reality_check.searxng_client import SearchGateway
from reality_check.wiki_client import WikipediaClient, wiki_page_url


def wiki_handler(request):
    title = request.url.params["titles"]
    if title == "Nonexistentthing":
        return httpx.Response(200, json={"query": {"pages": {"-1": {"title": title, "missing": ""}}}})
    if title == "Blankpage":
        return httpx.Response(200, json={"query": {"pages": {"7": {"title": title, "extract": "  "}}}})
    return httpx.Response(
        200,
        json={
            "query": {
                "pages": {
                    "42": {
                        "title": title.capitalize(),
                        "extract": f"{title} is a thing.",
                        "original": {"source": "https://upload.example.org/x.jpg"},
                    }
                }
            }
        },
    )


def test_wiki_page_url():
    assert wiki_page_url("Solar flare") == "https://en.wikipedia.org/wiki/Solar_flare"


async def test_summary_found(make_client):
    wiki = WikipediaClient(make_client(wiki_handler))
    s = await wiki.get_topic_context("green")
    assert s.title == "Green"
    assert s.extract == "green is a thing."
    assert s.url == "https://en.wikipedia.org/wiki/Green"
    assert s.thumbnail == "https://upload.example.org/x.jpg"
    assert s.source == "wikipedia"


async def test_missing_or_empty_page_is_none(make_client):
    wiki = WikipediaClient(make_client(wiki_handler))
    assert await wiki.get_topic_context("Nonexistentthing") is None
    assert await wiki.get_topic_context("Blankpage") is None
    assert await wiki.get_topic_context("   ") is None


async def test_transport_failure_gives_mock(offline_client):
    wiki = WikipediaClient(offline_client)
    s = await wiki.get_topic_context("green")
    assert s.source == "mock"
    assert s.url == "https://en.wikipedia.org/wiki/green"
    assert "green" in s.extract


async def test_retrieve_many_drops_topics_without_summary(make_client):
    retriever = ContextRetriever(WikipediaClient(make_client(wiki_handler)))
    contexts = await retriever.retrieve_many(["green", "Nonexistentthing", "", "ocean"])
    assert [c.topic for c in contexts] == ["green", "ocean"]
    assert context_citations(contexts) == [
        "https://en.wikipedia.org/wiki/Green",
        "https://en.wikipedia.org/wiki/Ocean",
    ]


async def test_retrieve_attaches_related_search_hits(make_client):
    def search_handler(request):
        return httpx.Response(
            200,
            json={
                "results": [
                    {"title": f"hit {i}", "content": "c", "url": f"https://r.org/{i}"} for i in range(5)
                ]
            },
        )

    gateway = SearchGateway(EndpointPool(["https://s.example"]), make_client(search_handler))
    retriever = ContextRetriever(WikipediaClient(make_client(wiki_handler)), gateway, related_limit=2)
    ctx = await retriever.retrieve("green")
    assert ctx.summary is not None
    assert [r.url for r in ctx.related_results] == ["https://r.org/0", "https://r.org/1"]
