import httpx

from reality_check.endpoint_pool import EndpointPool
from reality_check.models import SearchResult, TimelineEvent
from reality_check.searxng_client import SearchGateway
from reality_check.timeline import TimelineBuilder, event_date, extract_date, rank_events


def gateway(make_client, handler):
    return SearchGateway(EndpointPool(["https://s.example"]), make_client(handler))


def test_extract_date_formats():
    assert extract_date("Launched on 2021/3/5 after delays") == "2021-03-05"
    assert extract_date("It began 27 June 2022 in Geneva") == "2022-06-27"
    assert extract_date("Filed 06/27/2022 with the court") == "2022-06-27"
    assert extract_date("2022-13-40 is not a date") is None
    assert extract_date("no dates here") is None


def test_event_date_prefers_published():
    r = SearchResult(title="t", content="Back on 2001-09-11", url="u", published_date="2023-04-01T10:00:00")
    assert event_date(r) == "2023-04-01"
    r = SearchResult(title="t", content="Back on 2001-09-11", url="u")
    assert event_date(r) == "2001-09-11"


def test_event_date_reads_rfc2822_published():
    r = SearchResult(title="t", content="no date", url="u", published_date="Tue, 05 Mar 2024 10:00:00 GMT")
    assert event_date(r) == "2024-03-05"
    r = SearchResult(title="t", content="Back on 2001-09-11", url="u", published_date="sometime last week")
    assert event_date(r) == "2001-09-11"


def test_rank_events_relevance_then_date():
    events = [
        TimelineEvent(topic="x", date="2020-01-01", title="old", relevance=0.9),
        TimelineEvent(topic="x", date="2024-01-01", title="new", relevance=0.9),
        TimelineEvent(topic="x", date="2025-01-01", title="low", relevance=0.1),
    ]
    assert [e.title for e in rank_events(events, 2)] == ["new", "old"]


async def test_search_events_caps_and_sorts(make_client):
    queries = []

    def handler(request):
        q = request.url.params["q"]
        queries.append(q)
        n = len(queries)
        return httpx.Response(
            200,
            json={
                "results": [
                    {
                        "title": f"q{n} r{i}",
                        "content": f"Reported 2020-0{n}-1{i}",
                        "url": f"https://news{n}.example.com/{i}",
                        **({"score": round(0.1 * (i + n), 2)} if i else {}),
                    }
                    for i in range(5)
                ]
            },
        )

    builder = TimelineBuilder(gateway(make_client, handler))
    events = await builder.search_events("Mars rover")

    assert len(queries) == 4
    assert queries[0] == '"Mars rover" timeline chronology'
    assert len(events) == 10
    rel = [e.relevance for e in events]
    assert rel == sorted(rel, reverse=True)
    assert all(e.topic == "Mars rover" for e in events)
    # only the first 3 results per query are used
    assert not any(e.title.endswith(("r3", "r4")) for e in events)
    # unscored results get the default relevance
    assert any(e.relevance == 0.5 and e.title.endswith("r0") for e in events)
    assert events[0].source.startswith("news")


async def test_build_bounded_to_fifteen(make_client):
    def handler(request):
        return httpx.Response(200, json={"results": []})

    extra = [
        TimelineEvent(topic="t", date=f"2024-01-{d:02d}", title=f"e{d}", relevance=(d % 7) / 7)
        for d in range(1, 21)
    ]
    tl = await TimelineBuilder(gateway(make_client, handler)).build("topic", extra)

    assert len(tl.events) == 15
    rel = [e.relevance for e in tl.events]
    assert rel == sorted(rel, reverse=True)
    assert tl.analysis.backend == "synthetic"
    assert tl.analysis.key_patterns


async def test_offline_search_still_builds(offline_client):
    gw = SearchGateway(EndpointPool(["https://a.example", "https://b.example"]), offline_client)
    tl = await TimelineBuilder(gw).build("eclipse")
    assert 1 <= len(tl.events) <= 15
    assert all(e.relevance == 0.5 for e in tl.events)
    assert "eclipse" in tl.analysis.summary


async def test_backend_analysis(make_client, fake_backend):
    backend = fake_backend(
        payload={
            "summary": "Steady progress.",
            "keyPatterns": ["Growth"],
            "causeEffect": [{"cause": "Funding", "effect": "Launch", "confidence": 120}, "junk"],
            "futurePredictions": ["More launches"],
            "significance": "High",
        }
    )

    def handler(request):
        return httpx.Response(200, json={"results": []})

    tl = await TimelineBuilder(gateway(make_client, handler), backend).build("rockets")
    assert tl.analysis.backend == "fake"
    assert tl.analysis.cause_effect[0].confidence == 100
    assert len(tl.analysis.cause_effect) == 1
