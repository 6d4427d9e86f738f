from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from services.oracle import (
    HttpSentimentOracle,
    LocalSentimentOracle,
    OracleUnavailable,
    UnitScoreInvalid,
    parse_score_payload,
    parse_topics_payload,
)

URL = "http://oracle.test/v1/analyze-sentiment"


def _oracle(handler) -> HttpSentimentOracle:
    return HttpSentimentOracle(URL, timeout_sec=5, transport=httpx.MockTransport(handler))


def test_parse_score_payload():
    assert parse_score_payload({"score": 0.4}) == 0.4
    assert parse_score_payload({"score": -1}) == -1.0
    with pytest.raises(UnitScoreInvalid):
        parse_score_payload({"score": "high"})
    with pytest.raises(UnitScoreInvalid):
        parse_score_payload({"score": True})
    with pytest.raises(UnitScoreInvalid):
        parse_score_payload({"score": float("nan")})
    with pytest.raises(OracleUnavailable, match="quota"):
        parse_score_payload({"error": "quota exceeded"})
    with pytest.raises(OracleUnavailable):
        parse_score_payload([0.4])


def test_parse_topics_payload():
    topics = parse_topics_payload({"topics": [{"topic": "Food", "comments": ["tasty", 3]}]})
    assert topics == [{"topic": "Food", "comments": ["tasty", "3"]}]
    with pytest.raises(OracleUnavailable):
        parse_topics_payload({"topics": "Food"})
    with pytest.raises(OracleUnavailable):
        parse_topics_payload({"topics": [{"comments": []}]})


def test_http_score_posts_text():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"score": 0.65})

    assert asyncio.run(_oracle(handler).score("Loved it")) == 0.65
    assert seen == [{"text": "Loved it"}]


def test_http_topics_sends_mode():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["mode"] == "topics"
        return httpx.Response(200, json={"topics": [{"topic": "Venue", "comments": ["cold room"]}]})

    topics = asyncio.run(_oracle(handler).topics("cold room"))
    assert topics[0]["topic"] == "Venue"


def test_http_error_status_carries_error_message():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "OpenAI API key not configured"})

    with pytest.raises(OracleUnavailable, match="OpenAI API key not configured"):
        asyncio.run(_oracle(handler).score("text"))


def test_http_malformed_json_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    with pytest.raises(OracleUnavailable, match="Malformed"):
        asyncio.run(_oracle(handler).score("text"))


def test_http_transport_error_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(OracleUnavailable, match="ConnectError"):
        asyncio.run(_oracle(handler).score("text"))


def test_local_oracle_wraps_handler_failures():
    def handler(text, mode):
        raise RuntimeError("model crashed")

    with pytest.raises(OracleUnavailable, match="model crashed"):
        asyncio.run(LocalSentimentOracle(handler).score("text"))


def test_local_oracle_passes_mode():
    calls = []

    def handler(text, mode):
        calls.append(mode)
        if mode == "topics":
            return {"topics": [{"topic": "All", "comments": [text]}]}
        return {"score": 0.2}

    oracle = LocalSentimentOracle(handler)
    assert asyncio.run(oracle.score("x")) == 0.2
    assert asyncio.run(oracle.topics("x")) == [{"topic": "All", "comments": ["x"]}]
    assert calls == [None, "topics"]


def test_http_calls_share_one_client():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"score": 0.1})

    async def scenario():
        oracle = _oracle(handler)
        await asyncio.gather(oracle.score("a"), oracle.score("b"), oracle.score("c"))
        first = oracle.client
        await oracle.score("d")
        assert oracle.client is first
        await oracle.aclose()
        return first

    assert asyncio.run(scenario()).is_closed


def test_http_caller_owned_client_stays_open():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"score": -0.2})

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            oracle = HttpSentimentOracle(URL, timeout_sec=5, client=client)
            score = await oracle.score("text")
            await oracle.aclose()
            return score, client.is_closed

    assert asyncio.run(scenario()) == (-0.2, False)
