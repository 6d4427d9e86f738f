from __future__ import annotations

import asyncio
import json
import logging
import math
from typing import Any, Callable, Protocol

import httpx

from services.config import Settings, get_settings

logger = logging.getLogger(__name__)


class OracleUnavailable(Exception):
    """The oracle could not produce a usable answer for a call that must succeed."""


class UnitScoreInvalid(ValueError):
    """A score payload was missing, non-numeric or non-finite."""


class SentimentOracle(Protocol):
    async def score(self, text: str) -> float: ...

    async def topics(self, text: str) -> list[dict[str, Any]]: ...

    async def aclose(self) -> None: ...


def _payload_error(payload: Any) -> str | None:
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return None


def parse_score_payload(payload: Any) -> float:
    if not isinstance(payload, dict):
        raise OracleUnavailable("Malformed oracle response: expected a JSON object")
    err = _payload_error(payload)
    if err:
        raise OracleUnavailable(err)
    raw = payload.get("score")
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise UnitScoreInvalid(f"Oracle returned a non-numeric score: {raw!r}")
    score = float(raw)
    if not math.isfinite(score):
        raise UnitScoreInvalid(f"Oracle returned a non-finite score: {raw!r}")
    return score


def parse_topics_payload(payload: Any) -> list[dict[str, Any]]:
    if not isinstance(payload, dict):
        raise OracleUnavailable("Malformed oracle response: expected a JSON object")
    err = _payload_error(payload)
    if err:
        raise OracleUnavailable(err)
    topics = payload.get("topics")
    if not isinstance(topics, list):
        raise OracleUnavailable("Malformed oracle response: 'topics' must be a list")
    out: list[dict[str, Any]] = []
    for item in topics:
        if not isinstance(item, dict):
            raise OracleUnavailable("Malformed oracle response: each topic must be an object")
        label = str(item.get("topic") or "").strip()
        comments = item.get("comments")
        if not label or not isinstance(comments, list):
            raise OracleUnavailable("Malformed oracle response: topic needs 'topic' and 'comments'")
        out.append({"topic": label, "comments": [str(c) for c in comments]})
    return out


class HttpSentimentOracle:
    """Calls a hosted analyze-sentiment function over HTTP.

    All calls share one ``httpx.AsyncClient``. A client passed in stays owned by the caller;
    otherwise one is opened on first use and closed by ``aclose()``.
    """

    def __init__(
        self,
        url: str,
        timeout_sec: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.timeout_sec = timeout_sec
        self._transport = transport
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_sec, transport=self._transport)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
        self._client = None

    async def _post(self, body: dict[str, Any]) -> Any:
        logger.debug("Oracle request mode=%s text_len=%d", body.get("mode", "score"), len(body.get("text", "")))
        try:
            resp = await self.client.post(self.url, json=body, timeout=self.timeout_sec)
        except httpx.HTTPError as exc:
            raise OracleUnavailable(f"{exc.__class__.__name__}: {exc}") from exc

        try:
            payload = resp.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise OracleUnavailable(f"Malformed oracle response (status {resp.status_code})") from exc

        if resp.is_error:
            detail = _payload_error(payload) or f"HTTP {resp.status_code}"
            raise OracleUnavailable(detail)
        return payload

    async def score(self, text: str) -> float:
        return parse_score_payload(await self._post({"text": text}))

    async def topics(self, text: str) -> list[dict[str, Any]]:
        return parse_topics_payload(await self._post({"text": text, "mode": "topics"}))


class LocalSentimentOracle:
    """Runs the oracle function in-process on a worker thread."""

    def __init__(self, handler: Callable[[str, str | None], dict[str, Any]]) -> None:
        self._handler = handler

    async def _call(self, text: str, mode: str | None) -> Any:
        try:
            return await asyncio.to_thread(self._handler, text, mode)
        except (OracleUnavailable, UnitScoreInvalid):
            raise
        except Exception as exc:
            raise OracleUnavailable(f"{exc.__class__.__name__}: {exc}") from exc

    async def score(self, text: str) -> float:
        return parse_score_payload(await self._call(text, None))

    async def topics(self, text: str) -> list[dict[str, Any]]:
        return parse_topics_payload(await self._call(text, "topics"))

    async def aclose(self) -> None:
        return None


def build_oracle(settings: Settings | None = None) -> SentimentOracle:
    settings = settings or get_settings()
    if settings.oracle_backend == "http":
        return HttpSentimentOracle(settings.oracle_url, timeout_sec=settings.oracle_timeout_sec)

    from services.llm import analyze_request

    def _handler(text: str, mode: str | None) -> dict[str, Any]:
        return analyze_request(text, mode=mode, settings=settings)

    return LocalSentimentOracle(_handler)
