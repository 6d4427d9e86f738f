from __future__ import annotations

import hashlib
import http.client
import json
import logging
import re
import socket
import threading
from pathlib import Path
from typing import Any
from urllib import error, request

from services.config import Settings, get_settings

logger = logging.getLogger(__name__)

PROMPT_VERSION = 1
TEMPERATURE = 0.3
SCORE_RE = re.compile(r"[-+]?(?:\d+(?:\.\d*)?|\.\d+)")
CODE_FENCE_RE = re.compile(r"```(?:json)?")

SENTIMENT_SYSTEM_PROMPT = (
    "You are a sentiment analysis expert. Analyze the sentiment of the text and return a score "
    "between -1 (very negative) and 1 (very positive). Return only the number, no explanation."
)
TOPICS_SYSTEM_PROMPT = (
    "You are a topic modeling expert. Analyze the text and identify key themes/topics. "
    "For each topic, provide a short label and list of related comments. Return the result as a "
    'valid JSON array where each object has properties: "topic" (string), "comments" (array of strings). '
    "Make sure each comment is assigned to exactly one most relevant topic. "
    "Every comment must be assigned to a topic. "
    "Important: Return ONLY the JSON array with no markdown or code block formatting."
)

_CACHE_LOCK = threading.Lock()


class LLMError(RuntimeError):
    pass


def _load_cache(path: Path) -> dict[str, str]:
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                return {str(k): str(v) for k, v in data.items()}
        except Exception:
            return {}
    return {}


def _save_cache(path: Path, cache: dict[str, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cache, ensure_ascii=False, separators=(",", ":")), encoding="utf-8")


def _ollama_generate(prompt: str, system: str, settings: Settings) -> str:
    payload = {
        "model": settings.ollama_model,
        "system": system,
        "prompt": str(prompt or "").strip(),
        "stream": False,
        "options": {"temperature": TEMPERATURE},
    }
    data = json.dumps(payload).encode("utf-8")
    req = request.Request(settings.ollama_url, method="POST", data=data, headers={"Content-Type": "application/json"})
    with request.urlopen(req, timeout=settings.ollama_timeout_sec) as resp:
        raw = resp.read().decode("utf-8")
    parsed = json.loads(raw)
    return str(parsed.get("response", "") or "")


def parse_score_text(raw_text: str) -> float:
    match = SCORE_RE.search(str(raw_text or "").strip())
    if match is None:
        raise ValueError(f"Failed to parse sentiment score from model response: {raw_text!r}")
    return float(match.group(0))


def parse_topics_text(raw_text: str) -> list[dict[str, Any]]:
    body = CODE_FENCE_RE.sub("", str(raw_text or "")).strip()
    if not body.startswith("["):
        left = body.find("[")
        right = body.rfind("]")
        if left >= 0 and right > left:
            body = body[left : right + 1]
    parsed = json.loads(body)
    if not isinstance(parsed, list):
        raise ValueError("Topics response must be a JSON array")

    topics: list[dict[str, Any]] = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        label = str(item.get("topic", "") or "").strip()
        comments = item.get("comments")
        if not label or not isinstance(comments, list):
            continue
        topics.append({"topic": label, "comments": [str(c) for c in comments if str(c).strip()]})
    if parsed and not topics:
        raise ValueError("Topics response did not contain any usable topic")
    return topics


def _cache_key(settings: Settings, mode: str, text: str) -> str:
    key_payload = {
        "model": settings.ollama_model,
        "prompt_version": PROMPT_VERSION,
        "mode": mode,
        "text": text,
    }
    return hashlib.sha256(json.dumps(key_payload, sort_keys=True).encode("utf-8")).hexdigest()


def _ollama_analyze(text: str, mode: str, settings: Settings) -> dict[str, Any]:
    cache_path = settings.llm_cache_path
    cache_key = _cache_key(settings, mode, text)
    with _CACHE_LOCK:
        cached = _load_cache(cache_path).get(cache_key)
    if cached is not None:
        return json.loads(cached)

    system = TOPICS_SYSTEM_PROMPT if mode == "topics" else SENTIMENT_SYSTEM_PROMPT
    try:
        raw_response = _ollama_generate(text, system=system, settings=settings)
        if mode == "topics":
            payload: dict[str, Any] = {"topics": parse_topics_text(raw_response)}
        else:
            payload = {"score": parse_score_text(raw_response)}
    except (
        TimeoutError,
        socket.timeout,
        error.HTTPError,
        error.URLError,
        http.client.HTTPException,
        OSError,
        json.JSONDecodeError,
        ValueError,
        KeyError,
        TypeError,
    ) as exc:
        logger.warning("Ollama %s request failed: %s", mode, exc)
        raise LLMError(f"{exc.__class__.__name__}: {exc}") from exc

    try:
        with _CACHE_LOCK:
            cache = _load_cache(cache_path)
            cache[cache_key] = json.dumps(payload, ensure_ascii=False)
            _save_cache(cache_path, cache)
    except OSError as exc:
        logger.warning("Could not write LLM cache %s: %s", cache_path, exc)
    return payload


def analyze_request(text: str, mode: str | None = None, settings: Settings | None = None) -> dict[str, Any]:
    """Answer one oracle request: ``{"score": float}`` or ``{"topics": [...]}``."""
    settings = settings or get_settings()
    if not str(text or "").strip():
        raise ValueError("No text provided for analysis")
    resolved_mode = "topics" if mode == "topics" else "score"
    logger.debug("Oracle function mode=%s backend=%s text_len=%d", resolved_mode, settings.llm_backend, len(text))

    if settings.llm_backend == "heuristic":
        from services.heuristic import cluster_topics, score_text

        if resolved_mode == "topics":
            return {"topics": cluster_topics(text, split_rule=settings.split_rule)}
        return {"score": score_text(text)}

    return _ollama_analyze(text, resolved_mode, settings)
