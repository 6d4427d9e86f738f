from __future__ import annotations

import asyncio
import logging
from typing import Any

from services.models import Topic
from services.normalization import normalize_text
from services.oracle import OracleUnavailable, SentimentOracle
from services.statistics import clamp_score

logger = logging.getLogger(__name__)


async def _topic_sentiment(oracle: SentimentOracle, topic: Topic) -> float:
    try:
        return clamp_score(await oracle.score("\n".join(topic.comments)))
    except OracleUnavailable:
        raise
    except Exception as exc:
        raise OracleUnavailable(f"sentiment for topic {topic.label!r} failed: {exc}") from exc


async def classify_topics(text: str, oracle: SentimentOracle) -> list[Topic]:
    """Group comments into oracle-labelled topics, each with an average sentiment.

    The oracle owns the partition; every returned topic must come back with a score,
    so any failing call fails the whole classification.
    """
    try:
        raw_topics: list[dict[str, Any]] = await oracle.topics(text)
    except OracleUnavailable:
        raise
    except Exception as exc:
        raise OracleUnavailable(f"{exc.__class__.__name__}: {exc}") from exc

    topics: list[Topic] = []
    for item in raw_topics:
        comments = [c for c in (normalize_text(str(raw)) for raw in item.get("comments", [])) if c]
        if not comments:
            logger.debug("Skipping topic %r with no usable comments", item.get("topic"))
            continue
        topics.append(Topic(label=str(item.get("topic", "")).strip() or "Topic", comments=comments))
    if not topics:
        return []

    scores = await asyncio.gather(*[_topic_sentiment(oracle, t) for t in topics], return_exceptions=True)
    for score in scores:
        if isinstance(score, BaseException):
            raise score

    logger.info("Classified text into %d topics", len(topics))
    return [t.model_copy(update={"average_sentiment": s}) for t, s in zip(topics, scores)]
