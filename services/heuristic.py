from __future__ import annotations

import re
from typing import Any

import numpy as np
from sklearn.cluster import MiniBatchKMeans
from sklearn.feature_extraction.text import TfidfVectorizer

from services.splitter import DEFAULT_SPLIT_RULE, split_units
from services.statistics import clamp_score

POSITIVE_WORDS = {
    "good", "great", "excellent", "happy", "positive", "nice", "love", "best",
    "amazing", "awesome", "helpful", "enjoyed", "useful", "clear", "fantastic", "friendly",
}
NEGATIVE_WORDS = {
    "bad", "worst", "terrible", "sad", "negative", "hate", "awful", "poor",
    "boring", "confusing", "slow", "disappointing", "useless", "rude", "broken", "late",
}
WORD_WEIGHT = 0.3
MIN_SCORE_MAGNITUDE = 0.2
DEFAULT_TOPIC_COUNT = 5
MIN_UNITS_FOR_CLUSTERING = 4
FALLBACK_TOPIC_LABEL = "General Feedback"

SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
WORD_RE = re.compile(r"[a-z']+")
LABEL_WORD_RE = re.compile(r"[A-Za-z0-9]+")


def _sentence_score(sentence: str) -> float:
    score = 0.0
    for word in WORD_RE.findall(sentence.lower()):
        if word in POSITIVE_WORDS:
            score += WORD_WEIGHT
        elif word in NEGATIVE_WORDS:
            score -= WORD_WEIGHT
    return clamp_score(score)


def score_text(text: str) -> float:
    """Lexicon score averaged over sentences.

    Small non-zero scores are pushed out to +/-0.2 so weak signals are not read as neutral.
    """
    sentences = [s.strip() for s in SENTENCE_SPLIT_RE.split(str(text or "")) if s.strip()]
    if not sentences:
        return 0.0
    score = float(np.mean([_sentence_score(s) for s in sentences]))
    if score != 0.0 and abs(score) < MIN_SCORE_MAGNITUDE:
        score = MIN_SCORE_MAGNITUDE if score > 0 else -MIN_SCORE_MAGNITUDE
    return round(clamp_score(score), 2)


def _term_label(terms: list[str]) -> str:
    words = LABEL_WORD_RE.findall(" ".join(terms[:1]))
    if not words:
        return ""
    return " ".join(words[:3]).title()


def _dedupe_label(label: str, used: set[str]) -> str:
    candidate = label
    suffix = 2
    while candidate in used:
        candidate = f"{label} {suffix}"
        suffix += 1
    used.add(candidate)
    return candidate


def cluster_topics(
    text: str,
    split_rule: str = DEFAULT_SPLIT_RULE,
    n_topics: int = DEFAULT_TOPIC_COUNT,
) -> list[dict[str, Any]]:
    units = split_units(text, split_rule)
    if not units:
        return []
    if len(units) < MIN_UNITS_FOR_CLUSTERING:
        return [{"topic": FALLBACK_TOPIC_LABEL, "comments": units}]

    n_clusters = max(2, min(int(n_topics), len(units) // 2))
    try:
        vectorizer = TfidfVectorizer(lowercase=True, stop_words="english", ngram_range=(1, 2))
        X = vectorizer.fit_transform(units)
    except ValueError:
        # Empty vocabulary, e.g. only stop words.
        return [{"topic": FALLBACK_TOPIC_LABEL, "comments": units}]

    kmeans = MiniBatchKMeans(n_clusters=n_clusters, random_state=42, batch_size=1024, n_init="auto")
    cluster_ids = kmeans.fit_predict(X)
    terms = np.array(vectorizer.get_feature_names_out())

    # Topics are ordered by the first unit that falls into them.
    order: list[int] = []
    for cid in cluster_ids:
        if int(cid) not in order:
            order.append(int(cid))

    used: set[str] = set()
    topics: list[dict[str, Any]] = []
    for cid in order:
        idx = np.where(cluster_ids == cid)[0]
        centroid = kmeans.cluster_centers_[cid]
        top_idx = np.argsort(centroid)[-10:][::-1]
        top_terms = terms[top_idx].tolist() if terms.size else []
        label = _term_label(top_terms) or f"Topic {len(topics) + 1}"
        topics.append(
            {
                "topic": _dedupe_label(label, used),
                "comments": [units[int(i)] for i in idx],
            }
        )
    return topics
