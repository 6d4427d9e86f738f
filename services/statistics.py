from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable

import numpy as np


@dataclass(frozen=True)
class DistributionBin:
    label: str
    lower: float
    upper: float
    closed_upper: bool = False

    @property
    def range_label(self) -> str:
        return f"{self.label} ({self.lower:.1f} to {self.upper:.1f})"

    def contains(self, score: float) -> bool:
        if score < self.lower:
            return False
        if self.closed_upper:
            return score <= self.upper
        return score < self.upper


DISTRIBUTION_BINS: tuple[DistributionBin, ...] = (
    DistributionBin("Very Negative", -1.0, -0.6),
    DistributionBin("Negative", -0.6, -0.2),
    DistributionBin("Neutral", -0.2, 0.2),
    DistributionBin("Positive", 0.2, 0.6),
    DistributionBin("Very Positive", 0.6, 1.0, closed_upper=True),
)


def _finite_scores(scores: Iterable[Any] | None) -> list[float]:
    out: list[float] = []
    for value in scores or []:
        if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
            continue
        parsed = float(value)
        if math.isfinite(parsed):
            out.append(parsed)
    return out


def average(scores: Iterable[Any] | None) -> float:
    values = _finite_scores(scores)
    if not values:
        return 0.0
    return round(float(np.mean(values)), 2)


def standard_deviation(scores: Iterable[Any] | None) -> float:
    values = _finite_scores(scores)
    if len(values) <= 1:
        return 0.0
    return round(float(np.std(values, ddof=1)), 2)


def bucket(scores: Iterable[Any] | None) -> list[int]:
    """Count scores per distribution bin; out-of-range scores land in no bin."""
    counts = [0] * len(DISTRIBUTION_BINS)
    for score in _finite_scores(scores):
        for idx, dist_bin in enumerate(DISTRIBUTION_BINS):
            if dist_bin.contains(score):
                counts[idx] += 1
                break
    return counts


def distribution(scores: Iterable[Any] | None) -> list[dict[str, Any]]:
    counts = bucket(scores)
    return [
        {"range_label": dist_bin.range_label, "count": counts[idx]}
        for idx, dist_bin in enumerate(DISTRIBUTION_BINS)
    ]


def sentiment_label(score: float) -> str:
    if score > 0.6:
        return "Very Positive"
    if score > 0.2:
        return "Positive"
    if score < -0.6:
        return "Very Negative"
    if score < -0.2:
        return "Negative"
    return "Neutral"


def clamp_score(score: float) -> float:
    return max(-1.0, min(1.0, float(score)))
