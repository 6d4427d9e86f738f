from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from services.statistics import distribution

SentimentCategory = Literal["Positive", "Neutral", "Negative"]
TopicsStatus = Literal["idle", "requesting", "completed", "failed"]


class Unit(BaseModel):
    text: str
    score: float | None = None


class DistributionEntry(BaseModel):
    range_label: str
    count: int = 0


class AnalysisResult(BaseModel):
    overall_score: float = 0.0
    overall_label: str = "Neutral"
    average: float = 0.0
    std_dev: float = 0.0
    units: list[Unit] = Field(default_factory=list)
    distribution: list[DistributionEntry] = Field(default_factory=list)
    units_requested: int = 0
    units_discarded: int = 0

    @classmethod
    def empty(cls) -> "AnalysisResult":
        return cls(distribution=[DistributionEntry.model_validate(row) for row in distribution([])])


class Topic(BaseModel):
    label: str
    comments: list[str] = Field(default_factory=list)
    average_sentiment: float | None = None


class ExportRow(BaseModel):
    comment_number: int
    comment_text: str
    sentiment_score: float
    sentiment_category: SentimentCategory
    topic: str


class OracleRequest(BaseModel):
    text: str | None = None
    mode: Literal["topics"] | None = None
