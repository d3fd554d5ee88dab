"""
Data models for the insight summarizer.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Iterable

from pydantic import BaseModel, Field

from callaxis.analysis.models import Analysis, ProcessingStatus
from callaxis.calls.models import CallOutcome, CallRecord
from callaxis.shared.exceptions import AppError


class InsightGenerationError(AppError):
    """No model variant produced a usable set of insights."""


class InsightType(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    INFO = "info"
    ERROR = "error"


class Insight(BaseModel):
    """One coaching insight shown on the dashboard."""

    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    type: InsightType

    model_config = {"frozen": True}


def _pct(part: int, whole: int) -> int:
    return round(part * 100 / whole) if whole else 0


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class CallStatistics(BaseModel):
    """Aggregate call and analysis metrics for one reporting window."""

    total_calls: int = 0
    completed_calls: int = 0
    follow_up_calls: int = 0
    not_answered_calls: int = 0
    not_interested_calls: int = 0
    completion_rate: int = 0
    follow_up_rate: int = 0
    not_answered_rate: int = 0
    avg_sentiment: int = 0
    avg_engagement: int = 0
    avg_confidence: int = 0
    analyzed_calls: int = 0
    analysis_rate: int = 0

    @classmethod
    def from_records(cls, calls: Iterable[CallRecord], analyses: Iterable[Analysis]) -> "CallStatistics":
        """Aggregate call records and their analyses.

        Only completed analyses contribute scores; confidence is the mean of
        the executive and person confidence averages.
        """
        calls = list(calls)
        done = [a for a in analyses if a.status is ProcessingStatus.COMPLETED]
        total = len(calls)

        def count(*outcomes: CallOutcome) -> int:
            return sum(1 for c in calls if c.outcome in outcomes)

        completed = count(CallOutcome.COMPLETED, CallOutcome.CONVERTED)
        follow_up = count(CallOutcome.FOLLOW_UP)
        not_answered = count(
            CallOutcome.NOT_ANSWERED, CallOutcome.NO_ANSWER, CallOutcome.BUSY, CallOutcome.FAILED
        )

        confidence = 0.0
        if done:
            confidence = (
                _mean([a.confidence_score_executive or 0.0 for a in done])
                + _mean([a.confidence_score_person or 0.0 for a in done])
            ) / 2

        return cls(
            total_calls=total,
            completed_calls=completed,
            follow_up_calls=follow_up,
            not_answered_calls=not_answered,
            not_interested_calls=count(CallOutcome.NOT_INTERESTED),
            completion_rate=_pct(completed, total),
            follow_up_rate=_pct(follow_up, total),
            not_answered_rate=_pct(not_answered, total),
            avg_sentiment=round(_mean([a.sentiment_score or 0.0 for a in done])),
            avg_engagement=round(_mean([a.engagement_score or 0.0 for a in done])),
            avg_confidence=round(confidence),
            analyzed_calls=len(done),
            analysis_rate=_pct(len(done), total),
        )


class InsightReport(BaseModel):
    """Result of one successful summarizer run."""

    insights: list[Insight]
    model: str
    attempts: int
    statistics: CallStatistics
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
