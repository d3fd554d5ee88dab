"""
Insight summarizer with ordered model fallback.

Each model variant is tried once, in order. A variant fails when the
backend errors, returns nothing, or returns text that is not a JSON list
with at least one valid insight. The first success wins; when every
variant fails the last error is raised.
"""

from __future__ import annotations

import json
import re
from typing import Any, Protocol, Sequence

from pydantic import ValidationError as PydanticValidationError

from callaxis.insights.models import CallStatistics, Insight, InsightGenerationError, InsightReport
from callaxis.insights.prompts import build_insight_prompt
from callaxis.shared.logging import get_logger

logger = get_logger(__name__)

MAX_INSIGHTS = 4

DEFAULT_MODELS: tuple[str, ...] = (
    "gemini-2.0-flash-exp",
    "gemini-1.5-flash",
    "gemini-1.5-pro",
    "gemini-pro",
)

_FENCE = re.compile(r"```(?:json)?\s*\n?")


class GenerativeBackend(Protocol):
    """Single-turn text generation against a named model."""

    async def generate(self, model: str, prompt: str) -> str:
        """Return the model's text reply.

        Raises:
            InsightGenerationError: If the model is unavailable or the call failed.
        """
        ...


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences around a model reply."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE.sub("", cleaned)
    return cleaned.strip()


def parse_insights(text: str) -> list[Insight]:
    """Parse a model reply into at most MAX_INSIGHTS valid insights.

    Items missing a title, message or known type are dropped.

    Raises:
        InsightGenerationError: If the reply is not a JSON list or has no valid item.
    """
    if not text or not text.strip():
        raise InsightGenerationError("No response text from model")
    try:
        data: Any = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise InsightGenerationError("Failed to parse insights response as JSON") from e
    if not isinstance(data, list) or not data:
        raise InsightGenerationError("Invalid insights format: expected a non-empty JSON array")

    insights: list[Insight] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            insights.append(Insight.model_validate(item))
        except PydanticValidationError:
            continue
        if len(insights) == MAX_INSIGHTS:
            break

    if not insights:
        raise InsightGenerationError("Invalid insights format: no item has title, message and type")
    return insights


class InsightSummarizer:
    """Turns call statistics into coaching insights."""

    def __init__(self, backend: GenerativeBackend, models: Sequence[str] = DEFAULT_MODELS) -> None:
        self._backend = backend
        self._models = [m for m in dict.fromkeys(m.strip() for m in models) if m]
        if not self._models:
            raise ValueError("At least one model variant is required")

    @property
    def models(self) -> list[str]:
        return list(self._models)

    async def summarize(self, stats: CallStatistics) -> InsightReport:
        """Ask each model variant in turn until one yields valid insights.

        Raises:
            InsightGenerationError: The last variant's error, when all fail.
        """
        prompt = build_insight_prompt(stats)
        last_error: InsightGenerationError | None = None

        for attempt, model in enumerate(self._models, start=1):
            try:
                text = await self._backend.generate(model, prompt)
                insights = parse_insights(text)
            except InsightGenerationError as e:
                logger.warning(
                    "Insight model variant failed",
                    extra={"model": model, "attempt": attempt, "error": e.message},
                )
                last_error = e
                continue

            logger.info(
                "Insights generated",
                extra={"model": model, "attempt": attempt, "insights": len(insights)},
            )
            return InsightReport(insights=insights, model=model, attempts=attempt, statistics=stats)

        if last_error is None:
            raise InsightGenerationError("No model variant produced insights")
        raise last_error
