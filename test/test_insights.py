"""
Tests for insight parsing, model fallback, statistics and the refresher.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from callaxis.analysis.models import Analysis, ProcessingStatus
from callaxis.calls.models import CallOutcome, CallRecord
from callaxis.insights.models import CallStatistics, InsightGenerationError, InsightType
from callaxis.insights.prompts import build_insight_prompt
from callaxis.insights.scheduler import InsightRefresher
from callaxis.insights.summarizer import DEFAULT_MODELS, InsightSummarizer, parse_insights, strip_code_fences

from conftest import ScriptedBackend

VALID = json.dumps(
    [
        {"title": "Strong closes", "message": "Keep confirming next steps before hanging up.", "type": "success"},
        {"title": "Low reach", "message": "Try calling after 6pm.", "type": "warning"},
    ]
)

STATS = CallStatistics(total_calls=10, completed_calls=4, completion_rate=40)


class TestParseInsights:
    def test_strips_fences(self) -> None:
        text = f"```json\n{VALID}\n```"
        assert strip_code_fences(text) == VALID
        assert [i.type for i in parse_insights(text)] == [InsightType.SUCCESS, InsightType.WARNING]

    def test_caps_at_four(self) -> None:
        items = [{"title": f"T{i}", "message": "m", "type": "info"} for i in range(6)]
        assert [i.title for i in parse_insights(json.dumps(items))] == ["T0", "T1", "T2", "T3"]

    def test_invalid_items_dropped(self) -> None:
        items = [
            {"title": "", "message": "m", "type": "info"},
            {"title": "t", "message": "m", "type": "celebration"},
            "not an object",
            {"title": "Kept", "message": "m", "type": "error"},
        ]
        assert [i.title for i in parse_insights(json.dumps(items))] == ["Kept"]

    @pytest.mark.parametrize(
        "text",
        ["", "   ", "Sure! Here are some tips.", "{}", "[]", json.dumps([{"title": "t"}])],
    )
    def test_unusable_replies_raise(self, text: str) -> None:
        with pytest.raises(InsightGenerationError):
            parse_insights(text)


class TestInsightSummarizer:
    @pytest.mark.asyncio
    async def test_falls_back_to_last_variant(self) -> None:
        backend = ScriptedBackend(["not json", "[]", InsightGenerationError("model unavailable"), VALID])
        summarizer = InsightSummarizer(backend)

        report = await summarizer.summarize(STATS)

        assert report.model == "gemini-pro"
        assert report.attempts == 4
        assert backend.calls == list(DEFAULT_MODELS)
        assert len(report.insights) == 2
        assert report.statistics == STATS

    @pytest.mark.asyncio
    async def test_first_success_stops(self) -> None:
        backend = ScriptedBackend([VALID])

        report = await InsightSummarizer(backend).summarize(STATS)

        assert report.model == DEFAULT_MODELS[0]
        assert report.attempts == 1
        assert backend.calls == [DEFAULT_MODELS[0]]

    @pytest.mark.asyncio
    async def test_all_variants_fail_raises_last_error(self) -> None:
        backend = ScriptedBackend(["", "", "", InsightGenerationError("quota exceeded")])

        with pytest.raises(InsightGenerationError, match="quota exceeded"):
            await InsightSummarizer(backend).summarize(STATS)
        assert len(backend.calls) == 4

    def test_models_deduplicated(self) -> None:
        summarizer = InsightSummarizer(ScriptedBackend([]), models=["a", " a", "b", ""])
        assert summarizer.models == ["a", "b"]

    def test_models_required(self) -> None:
        with pytest.raises(ValueError):
            InsightSummarizer(ScriptedBackend([]), models=[])

    def test_prompt_carries_statistics(self) -> None:
        prompt = build_insight_prompt(STATS)
        assert "Total Calls: 10" in prompt
        assert "Completed/Converted: 4 (40%)" in prompt
        assert prompt.endswith("Please respond with only a valid JSON array, no additional text.")


class TestCallStatistics:
    def test_from_records(self) -> None:
        calls = [
            CallRecord(outcome=CallOutcome.COMPLETED),
            CallRecord(outcome=CallOutcome.CONVERTED),
            CallRecord(outcome=CallOutcome.FOLLOW_UP),
            CallRecord(outcome=CallOutcome.NOT_ANSWERED),
            CallRecord(outcome=CallOutcome.NOT_INTERESTED),
            CallRecord(outcome=CallOutcome.NOT_ANSWERED),
        ]
        analyses = [
            Analysis(
                recording_id="r1",
                call_id="c1",
                status=ProcessingStatus.COMPLETED,
                sentiment_score=80,
                engagement_score=60,
                confidence_score_executive=8,
                confidence_score_person=6,
            ),
            Analysis(
                recording_id="r2",
                call_id="c2",
                status=ProcessingStatus.COMPLETED,
                sentiment_score=60,
                engagement_score=40,
                confidence_score_executive=6,
                confidence_score_person=4,
            ),
            Analysis(recording_id="r3", call_id="c3", status=ProcessingStatus.PROCESSING, sentiment_score=0),
        ]

        stats = CallStatistics.from_records(calls, analyses)

        assert stats.total_calls == 6
        assert stats.completed_calls == 2
        assert stats.completion_rate == 33
        assert stats.follow_up_rate == 17
        assert stats.not_answered_calls == 2
        assert stats.not_interested_calls == 1
        assert stats.analyzed_calls == 2
        assert stats.analysis_rate == 33
        assert stats.avg_sentiment == 70
        assert stats.avg_engagement == 50
        assert stats.avg_confidence == 6

    def test_unreached_outcomes_count_as_not_answered(self) -> None:
        calls = [
            CallRecord(outcome=CallOutcome.NOT_ANSWERED),
            CallRecord(outcome=CallOutcome.NO_ANSWER),
            CallRecord(outcome=CallOutcome.BUSY),
            CallRecord(outcome=CallOutcome.FAILED),
            CallRecord(outcome=CallOutcome.CONVERTED),
        ]

        stats = CallStatistics.from_records(calls, [])

        assert stats.not_answered_calls == 4
        assert stats.not_answered_rate == 80
        assert stats.completion_rate == 20

    def test_empty(self) -> None:
        stats = CallStatistics.from_records([], [])
        assert stats.total_calls == 0
        assert stats.completion_rate == 0
        assert stats.avg_confidence == 0


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class TestInsightRefresher:
    @pytest.mark.asyncio
    async def test_refreshes_only_when_stale(self) -> None:
        backend = ScriptedBackend([VALID, VALID])
        clock = FakeClock()

        async def statistics() -> CallStatistics:
            return STATS

        refresher = InsightRefresher(InsightSummarizer(backend), statistics, clock=clock)

        first = await refresher.refresh()
        assert first is not None
        # report timestamps come from the wall clock
        first.generated_at = clock.now
        again = await refresher.refresh()

        assert again is first
        assert len(backend.calls) == 1

        clock.now += timedelta(hours=25)
        assert refresher.is_stale()
        second = await refresher.refresh()
        assert second is not first
        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_force_and_failure_keep_previous_report(self) -> None:
        backend = ScriptedBackend([VALID] + [InsightGenerationError("down")] * 4)

        async def statistics() -> CallStatistics:
            return STATS

        refresher = InsightRefresher(InsightSummarizer(backend), statistics)
        report = await refresher.refresh()

        assert await refresher.refresh(force=True) is report
        assert refresher.last_error == "down"
        assert len(backend.calls) == 5

    @pytest.mark.asyncio
    async def test_no_calls_skips_generation(self) -> None:
        backend = ScriptedBackend([])

        async def statistics() -> CallStatistics:
            return CallStatistics()

        refresher = InsightRefresher(InsightSummarizer(backend), statistics)

        assert await refresher.refresh(force=True) is None
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_start_and_stop(self) -> None:
        async def statistics() -> CallStatistics:
            return CallStatistics()

        refresher = InsightRefresher(InsightSummarizer(ScriptedBackend([])), statistics)

        await refresher.start()
        await refresher.start()
        await refresher.stop()

        assert refresher.latest is None
