"""
Service wiring for the HTTP layer.

One container per application instance. Tests build it directly with an
in-memory store, a mock gateway and scripted dispatch tiers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Sequence

from callaxis.analysis.dispatch import AnalysisDispatcher, DispatchTier
from callaxis.analysis.inflight import InFlightSet
from callaxis.analysis.pipeline import AnalysisSubmissionPipeline
from callaxis.analysis.repository import AnalysisRepository, RecordingRepository
from callaxis.calls.disposition import DispositionService
from callaxis.calls.events import CallEventFeed
from callaxis.calls.reconciler import CallOutcomeReconciler
from callaxis.calls.repository import CallRecordRepository
from callaxis.calls.sessions import CallSessionManager
from callaxis.config import Settings, get_settings
from callaxis.insights.models import CallStatistics
from callaxis.insights.scheduler import InsightRefresher
from callaxis.insights.summarizer import GenerativeBackend, InsightSummarizer
from callaxis.shared.database import DatabaseManager
from callaxis.shared.logging import get_logger
from callaxis.shared.retry import RetryPolicy, poll_policy
from callaxis.store.interface import Store
from callaxis.store.memory import InMemoryStore
from callaxis.store.sql import SqlAlchemyStore
from callaxis.telephony.config import TelephonyConfig
from callaxis.telephony.factory import create_call_gateway, get_telephony_config
from callaxis.telephony.interface import CallGateway

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    store: Store
    gateway: CallGateway
    calls: CallRecordRepository
    sessions: CallSessionManager
    disposition: DispositionService
    recordings: RecordingRepository
    analyses: AnalysisRepository
    dispatcher: AnalysisDispatcher
    pipeline: AnalysisSubmissionPipeline
    events: CallEventFeed = field(default_factory=CallEventFeed)
    summarizer: InsightSummarizer | None = None
    database: DatabaseManager | None = None
    refreshers: dict[tuple[str, str | None], InsightRefresher] = field(default_factory=dict)

    @property
    def in_flight(self) -> InFlightSet:
        return self.pipeline.in_flight

    async def statistics_for(self, company_id: str, employee_id: str | None = None) -> CallStatistics:
        since = datetime.now(timezone.utc) - timedelta(days=self.settings.insights_window_days)
        calls = await self.calls.list_for_company(company_id, employee_id=employee_id, since=since)
        call_ids = {c.id for c in calls}
        analyses = [a for a in await self.analyses.list_for_company(company_id) if a.call_id in call_ids]
        return CallStatistics.from_records(calls, analyses)

    async def refresher_for(self, company_id: str, employee_id: str | None = None) -> InsightRefresher | None:
        """Get (starting on first use) the insight refresher for one dashboard."""
        if self.summarizer is None:
            return None
        key = (company_id, employee_id)
        refresher = self.refreshers.get(key)
        if refresher is None:

            async def statistics() -> CallStatistics:
                return await self.statistics_for(company_id, employee_id)

            refresher = InsightRefresher(
                self.summarizer,
                statistics,
                refresh_after=timedelta(hours=self.settings.insights_refresh_hours),
                check_interval_seconds=self.settings.insights_check_interval_seconds,
            )
            self.refreshers[key] = refresher
            await refresher.start()
        return refresher

    async def aclose(self) -> None:
        await self.sessions.shutdown()
        for refresher in self.refreshers.values():
            await refresher.stop()
        await self.dispatcher.close()
        await self.gateway.close()
        if self.database is not None:
            await self.database.close()


def _insight_summarizer(settings: Settings, backend: GenerativeBackend | None) -> InsightSummarizer | None:
    if backend is None:
        if not settings.insights_enabled:
            return None
        from callaxis.insights.backends import GeminiBackend

        backend = GeminiBackend(settings.gemini_api_key)
    return InsightSummarizer(backend, settings.gemini_models)


def build_container(
    settings: Settings | None = None,
    telephony_config: TelephonyConfig | None = None,
    store: Store | None = None,
    gateway: CallGateway | None = None,
    dispatch_tiers: Sequence[DispatchTier] | None = None,
    insight_backend: GenerativeBackend | None = None,
    poll: RetryPolicy | None = None,
) -> ServiceContainer:
    """Wire every service from settings, with optional overrides."""
    settings = settings or get_settings()
    telephony_config = telephony_config or get_telephony_config()

    database: DatabaseManager | None = None
    if store is None:
        if settings.store_backend == "memory":
            store = InMemoryStore()
        else:
            database = DatabaseManager(settings.database_url)
            store = SqlAlchemyStore(database.session_factory)

    gateway = gateway or create_call_gateway(telephony_config)
    calls = CallRecordRepository(store)
    events = CallEventFeed()
    reconciler = CallOutcomeReconciler(calls, notifier=events)
    sessions = CallSessionManager(
        gateway,
        reconciler,
        policy=poll
        or poll_policy(
            interval_seconds=settings.poll_interval_seconds,
            max_session_seconds=settings.poll_max_session_seconds,
        ),
        listener=events,
        default_caller_id=telephony_config.default_caller_id or None,
    )

    recordings = RecordingRepository(store)
    analyses = AnalysisRepository(store)
    dispatcher = AnalysisDispatcher(
        settings.analysis_webhook_url,
        tiers=dispatch_tiers,
        policy=RetryPolicy(max_attempts=settings.dispatch_attempts_per_tier, interval_seconds=1.0),
        timeout=settings.dispatch_timeout_seconds,
    )
    pipeline = AnalysisSubmissionPipeline(
        recordings,
        analyses,
        dispatcher,
        in_flight=InFlightSet(),
        source=settings.analysis_source,
    )

    logger.info(
        "Services wired",
        extra={
            "store": type(store).__name__,
            "gateway": type(gateway).__name__,
            "insights_enabled": settings.insights_enabled or insight_backend is not None,
        },
    )
    return ServiceContainer(
        settings=settings,
        store=store,
        gateway=gateway,
        calls=calls,
        sessions=sessions,
        disposition=DispositionService(calls, store),
        recordings=recordings,
        analyses=analyses,
        dispatcher=dispatcher,
        pipeline=pipeline,
        events=events,
        summarizer=_insight_summarizer(settings, insight_backend),
        database=database,
    )
