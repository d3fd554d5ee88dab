"""
Call session manager.

Owns one CallPoller per in-flight call, keyed by provider call id. Placing
a call starts a session; the terminal snapshot is handed to the
reconciler. Finished sessions stay readable until they are forgotten so
the UI can pick up the outcome and the disposition prompt.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

from callaxis.calls.models import CallAttempt, CallRecord
from callaxis.calls.poller import CallPoller, PollState
from callaxis.calls.reconciler import CallOutcomeReconciler
from callaxis.shared.exceptions import AppError, NotFoundError, ValidationError
from callaxis.shared.logging import get_logger
from callaxis.shared.phone import normalize_phone_number
from callaxis.shared.retry import RetryPolicy, poll_policy
from callaxis.telephony.interface import CallGateway, ProviderCallSnapshot, TenantContext

logger = get_logger(__name__)


@dataclass
class CallSession:
    """One poll session and what it produced."""

    attempt: CallAttempt
    tenant: TenantContext
    poller: CallPoller | None = None
    record: CallRecord | None = None
    requires_disposition: bool = False
    error: str | None = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def provider_call_id(self) -> str:
        return self.attempt.provider_call_id

    @property
    def state(self) -> PollState:
        return self.poller.state if self.poller else PollState.POLLING


class SessionListener(Protocol):
    """UI-facing signals: poll ticks and terminal outcomes."""

    async def session_updated(self, session: CallSession) -> None: ...

    async def session_finished(self, session: CallSession) -> None: ...


class CallSessionManager:
    """Places calls and runs their poll sessions."""

    def __init__(
        self,
        gateway: CallGateway,
        reconciler: CallOutcomeReconciler,
        policy: RetryPolicy | None = None,
        listener: SessionListener | None = None,
        default_caller_id: str | None = None,
    ) -> None:
        self._gateway = gateway
        self._reconciler = reconciler
        self._policy = policy or poll_policy()
        self._listener = listener
        self._default_caller_id = default_caller_id
        self._sessions: dict[str, CallSession] = {}

    async def start_call(
        self,
        from_number: str,
        to_number: str,
        tenant: TenantContext,
        employee_id: str | None = None,
        lead_id: str | None = None,
        caller_id: str | None = None,
    ) -> CallSession:
        """Normalize numbers, place the call and start polling it.

        Raises:
            ValidationError: If either number has no digits.
            GatewayError: If the provider rejects the call.
        """
        source = normalize_phone_number(from_number)
        target = normalize_phone_number(to_number)
        if not source or not target:
            raise ValidationError(
                "Both from_number and to_number must contain digits",
                details={"from_number": from_number, "to_number": to_number},
            )
        effective_caller_id = caller_id or self._default_caller_id or source

        provider_call_id = await self._gateway.place_call(source, target, effective_caller_id, tenant)
        logger.info(
            "Call placed",
            extra={
                "provider_call_id": provider_call_id,
                "company_id": tenant.company_id,
                "employee_id": employee_id,
                "lead_id": lead_id,
            },
        )

        attempt = CallAttempt(
            provider_call_id=provider_call_id,
            from_number=source,
            to_number=target,
            caller_id=effective_caller_id,
            company_id=tenant.company_id,
            employee_id=employee_id,
            lead_id=lead_id,
            started_at=datetime.now(timezone.utc),
        )
        return self._open(attempt, tenant)

    def reattach(self, attempt: CallAttempt, tenant: TenantContext) -> CallSession:
        """Resume polling a call placed earlier (e.g. after a page reload).

        A session that is still polling is returned as is.
        """
        existing = self._sessions.get(attempt.provider_call_id)
        if existing is not None and existing.state is PollState.POLLING:
            return existing
        logger.info("Reattaching to call", extra={"provider_call_id": attempt.provider_call_id})
        return self._open(attempt, tenant)

    def get(self, provider_call_id: str) -> CallSession | None:
        return self._sessions.get(provider_call_id)

    def active_sessions(self) -> list[CallSession]:
        return [s for s in self._sessions.values() if s.state is PollState.POLLING]

    def cancel(self, provider_call_id: str) -> bool:
        """Cancel polling for a call.

        Returns:
            False if the session already finished.

        Raises:
            NotFoundError: If there is no session for the call.
        """
        session = self._sessions.get(provider_call_id)
        if session is None or session.poller is None:
            raise NotFoundError(f"No call session for {provider_call_id}")
        return session.poller.cancel()

    def forget(self, provider_call_id: str) -> None:
        """Drop a finished session; a polling one is cancelled first."""
        session = self._sessions.pop(provider_call_id, None)
        if session is not None and session.poller is not None:
            session.poller.cancel()

    async def shutdown(self) -> None:
        """Cancel every polling session and wait for the tasks to unwind."""
        pollers = [s.poller for s in self._sessions.values() if s.poller is not None]
        for poller in pollers:
            poller.cancel()
        for poller in pollers:
            await poller.wait()
        logger.info("Call sessions shut down", extra={"sessions": len(pollers)})

    def _open(self, attempt: CallAttempt, tenant: TenantContext) -> CallSession:
        session = CallSession(attempt=attempt, tenant=tenant)

        async def on_status(snapshot: ProviderCallSnapshot) -> None:
            await self._handle_status(session, snapshot)

        async def on_terminal(snapshot: ProviderCallSnapshot) -> None:
            await self._handle_terminal(session, snapshot)

        session.poller = CallPoller(
            self._gateway,
            attempt.provider_call_id,
            tenant,
            on_terminal=on_terminal,
            on_status=on_status,
            policy=self._policy,
        )
        self._sessions[attempt.provider_call_id] = session
        session.poller.start()
        return session

    async def _handle_status(self, session: CallSession, snapshot: ProviderCallSnapshot) -> None:
        session.attempt.status = snapshot.status
        session.updated_at = datetime.now(timezone.utc)
        if self._listener is not None:
            await self._listener.session_updated(session)

    async def _handle_terminal(self, session: CallSession, snapshot: ProviderCallSnapshot) -> None:
        session.attempt.status = snapshot.status
        session.updated_at = datetime.now(timezone.utc)
        try:
            result = await self._reconciler.reconcile(snapshot, session.attempt)
        except AppError as e:
            session.error = e.message
            logger.error(
                "Failed to reconcile call outcome",
                extra={"provider_call_id": session.provider_call_id, "error": e.message},
            )
        else:
            session.record = result.record
            session.requires_disposition = result.requires_disposition

        if self._listener is not None:
            await self._listener.session_finished(session)
