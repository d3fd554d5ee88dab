"""
Call poller: drives repeated status queries for one in-flight call.

One poller instance is one session. It queries the gateway on a fixed
interval until a terminal snapshot arrives, then fires the terminal
handler exactly once and stops. Gateway errors are logged and the next
tick proceeds. Cancellation stops the loop without firing the handler,
and a response that arrives after cancellation is discarded. When the
session outlives ``policy.max_elapsed_seconds`` a synthetic ``failed``
snapshot is used as the terminal snapshot.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from contextlib import suppress
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from callaxis.shared.logging import correlation_id_var, get_logger
from callaxis.shared.retry import RetryPolicy, poll_policy
from callaxis.telephony.interface import (
    CallGateway,
    CallStatus,
    GatewayError,
    ProviderCallSnapshot,
    TenantContext,
)

logger = get_logger(__name__)

SnapshotCallback = Callable[[ProviderCallSnapshot], Awaitable[Any] | Any]


class PollState(str, Enum):
    """Lifecycle of one poll session."""

    POLLING = "polling"
    TERMINAL = "terminal"
    CANCELLED = "cancelled"


def synthetic_failure(provider_call_id: str, elapsed_seconds: float) -> ProviderCallSnapshot:
    """Terminal snapshot used when a session runs past its deadline."""
    return ProviderCallSnapshot(
        provider_call_id=provider_call_id,
        status=CallStatus.FAILED,
        ended_at=datetime.now(timezone.utc),
        raw_payload={
            "synthetic": True,
            "reason": "max_session_duration_exceeded",
            "elapsed_seconds": round(elapsed_seconds, 3),
        },
    )


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class CallPoller:
    """Polls one provider call until a terminal status or cancellation."""

    def __init__(
        self,
        gateway: CallGateway,
        provider_call_id: str,
        tenant: TenantContext,
        on_terminal: SnapshotCallback,
        on_status: SnapshotCallback | None = None,
        policy: RetryPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gateway = gateway
        self._provider_call_id = provider_call_id
        self._tenant = tenant
        self._on_terminal = on_terminal
        self._on_status = on_status
        self._policy = policy or poll_policy()
        self._clock = clock

        self._state = PollState.POLLING
        self._terminal_fired = False
        self._task: asyncio.Task[ProviderCallSnapshot | None] | None = None

        self.last_snapshot: ProviderCallSnapshot | None = None
        self.polls = 0
        self.errors = 0

    @property
    def provider_call_id(self) -> str:
        return self._provider_call_id

    @property
    def state(self) -> PollState:
        return self._state

    @property
    def task(self) -> asyncio.Task[ProviderCallSnapshot | None] | None:
        return self._task

    def start(self) -> asyncio.Task[ProviderCallSnapshot | None]:
        """Schedule the poll loop on the running event loop."""
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name=f"poll:{self._provider_call_id}")
        return self._task

    def cancel(self) -> bool:
        """Stop polling without firing the terminal handler.

        Returns:
            False if the session already reached a terminal state.
        """
        if self._state is not PollState.POLLING:
            return False
        self._state = PollState.CANCELLED
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.info(
            "Poll session cancelled",
            extra={"provider_call_id": self._provider_call_id, "polls": self.polls},
        )
        return True

    async def wait(self) -> ProviderCallSnapshot | None:
        """Wait for the session to end; returns the terminal snapshot if any."""
        if self._task is None:
            return None
        with suppress(asyncio.CancelledError):
            return await self._task
        return None

    async def run(self) -> ProviderCallSnapshot | None:
        """Poll until terminal; returns the terminal snapshot, or None if cancelled."""
        started = self._clock()
        token = correlation_id_var.set(self._provider_call_id)
        try:
            snapshot = await self._poll_until_terminal(started)
        except asyncio.CancelledError:
            self._state = PollState.CANCELLED
            raise
        finally:
            correlation_id_var.reset(token)

        if snapshot is None or self._state is PollState.CANCELLED:
            return None

        self._state = PollState.TERMINAL
        self.last_snapshot = snapshot
        await self._fire_terminal(snapshot)
        return snapshot

    async def _poll_until_terminal(self, started: float) -> ProviderCallSnapshot | None:
        while True:
            await asyncio.sleep(self._policy.delay())
            if self._state is PollState.CANCELLED:
                return None

            elapsed = self._clock() - started
            if self._policy.expired(elapsed):
                logger.warning(
                    "Poll session exceeded max duration; forcing failed outcome",
                    extra={"provider_call_id": self._provider_call_id, "elapsed_seconds": elapsed},
                )
                return synthetic_failure(self._provider_call_id, elapsed)

            self.polls += 1
            try:
                snapshot = await self._gateway.get_call_status(self._provider_call_id, self._tenant)
            except GatewayError as e:
                self.errors += 1
                logger.warning(
                    "Error polling call status",
                    extra={
                        "provider_call_id": self._provider_call_id,
                        "status_code": e.status_code,
                        "error": str(e),
                    },
                )
                continue
            except Exception:
                self.errors += 1
                logger.exception(
                    "Unexpected error polling call status",
                    extra={"provider_call_id": self._provider_call_id},
                )
                continue

            # a response that lands after cancel() belongs to nobody
            if self._state is PollState.CANCELLED:
                return None

            self.last_snapshot = snapshot
            logger.info(
                "Call status",
                extra={"provider_call_id": self._provider_call_id, "status": snapshot.status.value},
            )
            if self._on_status is not None:
                try:
                    await _maybe_await(self._on_status(snapshot))
                except Exception:
                    logger.exception(
                        "Status listener failed",
                        extra={"provider_call_id": self._provider_call_id},
                    )

            if snapshot.is_terminal:
                return snapshot

    async def _fire_terminal(self, snapshot: ProviderCallSnapshot) -> None:
        if self._terminal_fired:
            return
        self._terminal_fired = True
        await _maybe_await(self._on_terminal(snapshot))
