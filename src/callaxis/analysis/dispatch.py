"""
Analysis job dispatch to the external processor ingress.

Delivery escalates through three transport tiers, in order:

1. ``standard``: pooled async client, JSON accept header, status checked.
2. ``opaque``: fire-and-forget post whose response status is ignored;
   only a transport failure counts as a failure.
3. ``threaded``: a fresh blocking client on a worker thread, status checked.

Each tier gets ``policy.max_attempts`` attempts. Dispatch fails only when
every tier has failed.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Protocol, Sequence

import anyio
import httpx

from callaxis.analysis.models import DispatchError
from callaxis.shared.logging import get_logger
from callaxis.shared.retry import RetryPolicy

logger = get_logger(__name__)


class DispatchTier(Protocol):
    """One way of getting a payload to the ingress."""

    name: str

    async def send(self, url: str, payload: dict[str, Any]) -> None:
        """Deliver the payload or raise."""
        ...


class StandardTier:
    name = "standard"

    def __init__(self, timeout: float, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def send(self, url: str, payload: dict[str, Any]) -> None:
        client = await self._get_client()
        response = await client.post(url, json=payload, headers={"Accept": "application/json"})
        response.raise_for_status()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class OpaqueTier:
    name = "opaque"

    def __init__(self, timeout: float, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._timeout = timeout
        self._transport = transport

    async def send(self, url: str, payload: dict[str, Any]) -> None:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            await client.post(
                url,
                content=json.dumps(payload, default=str),
                headers={"Content-Type": "text/plain;charset=UTF-8"},
            )


class ThreadedTier:
    name = "threaded"

    def __init__(self, timeout: float, transport: httpx.BaseTransport | None = None) -> None:
        self._timeout = timeout
        self._transport = transport

    def send_sync(self, url: str, payload: dict[str, Any]) -> None:
        with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
            response = client.post(url, json=payload)
            response.raise_for_status()

    async def send(self, url: str, payload: dict[str, Any]) -> None:
        await anyio.to_thread.run_sync(self.send_sync, url, payload)


def default_tiers(
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
    sync_transport: httpx.BaseTransport | None = None,
) -> list[DispatchTier]:
    return [
        StandardTier(timeout, transport),
        OpaqueTier(timeout, transport),
        ThreadedTier(timeout, sync_transport),
    ]


class AnalysisDispatcher:
    """Delivers analysis jobs, escalating across transport tiers."""

    def __init__(
        self,
        url: str,
        tiers: Sequence[DispatchTier] | None = None,
        policy: RetryPolicy | None = None,
        timeout: float = 15.0,
    ) -> None:
        if not url:
            raise ValueError("Analysis ingress URL is required")
        self._url = url
        self._tiers = list(tiers) if tiers is not None else default_tiers(timeout)
        self._policy = policy or RetryPolicy(max_attempts=1)

    @property
    def tier_names(self) -> list[str]:
        return [tier.name for tier in self._tiers]

    async def dispatch(self, payload: dict[str, Any]) -> str:
        """Send a job and return the name of the tier that delivered it.

        Raises:
            DispatchError: If every tier failed.
        """
        failures: list[dict[str, Any]] = []
        for index, tier in enumerate(self._tiers):
            attempts = 0
            while self._policy.attempts_left(attempts):
                if attempts:
                    await asyncio.sleep(self._policy.delay())
                attempts += 1
                try:
                    await tier.send(self._url, payload)
                except (httpx.HTTPError, OSError) as e:
                    failures.append({"tier": tier.name, "attempt": attempts, "error": str(e) or type(e).__name__})
                    continue
                if index:
                    logger.info(
                        "Analysis job delivered by fallback tier",
                        extra={"tier": tier.name, "call_id": payload.get("call_id")},
                    )
                return tier.name

            if index + 1 < len(self._tiers):
                logger.warning(
                    "Dispatch tier failed; escalating",
                    extra={
                        "tier": tier.name,
                        "next_tier": self._tiers[index + 1].name,
                        "call_id": payload.get("call_id"),
                        "error": failures[-1]["error"] if failures else None,
                    },
                )

        logger.error(
            "All dispatch tiers failed",
            extra={"call_id": payload.get("call_id"), "attempts": len(failures)},
        )
        raise DispatchError(
            "Failed to send recording for analysis",
            details={"attempts": failures, "retryable": True},
        )

    async def close(self) -> None:
        for tier in self._tiers:
            close = getattr(tier, "close", None)
            if close is not None:
                await close()
