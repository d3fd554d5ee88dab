"""
Mock telephony gateway for development and tests.

Status responses are scripted per call: each ``get_call_status`` consumes
the next scripted item (a status, a full snapshot, or an exception to
raise). Once the script is exhausted the last item repeats.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from typing import Union

from callaxis.shared.logging import get_logger
from callaxis.telephony.interface import (
    CallGateway,
    CallStatus,
    GatewayError,
    ProviderCallSnapshot,
    TenantContext,
)

logger = get_logger(__name__)

ScriptItem = Union[CallStatus, ProviderCallSnapshot, Exception]

DEFAULT_SCRIPT: tuple[ScriptItem, ...] = (CallStatus.RINGING, CallStatus.IN_PROGRESS, CallStatus.COMPLETED)


class MockCallGateway(CallGateway):
    """Mock telephony gateway with scripted status sequences."""

    def __init__(self) -> None:
        self._placed: list[dict[str, str]] = []
        self._scripts: dict[str, list[ScriptItem]] = {}
        self._default_script: list[ScriptItem] = list(DEFAULT_SCRIPT)
        self._cursor: dict[str, int] = defaultdict(int)
        self._next_call_id: int = 1
        self._should_fail: bool = False
        self._fail_error: str = "Mock failure"
        self._fail_status: int | None = 500
        self.status_requests: dict[str, int] = defaultdict(int)

    def reset(self) -> None:
        self._placed.clear()
        self._scripts.clear()
        self._cursor.clear()
        self.status_requests.clear()
        self._default_script = list(DEFAULT_SCRIPT)
        self._next_call_id = 1
        self._should_fail = False
        self._fail_error = "Mock failure"
        self._fail_status = 500

    def configure_failure(
        self,
        should_fail: bool = True,
        error_message: str = "Mock failure",
        status_code: int | None = 500,
    ) -> None:
        self._should_fail = should_fail
        self._fail_error = error_message
        self._fail_status = status_code

    def script(self, provider_call_id: str, items: list[ScriptItem]) -> None:
        """Script the status sequence for one call."""
        if not items:
            raise ValueError("script needs at least one item")
        self._scripts[provider_call_id] = list(items)
        self._cursor[provider_call_id] = 0

    def script_default(self, items: list[ScriptItem]) -> None:
        """Script the sequence used by calls without their own script."""
        if not items:
            raise ValueError("script needs at least one item")
        self._default_script = list(items)

    @property
    def placed_calls(self) -> list[dict[str, str]]:
        return self._placed.copy()

    def peek_next_call_id(self) -> str:
        return f"MOCK_CALL_{self._next_call_id:06d}"

    async def place_call(
        self,
        from_number: str,
        to_number: str,
        caller_id: str,
        tenant: TenantContext,
    ) -> str:
        logger.info("Mock: placing call", extra={"to": to_number, "company_id": tenant.company_id})

        if self._should_fail:
            raise GatewayError(self._fail_error, status_code=self._fail_status)

        provider_call_id = self.peek_next_call_id()
        self._next_call_id += 1
        self._placed.append(
            {
                "provider_call_id": provider_call_id,
                "from": from_number,
                "to": to_number,
                "caller_id": caller_id,
                "company_id": tenant.company_id,
            }
        )
        return provider_call_id

    async def get_call_status(
        self,
        provider_call_id: str,
        tenant: TenantContext,
    ) -> ProviderCallSnapshot:
        self.status_requests[provider_call_id] += 1
        script = self._scripts.get(provider_call_id, self._default_script)
        index = min(self._cursor[provider_call_id], len(script) - 1)
        self._cursor[provider_call_id] += 1
        item = script[index]

        if isinstance(item, Exception):
            raise item
        if isinstance(item, ProviderCallSnapshot):
            return replace(item, provider_call_id=provider_call_id)
        return ProviderCallSnapshot(
            provider_call_id=provider_call_id,
            status=item,
            raw_payload={"mock": True, "Sid": provider_call_id, "Status": item.value},
        )
