"""
Exotel telephony gateway.

Requests go through the tenant-scoped Exotel proxy, which holds the
account credentials and forwards to ``Calls/connect.json`` and
``Calls/{sid}.json``. Every request carries the tenant bearer token and
company id.
"""

from datetime import datetime
from typing import Any

import httpx

from callaxis.shared.logging import get_logger
from callaxis.telephony.config import TelephonyConfig
from callaxis.telephony.interface import (
    CallGateway,
    CallStatus,
    GatewayError,
    ProviderCallSnapshot,
    TenantContext,
    normalize_call_status,
)

logger = get_logger(__name__)


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable provider timestamp", extra={"value": value})
        return None


def _parse_duration(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _error_message(response: httpx.Response) -> tuple[str, dict[str, Any]]:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP error! status: {response.status_code}", {}
    if not isinstance(data, dict):
        return f"HTTP error! status: {response.status_code}", {}
    rest = data.get("RestException") or {}
    message = data.get("error") or rest.get("Message") or f"HTTP error! status: {response.status_code}"
    return str(message), data


def parse_call_snapshot(payload: dict[str, Any]) -> ProviderCallSnapshot:
    """Build a snapshot from an Exotel ``{"Call": {...}}`` document.

    Raises:
        GatewayError: If the document has no call id or status.
    """
    if not isinstance(payload, dict):
        raise GatewayError("Malformed call document: expected an object", provider_response={"body": payload})
    call = payload.get("Call") if isinstance(payload.get("Call"), dict) else payload
    sid = call.get("Sid")
    raw_status = call.get("Status")
    if not sid or not raw_status:
        raise GatewayError("Malformed call document: missing Sid or Status", provider_response=payload)

    try:
        status = normalize_call_status(raw_status)
    except ValueError:
        logger.warning(
            "Unknown Exotel call status; treating as in progress",
            extra={"status": raw_status, "provider_call_id": sid},
        )
        status = CallStatus.IN_PROGRESS

    return ProviderCallSnapshot(
        provider_call_id=str(sid),
        status=status,
        duration_seconds=_parse_duration(call.get("Duration")),
        recording_url=call.get("RecordingUrl") or None,
        started_at=_parse_timestamp(call.get("StartTime")),
        ended_at=_parse_timestamp(call.get("EndTime")),
        answered_by=call.get("AnsweredBy"),
        direction=call.get("Direction"),
        from_number=call.get("From"),
        to_number=call.get("To"),
        caller_id=call.get("PhoneNumberSid"),
        raw_payload=dict(call),
    )


class ExotelGateway(CallGateway):
    """Exotel implementation of the CallGateway interface."""

    def __init__(
        self,
        config: TelephonyConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize Exotel gateway.

        Args:
            config: Telephony configuration (proxy URL, timeout, record flag).
            http_client: Optional preconfigured client (tests inject a mock transport).
        """
        self._config = config
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._config.request_timeout_seconds)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _headers(self, tenant: TenantContext) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {tenant.access_token}",
            "Accept": "application/json",
        }

    async def _send(self, method: str, url: str, tenant: TenantContext, **kwargs: Any) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.request(method, url, headers=self._headers(tenant), **kwargs)
        except httpx.HTTPError as e:
            raise GatewayError(f"Exotel request failed: {e}") from e

        if response.is_error:
            message, data = _error_message(response)
            logger.error(
                "Exotel request rejected",
                extra={"url": url, "status_code": response.status_code, "error": message},
            )
            raise GatewayError(message, status_code=response.status_code, provider_response=data)

        try:
            data = response.json()
        except ValueError as e:
            raise GatewayError(
                "Exotel returned a non-JSON body", status_code=response.status_code
            ) from e
        if not isinstance(data, dict):
            raise GatewayError(
                "Exotel returned a JSON body that is not an object",
                status_code=response.status_code,
                provider_response={"body": data},
            )
        return data

    async def place_call(
        self,
        from_number: str,
        to_number: str,
        caller_id: str,
        tenant: TenantContext,
    ) -> str:
        """Initiate an outbound call via Exotel.

        Returns:
            The Exotel call Sid.

        Raises:
            GatewayError: If call initiation fails.
        """
        body = {
            "from": from_number,
            "to": to_number,
            "callerId": caller_id,
            "company_id": tenant.company_id,
            "record": self._config.record_calls,
        }

        logger.info(
            "Initiating Exotel call",
            extra={"to": to_number, "caller_id": caller_id, "company_id": tenant.company_id},
        )

        data = await self._send("POST", self._config.calls_url("/connect"), tenant, json=body)
        call = data.get("Call") or {}
        sid = call.get("Sid")
        if not sid:
            raise GatewayError("Exotel response did not include a call Sid", provider_response=data)
        return str(sid)

    async def get_call_status(
        self,
        provider_call_id: str,
        tenant: TenantContext,
    ) -> ProviderCallSnapshot:
        """Fetch call details (status, duration, recording URL) for a call Sid."""
        data = await self._send(
            "GET",
            self._config.calls_url(f"/{provider_call_id}"),
            tenant,
            params={"company_id": tenant.company_id},
        )
        return parse_call_snapshot(data)
