"""
Vendor notification service.

Push delivery runs strictly after a transaction has committed, off the request
thread, and its outcome never changes assignment or quota results:

- Notifier.notify(vendor, event, payload) -> NotificationResult
- PushGatewayNotifier posts to an HTTP push gateway with httpx
- NotificationDispatcher submits deliveries to a thread pool, clears stored
  push tokens the gateway reports as permanently invalid, and logs every
  outcome

Failure semantics:
- no push token            -> sent=False, reason="no token"
- 404/410 or an invalid-token error code from the gateway
                           -> sent=False, token_invalid=True
- timeouts, 5xx, transport errors -> sent=False, token_invalid=False
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol

import httpx

from domain.assignment import AssignmentResult
from domain.errors import NotificationFailure
from domain.vendor import Vendor
from repositories.base import VendorStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_WORKERS = 4

INVALID_TOKEN_CODES = {
    "messaging/invalid-registration-token",
    "messaging/registration-token-not-registered",
    "UNREGISTERED",
    "INVALID_ARGUMENT",
}


class NotificationEvent(str, Enum):
    LEADS_ASSIGNED = "lead_assignment"
    QUOTA_ADJUSTED = "lead_adjustment"


@dataclass(frozen=True, slots=True)
class NotificationResult:
    sent: bool
    reason: Optional[str] = None
    token_invalid: bool = False

    @classmethod
    def from_failure(cls, failure: NotificationFailure) -> "NotificationResult":
        return cls(sent=False, reason=failure.message, token_invalid=failure.token_invalid)


class Notifier(Protocol):
    def notify(
        self, vendor: Vendor, event: NotificationEvent, payload: Mapping[str, Any]
    ) -> NotificationResult: ...


def build_message(event: NotificationEvent, payload: Mapping[str, Any]) -> Dict[str, str]:
    """Title/body shown to the vendor for an event."""

    count = int(payload.get("count", 0))
    plural = "s" if count != 1 else ""
    if event == NotificationEvent.LEADS_ASSIGNED:
        return {
            "title": "New leads assigned",
            "body": f"{count} new lead{plural} assigned to you",
        }
    direction = "added to" if payload.get("type") == "add" else "removed from"
    return {
        "title": "Lead quota updated",
        "body": f"{count} lead{plural} {direction} your quota",
    }


class PushGatewayNotifier:
    """Deliver push messages through an HTTP gateway (FCM-style JSON body)."""

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._client = client or httpx.Client(timeout=timeout)

    def notify(
        self, vendor: Vendor, event: NotificationEvent, payload: Mapping[str, Any]
    ) -> NotificationResult:
        if not vendor.push_token or not vendor.push_token.strip():
            return NotificationResult(sent=False, reason="no token")

        body = {
            "token": vendor.push_token,
            "notification": build_message(event, payload),
            "data": {"type": event.value, **{k: str(v) for k, v in payload.items()}},
        }
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            resp = self._client.post(self._url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            return NotificationResult(sent=False, reason=f"timeout: {e}")
        except httpx.HTTPError as e:
            return NotificationResult(sent=False, reason=f"transport error: {e}")

        if resp.status_code < 300:
            return NotificationResult(sent=True)

        try:
            detail = resp.json()
        except ValueError:
            detail = {}
        error = detail.get("error") if isinstance(detail, dict) else None
        code = error.get("code") if isinstance(error, dict) else error
        if resp.status_code in (404, 410) or str(code) in INVALID_TOKEN_CODES:
            return NotificationResult.from_failure(
                NotificationFailure(f"invalid push token ({code or resp.status_code})", token_invalid=True)
            )
        return NotificationResult.from_failure(
            NotificationFailure(f"gateway error {resp.status_code}")
        )

    def close(self) -> None:
        self._client.close()


class LoggingNotifier:
    """Used when no push gateway is configured: records the event, sends nothing."""

    def notify(
        self, vendor: Vendor, event: NotificationEvent, payload: Mapping[str, Any]
    ) -> NotificationResult:
        logger.info(
            f"Push gateway not configured; skipped {event.value} for vendor {vendor.vendor_id}",
            extra={"vendor_id": vendor.vendor_id, "event": event.value},
        )
        return NotificationResult(sent=False, reason="push gateway not configured")


class NotificationDispatcher:
    """Fire-and-forget delivery of vendor notifications after commit."""

    def __init__(
        self,
        notifier: Notifier,
        vendor_store: VendorStore,
        *,
        max_workers: int = DEFAULT_WORKERS,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self._notifier = notifier
        self._vendor_store = vendor_store
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="notify"
        )

    def deliver(
        self, vendor_id: str, event: NotificationEvent, payload: Mapping[str, Any]
    ) -> NotificationResult:
        """Synchronous delivery with bookkeeping. Never raises."""

        try:
            vendor = self._vendor_store.get(vendor_id)
            if vendor is None:
                result = NotificationResult(sent=False, reason="vendor not found")
            else:
                result = self._notifier.notify(vendor, event, payload)
                if result.token_invalid:
                    self._vendor_store.clear_push_token(vendor_id)
                    logger.warning(
                        f"Cleared invalid push token for vendor {vendor_id}",
                        extra={"vendor_id": vendor_id, "reason": result.reason},
                    )
        except Exception as e:  # noqa: BLE001
            logger.warning(
                f"Notification to vendor {vendor_id} failed: {e}",
                extra={"vendor_id": vendor_id, "event": event.value},
            )
            return NotificationResult(sent=False, reason=str(e))

        if result.sent:
            logger.info(
                f"Notification {event.value} sent to vendor {vendor_id}",
                extra={"vendor_id": vendor_id, "event": event.value},
            )
        else:
            logger.warning(
                f"Notification {event.value} not sent to vendor {vendor_id}: {result.reason}",
                extra={"vendor_id": vendor_id, "event": event.value, "reason": result.reason},
            )
        return result

    def notify_vendor(
        self, vendor_id: str, event: NotificationEvent, payload: Mapping[str, Any]
    ) -> "Future[NotificationResult]":
        return self._executor.submit(self.deliver, vendor_id, event, dict(payload))

    def dispatch_assignments(self, result: AssignmentResult) -> List["Future[NotificationResult]"]:
        """One notification per vendor that received at least one lead."""

        return [
            self.notify_vendor(
                vendor_id,
                NotificationEvent.LEADS_ASSIGNED,
                {"count": result.per_vendor_counts[vendor_id]},
            )
            for vendor_id in result.affected_vendors
        ]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


__all__ = [
    "INVALID_TOKEN_CODES",
    "LoggingNotifier",
    "NotificationDispatcher",
    "NotificationEvent",
    "NotificationResult",
    "Notifier",
    "PushGatewayNotifier",
    "build_message",
]
