"""
Service wiring for the API.

get_admin_operations() builds the Supabase-backed stores on first use (the
client connects then, not at import); tests replace it through
app.dependency_overrides.
"""

from __future__ import annotations

import os
from functools import lru_cache

from fastapi.responses import JSONResponse

from repositories.client import LEADS_TABLE, VENDORS_TABLE, get_supabase
from repositories.lead_repository import SupabaseLeadStore
from repositories.vendor_repository import SupabaseVendorStore
from services.admin_operations import AdminOperations, OperationResult
from services.notification_service import (
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_WORKERS,
    LoggingNotifier,
    NotificationDispatcher,
    Notifier,
    PushGatewayNotifier,
)
from services.quota_ledger import DEFAULT_MAX_RETRIES

_STATUS_BY_CODE = {
    "validation_error": 400,
    "not_found": 404,
    "conflict": 409,
    "capacity_exceeded": 409,
    "internal_error": 500,
}


@lru_cache(maxsize=1)
def get_admin_operations() -> AdminOperations:
    client = get_supabase()
    lead_store = SupabaseLeadStore(client, LEADS_TABLE)
    vendor_store = SupabaseVendorStore(client, VENDORS_TABLE)

    push_url = os.getenv("PUSH_GATEWAY_URL")
    notifier: Notifier
    if push_url:
        notifier = PushGatewayNotifier(
            push_url,
            os.getenv("PUSH_GATEWAY_KEY"),
            timeout=float(os.getenv("PUSH_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS))),
        )
    else:
        notifier = LoggingNotifier()
    dispatcher = NotificationDispatcher(
        notifier,
        vendor_store,
        max_workers=int(os.getenv("NOTIFY_WORKERS", str(DEFAULT_WORKERS))),
    )

    return AdminOperations.build(
        lead_store,
        vendor_store,
        max_retries=int(os.getenv("QUOTA_MAX_RETRIES", str(DEFAULT_MAX_RETRIES))),
        dispatcher=dispatcher,
    )


def respond(result: OperationResult) -> JSONResponse:
    """Map an OperationResult to an HTTP response with the same body."""

    if result.success:
        return JSONResponse(status_code=200, content=result.to_dict())
    code = (result.error or {}).get("code", "internal_error")
    return JSONResponse(status_code=_STATUS_BY_CODE.get(code, 400), content=result.to_dict())
