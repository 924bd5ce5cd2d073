"""LINE webhook endpoint."""

from __future__ import annotations

import json
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from billrelay.api.dependencies import get_subscriber_directory
from billrelay.config import Settings, get_settings
from billrelay.database import get_db
from billrelay.services.signature import SIGNATURE_HEADER, verify_signature
from billrelay.services.subscriber_directory import SubscriberDirectory

router = APIRouter(tags=["webhooks"])

log = structlog.get_logger()

# Event types that carry evidence about a subscriber's follow state
RECONCILED_EVENT_TYPES = {"follow", "message", "unfollow"}


def _subscriber_id(event: Any) -> str | None:
    """Return source.userId for a reconcilable event, else None."""
    if not isinstance(event, dict) or event.get("type") not in RECONCILED_EVENT_TYPES:
        return None
    source = event.get("source")
    if not isinstance(source, dict):
        return None
    user_id = source.get("userId")
    return user_id if isinstance(user_id, str) and user_id else None


@router.post("/callback")
async def line_callback(
    request: Request,
    db: AsyncSession = Depends(get_db),
    directory: SubscriberDirectory = Depends(get_subscriber_directory),
    settings: Settings = Depends(get_settings),
):
    """Receive LINE webhook events.

    The signature is checked against the raw body before anything is parsed.
    Each event is reconciled independently; a failing event is logged and
    does not affect the others or the 200 response.
    """
    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    if not verify_signature(body, settings.CHANNEL_SECRET, signature):
        log.warning(
            "line_signature_invalid",
            has_signature=signature is not None,
            client=request.client.host if request.client else None,
        )
        return PlainTextResponse(
            "Unauthorized request: Signature validation failed", status_code=401,
        )

    try:
        payload = json.loads(body)
    except ValueError:
        # Signed but not JSON: nothing to reconcile, reported as 400 rather than 200
        raise HTTPException(status_code=400, detail="Invalid payload")

    events = payload.get("events") if isinstance(payload, dict) else None
    if not isinstance(events, list):
        events = []

    log.info(
        "line_webhook_received",
        destination=payload.get("destination") if isinstance(payload, dict) else None,
        event_count=len(events),
        event_types=[e.get("type") for e in events if isinstance(e, dict)],
    )

    for event in events:
        user_id = _subscriber_id(event)
        if user_id is None:
            continue
        try:
            outcome = await directory.reconcile(db, user_id)
        except Exception:
            log.exception("line_event_failed", user_id=user_id, event_type=event.get("type"))
            continue
        log.debug("line_event_reconciled", user_id=user_id, outcome=outcome.value)

    return PlainTextResponse("OK")
