"""Structured audit log for subscriber lifecycle and billing notices.

Every entry carries an ``audit: true`` flag so production log pipelines can
filter on it easily.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import structlog


log = structlog.get_logger()


class AuditLogger:
    """Emits ``audit_event`` lines; performs no I/O beyond the log sink."""

    def log_subscriber_status(
        self,
        user_id: str,
        status: str,
        previous_status: str | None = None,
        display_name: str | None = None,
    ) -> None:
        """Record a subscriber being registered or changing status."""
        log.info(
            "audit_event",
            event_type="subscriber_status",
            timestamp=datetime.now(timezone.utc).isoformat(),
            user_id=user_id,
            status=status,
            previous_status=previous_status,
            display_name=display_name,
            audit=True,
        )

    def log_notice_sent(
        self,
        user_id: str,
        statement_month: str,
        total_amount: Decimal,
        payment_ref: str,
        retry_keys: list[str],
        notice_id=None,
    ) -> None:
        """Record a billing notice that reached the recipient."""
        log.info(
            "audit_event",
            event_type="notice_sent",
            timestamp=datetime.now(timezone.utc).isoformat(),
            user_id=user_id,
            statement_month=statement_month,
            total_amount=str(total_amount),
            payment_ref=payment_ref,
            retry_keys=retry_keys,
            notice_id=str(notice_id) if notice_id else None,
            audit=True,
        )
