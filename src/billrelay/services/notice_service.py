"""Billing notice pipeline -- compose, upload, push, persist.

State machine (one run per send request):

    COMPOSING -> UPLOADING -> DISPATCHING_QR -> DISPATCHING_STATEMENT
              -> PERSISTING -> DONE

Any stage failure moves the run to FAILED and aborts the remaining stages.
Nothing is retried and messages already pushed stay delivered; a failure
while pushing the statement leaves the recipient with the QR image only.
"""

from __future__ import annotations

import enum
import json
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Protocol

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from billrelay.integrations.promptpay import build_payment_payload, render_qr_png
from billrelay.services.audit_logger import AuditLogger
from billrelay.services.notice_composer import (
    LineItem,
    build_notice_view,
    compute_total,
    new_payment_ref,
)

log = structlog.get_logger()

QR_PREFIX = "qrcodes"


# ---------------------------------------------------------------------------
# Protocols for the injected collaborators
# ---------------------------------------------------------------------------

class Messenger(Protocol):
    async def multicast(
        self, to: list[str], messages: list[dict[str, Any]], retry_key: str | None = None,
    ) -> str: ...


class ArtifactUploader(Protocol):
    async def upload(self, name: str, data: bytes) -> str: ...


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

class NoticeStage(str, enum.Enum):
    COMPOSING = "composing"
    UPLOADING = "uploading"
    DISPATCHING_QR = "dispatching_qr"
    DISPATCHING_STATEMENT = "dispatching_statement"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class NoticeDeliveryError(Exception):
    """Raised when any stage of the notice pipeline fails."""

    def __init__(self, stage: NoticeStage, cause: BaseException) -> None:
        super().__init__(f"Notice failed while {stage.value}: {cause}")
        self.stage = stage
        self.cause = cause


@dataclass
class NoticeContext:
    """Mutable state for a single notice run."""

    user_id: str
    statement_month: str
    items: list[LineItem]
    promptpay_id: str
    notice_id: uuid.UUID = field(default_factory=uuid.uuid4)
    payment_ref: str = field(default_factory=new_payment_ref)
    stage: NoticeStage = NoticeStage.COMPOSING
    total_amount: Decimal = Decimal("0")
    qr_code_url: str = ""
    retry_keys: list[str] = field(default_factory=list)

    def advance(self, stage: NoticeStage) -> None:
        log.debug("notice_stage", notice_id=str(self.notice_id), stage=stage.value)
        self.stage = stage


# ---------------------------------------------------------------------------
# Delivery dispatcher
# ---------------------------------------------------------------------------

class DeliveryDispatcher:
    """Pushes a notice's messages one call at a time, then records it.

    Each push gets its own retry key so a transport-level retry of that
    call is deduplicated by LINE.
    """

    def __init__(self, messenger: Messenger) -> None:
        self._messenger = messenger

    async def send(self, db: AsyncSession, ctx: NoticeContext, messages: list[dict[str, Any]]) -> None:
        for index, message in enumerate(messages):
            ctx.advance(NoticeStage.DISPATCHING_QR if index == 0 else NoticeStage.DISPATCHING_STATEMENT)
            retry_key = await self._messenger.multicast(
                to=[ctx.user_id], messages=[message], retry_key=str(uuid.uuid4()),
            )
            ctx.retry_keys.append(retry_key)

        log.info(
            "notice_messages_sent",
            user_id=ctx.user_id,
            total_amount=str(ctx.total_amount),
            message_count=len(messages),
            payment_ref=ctx.payment_ref,
        )

        ctx.advance(NoticeStage.PERSISTING)
        await self._save_record(db, ctx)
        await db.commit()

    @staticmethod
    async def _save_record(db: AsyncSession, ctx: NoticeContext) -> None:
        """Insert the append-only notice_transactions row."""
        await db.execute(
            text(
                "INSERT INTO notice_transactions "
                "(notice_id, user_id, statement_month, transaction_data, total_amount, "
                "qr_code_url, promptpay_id, payment_ref, created_at) "
                "VALUES (:notice_id, :user_id, :statement_month, :transaction_data, "
                ":total_amount, :qr_code_url, :promptpay_id, :payment_ref, :created_at)"
            ),
            {
                "notice_id": ctx.notice_id,
                "user_id": ctx.user_id,
                "statement_month": ctx.statement_month,
                "transaction_data": json.dumps(
                    [{"transaction": i.transaction, "amount": str(i.amount)} for i in ctx.items],
                    ensure_ascii=False,
                ),
                "total_amount": ctx.total_amount,
                "qr_code_url": ctx.qr_code_url,
                "promptpay_id": ctx.promptpay_id,
                "payment_ref": ctx.payment_ref,
                "created_at": datetime.now(timezone.utc),
            },
        )


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NoticeResult:
    notice_id: uuid.UUID
    total_amount: Decimal
    qr_code_url: str
    payment_ref: str
    retry_keys: list[str]


class NoticeService:
    """Runs the notice state machine for one recipient."""

    def __init__(
        self,
        messenger: Messenger,
        artifact_store: ArtifactUploader,
        promptpay_id: str,
        audit: AuditLogger | None = None,
    ) -> None:
        self._store = artifact_store
        self._dispatcher = DeliveryDispatcher(messenger)
        self._promptpay_id = promptpay_id
        self._audit = audit or AuditLogger()

    async def send_notice(
        self,
        db: AsyncSession,
        user_id: str,
        statement_month: str,
        items: list[LineItem],
    ) -> NoticeResult:
        ctx = NoticeContext(
            user_id=user_id,
            statement_month=statement_month,
            items=items,
            promptpay_id=self._promptpay_id,
        )
        try:
            png = self._compose(ctx)

            ctx.advance(NoticeStage.UPLOADING)
            ctx.qr_code_url = await self._store.upload(self._qr_name(ctx), png)
            log.info("qr_uploaded", user_id=user_id, qr_code_url=ctx.qr_code_url[:50] + "...")

            messages = build_notice_view(
                statement_month, ctx.total_amount, items, ctx.payment_ref, ctx.qr_code_url,
            )
            await self._dispatcher.send(db, ctx, messages)
        except Exception as exc:
            failed_stage = ctx.stage
            ctx.advance(NoticeStage.FAILED)
            log.exception(
                "notice_failed",
                user_id=user_id,
                statement_month=statement_month,
                stage=failed_stage.value,
                payment_ref=ctx.payment_ref,
            )
            raise NoticeDeliveryError(failed_stage, exc) from exc

        ctx.advance(NoticeStage.DONE)
        log.info(
            "notice_saved",
            user_id=user_id,
            statement_month=statement_month,
            total_amount=str(ctx.total_amount),
            transaction_count=len(items),
        )
        self._audit.log_notice_sent(
            user_id=user_id,
            statement_month=statement_month,
            total_amount=ctx.total_amount,
            payment_ref=ctx.payment_ref,
            retry_keys=ctx.retry_keys,
            notice_id=ctx.notice_id,
        )
        return NoticeResult(
            notice_id=ctx.notice_id,
            total_amount=ctx.total_amount,
            qr_code_url=ctx.qr_code_url,
            payment_ref=ctx.payment_ref,
            retry_keys=list(ctx.retry_keys),
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _compose(self, ctx: NoticeContext) -> bytes:
        """Total the items and render the PromptPay QR as PNG bytes."""
        ctx.total_amount = compute_total(ctx.items)
        log.info(
            "qr_generating",
            user_id=ctx.user_id,
            total_amount=str(ctx.total_amount),
            promptpay_id=self._promptpay_id,
            statement_month=ctx.statement_month,
            payment_ref=ctx.payment_ref,
        )
        payload = build_payment_payload(self._promptpay_id, ctx.total_amount)
        return render_qr_png(payload)

    @staticmethod
    def _qr_name(ctx: NoticeContext) -> str:
        """Unique per notice: user id, upload time and notice id."""
        safe_id = re.sub(r"[^A-Za-z0-9_-]", "_", ctx.user_id)
        return f"{QR_PREFIX}/qr_{safe_id}_{int(time.time() * 1000)}_{ctx.notice_id.hex}.png"
