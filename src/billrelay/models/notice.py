"""Billing notice records -- one row per successfully dispatched notice."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from billrelay.models.base import Base


class NoticeTransaction(Base):
    __tablename__ = "notice_transactions"

    notice_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    statement_month: Mapped[str] = mapped_column(String(64), nullable=False)
    # Ordered list of {"transaction": str, "amount": str}
    transaction_data: Mapped[list] = mapped_column(JSONB, nullable=False)
    # Unscaled NUMERIC: keeps the exact sum, display rounding happens at render time
    total_amount: Mapped[Decimal] = mapped_column(Numeric, nullable=False)
    qr_code_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    promptpay_id: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_ref: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
