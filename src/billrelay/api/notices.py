"""Administrative endpoint that composes and pushes a billing notice."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from billrelay.api.dependencies import get_notice_service
from billrelay.config import Settings, get_settings
from billrelay.database import get_db
from billrelay.services.notice_composer import LineItem
from billrelay.services.notice_service import NoticeDeliveryError, NoticeService

router = APIRouter(tags=["notices"])

SUCCESS_MESSAGE = "ส่งข้อความและบันทึกข้อมูลสำเร็จ"
FAILURE_MESSAGE = "เกิดข้อผิดพลาด"


# ---------------------------------------------------------------------------
# Request schema
# ---------------------------------------------------------------------------

class SendNoticeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1, max_length=64)
    statement_month: str = Field(..., alias="statementMonth", min_length=1, max_length=64)
    transaction_data: list[LineItem] = Field(..., alias="transactionData", min_length=1)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/send-notice", response_class=PlainTextResponse)
@router.post("/send-flex-message", response_class=PlainTextResponse, include_in_schema=False)
async def send_notice(
    body: SendNoticeRequest,
    db: AsyncSession = Depends(get_db),
    service: NoticeService = Depends(get_notice_service),
    settings: Settings = Depends(get_settings),
):
    """Compose the QR + statement notice, push it and record it.

    Any pipeline failure is reported as a single localized 500; outside
    production the underlying error is appended for debugging.
    """
    try:
        await service.send_notice(
            db,
            user_id=body.user_id,
            statement_month=body.statement_month,
            items=body.transaction_data,
        )
    except NoticeDeliveryError as exc:
        message = FAILURE_MESSAGE
        if not settings.is_production:
            message = f"{FAILURE_MESSAGE}: {exc.cause}"
        return PlainTextResponse(message, status_code=500)

    return PlainTextResponse(SUCCESS_MESSAGE)
