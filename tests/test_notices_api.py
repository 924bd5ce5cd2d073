"""Tests for POST /send-notice and the health endpoint."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from billrelay.api.notices import FAILURE_MESSAGE, SUCCESS_MESSAGE
from billrelay.config import Settings, get_settings
from billrelay.integrations.artifact_store import ArtifactStoreError
from billrelay.integrations.line_client import LineApiError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

NOTICE_BODY = {
    "userId": "U123",
    "statementMonth": "มกราคม 2567",
    "transactionData": [
        {"transaction": "Coffee", "amount": 120},
        {"transaction": "Taxi", "amount": 80},
    ],
}


async def _post(app, path: str = "/send-notice", body: dict | None = None):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.post(path, json=NOTICE_BODY if body is None else body)


# ---------------------------------------------------------------------------
# 1. Success
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_send_notice_success(wired_app, mock_db, line_client, artifact_store):
    resp = await _post(wired_app)

    assert resp.status_code == 200
    assert resp.text == SUCCESS_MESSAGE
    artifact_store.upload.assert_awaited_once()

    calls = line_client.multicast.call_args_list
    assert len(calls) == 2
    assert calls[0].kwargs["messages"][0]["altText"] == "QR Code PromptPay"
    assert calls[1].kwargs["messages"][0]["altText"] == "บิลใบแจ้งยอดประจำเดือน มกราคม 2567"

    params = mock_db.execute.call_args.args[1]
    assert str(params["total_amount"]) == "200"
    mock_db.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_legacy_path_still_served(wired_app, line_client):
    resp = await _post(wired_app, path="/send-flex-message")

    assert resp.status_code == 200
    assert resp.text == SUCCESS_MESSAGE
    assert line_client.multicast.await_count == 2


# ---------------------------------------------------------------------------
# 2. Failures
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_upload_failure_returns_500_and_sends_nothing(
    wired_app, mock_db, line_client, artifact_store,
):
    artifact_store.upload.side_effect = ArtifactStoreError("disk full")

    resp = await _post(wired_app)

    assert resp.status_code == 500
    assert resp.text.startswith(FAILURE_MESSAGE)
    assert "disk full" in resp.text
    line_client.multicast.assert_not_awaited()
    mock_db.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_production_hides_error_detail(wired_app, artifact_store):
    artifact_store.upload.side_effect = ArtifactStoreError("disk full")
    wired_app.dependency_overrides[get_settings] = lambda: Settings(
        _env_file=None, APP_ENV="production",
    )

    resp = await _post(wired_app)

    assert resp.status_code == 500
    assert resp.text == FAILURE_MESSAGE


@pytest.mark.asyncio
async def test_statement_push_failure_records_nothing(wired_app, mock_db, line_client):
    line_client.multicast.side_effect = [
        "key-1",
        LineApiError("LINE multicast rejected: HTTP 400", status_code=400),
    ]

    resp = await _post(wired_app)

    assert resp.status_code == 500
    assert line_client.multicast.await_count == 2
    mock_db.execute.assert_not_awaited()


# ---------------------------------------------------------------------------
# 3. Request validation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_missing_transaction_data_rejected(wired_app, line_client):
    body = {k: v for k, v in NOTICE_BODY.items() if k != "transactionData"}

    resp = await _post(wired_app, body=body)

    assert resp.status_code == 422
    line_client.multicast.assert_not_awaited()


@pytest.mark.asyncio
async def test_negative_amount_rejected(wired_app, line_client):
    body = {**NOTICE_BODY, "transactionData": [{"transaction": "Refund", "amount": -5}]}

    resp = await _post(wired_app, body=body)

    assert resp.status_code == 422
    line_client.multicast.assert_not_awaited()


# ---------------------------------------------------------------------------
# 4. Health
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health_check():
    from billrelay.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get("/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert "timestamp" in data
