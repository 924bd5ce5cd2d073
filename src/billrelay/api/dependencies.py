"""Shared FastAPI dependencies.

Long-lived collaborators are built once in the app lifespan and stored on
``app.state``; these functions hand them to routes so tests can swap them
through ``app.dependency_overrides`` or by assigning ``app.state``.
"""

from __future__ import annotations

from fastapi import Depends, Request

from billrelay.config import Settings, get_settings
from billrelay.integrations.artifact_store import LocalArtifactStore
from billrelay.integrations.line_client import LineClient
from billrelay.services.notice_service import NoticeService
from billrelay.services.subscriber_directory import SubscriberDirectory


def get_line_client(request: Request) -> LineClient:
    return request.app.state.line_client


def get_artifact_store(request: Request) -> LocalArtifactStore:
    return request.app.state.artifact_store


def get_subscriber_directory(
    line_client: LineClient = Depends(get_line_client),
) -> SubscriberDirectory:
    return SubscriberDirectory(line_client)


def get_notice_service(
    line_client: LineClient = Depends(get_line_client),
    artifact_store: LocalArtifactStore = Depends(get_artifact_store),
    settings: Settings = Depends(get_settings),
) -> NoticeService:
    return NoticeService(line_client, artifact_store, settings.PROMPTPAY_ID)
