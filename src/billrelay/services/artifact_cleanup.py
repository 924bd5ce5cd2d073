"""Periodic removal of old QR images from the artifact store.

The sweep runs as an independent asyncio task started by the app lifespan.
A failing pass is logged and the loop carries on at the next interval; it
never affects request handling.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Protocol

import structlog

from billrelay.integrations.artifact_store import StoredArtifact
from billrelay.services.notice_service import QR_PREFIX

log = structlog.get_logger()


class SweepableStore(Protocol):
    async def list_artifacts(self, prefix: str = "") -> list[StoredArtifact]: ...

    async def delete(self, name: str) -> None: ...


async def purge_old_artifacts(
    store: SweepableStore,
    retention_days: int,
    now: datetime | None = None,
) -> int:
    """Delete QR artifacts older than *retention_days*; return how many went."""
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=retention_days)
    deleted = 0
    for artifact in await store.list_artifacts(prefix=f"{QR_PREFIX}/"):
        if artifact.created_at >= cutoff:
            continue
        await store.delete(artifact.name)
        log.debug("artifact_deleted", name=artifact.name)
        deleted += 1
    return deleted


async def run_cleanup_pass(store: SweepableStore, retention_days: int) -> int | None:
    """One contained sweep; returns the delete count or None on failure."""
    try:
        deleted = await purge_old_artifacts(store, retention_days)
    except Exception:
        log.exception("artifact_cleanup_failed")
        return None
    log.info("artifact_cleanup_completed", deleted=deleted, retention_days=retention_days)
    return deleted


async def cleanup_loop(store: SweepableStore, interval_seconds: float, retention_days: int) -> None:
    """Sweep every *interval_seconds* until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        await run_cleanup_pass(store, retention_days)
