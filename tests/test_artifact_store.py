"""Tests for the local artifact store and the QR retention sweep."""

from __future__ import annotations

import asyncio
import os
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from billrelay.integrations.artifact_store import ArtifactStoreError, LocalArtifactStore
from billrelay.services.artifact_cleanup import (
    cleanup_loop,
    purge_old_artifacts,
    run_cleanup_pass,
)


def _store(tmp_path) -> LocalArtifactStore:
    return LocalArtifactStore(root=tmp_path, public_base_url="https://relay.example.com/")


def _age(path, days: float) -> None:
    stamp = time.time() - days * 86400
    os.utime(path, (stamp, stamp))


# ---------------------------------------------------------------------------
# 1. LocalArtifactStore
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_upload_writes_file_and_returns_public_url(tmp_path):
    store = _store(tmp_path)

    url = await store.upload("qrcodes/qr_U123_1.png", b"\x89PNG-data")

    assert url == "https://relay.example.com/artifacts/qrcodes/qr_U123_1.png"
    assert (tmp_path / "qrcodes" / "qr_U123_1.png").read_bytes() == b"\x89PNG-data"
    assert not list(tmp_path.rglob("*.part"))


@pytest.mark.asyncio
async def test_upload_rejects_names_outside_root(tmp_path):
    store = _store(tmp_path / "store")

    with pytest.raises(ArtifactStoreError):
        await store.upload("../escape.png", b"x")

    assert not (tmp_path / "escape.png").exists()


@pytest.mark.asyncio
async def test_list_filters_by_prefix(tmp_path):
    store = _store(tmp_path)
    await store.upload("qrcodes/a.png", b"a")
    await store.upload("other/b.png", b"bb")

    items = await store.list_artifacts(prefix="qrcodes/")

    assert [item.name for item in items] == ["qrcodes/a.png"]
    assert items[0].size == 1


@pytest.mark.asyncio
async def test_delete_missing_file_is_noop(tmp_path):
    store = _store(tmp_path)

    await store.delete("qrcodes/never-written.png")


# ---------------------------------------------------------------------------
# 2. Retention sweep
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_purge_deletes_only_expired_qr_images(tmp_path):
    store = _store(tmp_path)
    await store.upload("qrcodes/old.png", b"o")
    await store.upload("qrcodes/new.png", b"n")
    await store.upload("keep/old.png", b"k")
    _age(tmp_path / "qrcodes" / "old.png", days=8)
    _age(tmp_path / "keep" / "old.png", days=30)

    deleted = await purge_old_artifacts(store, retention_days=7)

    assert deleted == 1
    assert not (tmp_path / "qrcodes" / "old.png").exists()
    assert (tmp_path / "qrcodes" / "new.png").exists()
    assert (tmp_path / "keep" / "old.png").exists()


@pytest.mark.asyncio
async def test_purge_uses_supplied_clock(tmp_path):
    store = _store(tmp_path)
    await store.upload("qrcodes/today.png", b"t")

    future = datetime.now(timezone.utc) + timedelta(days=10)
    deleted = await purge_old_artifacts(store, retention_days=7, now=future)

    assert deleted == 1


@pytest.mark.asyncio
async def test_cleanup_pass_contains_failures():
    store = AsyncMock()
    store.list_artifacts.side_effect = OSError("disk gone")

    assert await run_cleanup_pass(store, retention_days=7) is None


@pytest.mark.asyncio
async def test_cleanup_loop_runs_until_cancelled():
    store = AsyncMock()

    with patch(
        "billrelay.services.artifact_cleanup.run_cleanup_pass",
        new_callable=AsyncMock,
    ) as mock_pass:
        mock_pass.side_effect = [3, asyncio.CancelledError()]
        with pytest.raises(asyncio.CancelledError):
            await cleanup_loop(store, interval_seconds=0, retention_days=7)

    assert mock_pass.await_count == 2
    mock_pass.assert_awaited_with(store, 7)
