#!/usr/bin/env python3
"""One-shot cleanup of old QR images in the artifact store.

The running service performs the same sweep on a timer; this script is for
cron jobs or manual runs against a stopped service.

Usage:
    ARTIFACT_DIR=/srv/billrelay/artifacts python scripts/cleanup_artifacts.py [--days N]

Exit codes:
    0 -- sweep completed
    1 -- sweep failed (details in the log)
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from billrelay.config import settings
from billrelay.integrations.artifact_store import LocalArtifactStore
from billrelay.services.artifact_cleanup import run_cleanup_pass

log = structlog.get_logger()


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--days",
        type=int,
        default=settings.QR_RETENTION_DAYS,
        help="delete QR images older than this many days (default: %(default)s)",
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    store = LocalArtifactStore()
    log.info("artifact_cleanup_started", root=str(store.root), retention_days=args.days)
    deleted = await run_cleanup_pass(store, args.days)
    return 0 if deleted is not None else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
