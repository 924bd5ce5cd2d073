"""Subscriber directory -- keeps ``line_users`` in step with LINE.

reconcile() is read-then-conditional-write:

    absent  + Profile        -> insert status=active
    absent  + Blocked        -> insert status=blocked
    present + Blocked        -> status=blocked (only if not already blocked)
    present + Profile        -> no write
    any     + TransientError -> no write

Two concurrent first sightings of the same id may both insert; the upsert
makes the later write win, except that a row already marked blocked is
left untouched. Status never goes from blocked back to active here.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Protocol

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from billrelay.integrations.line_client import Blocked, Profile, ProfileResult, TransientError
from billrelay.models.subscriber import SubscriberStatus
from billrelay.services.audit_logger import AuditLogger

log = structlog.get_logger()


class ProfileSource(Protocol):
    async def get_profile(self, user_id: str) -> ProfileResult: ...


class ReconcileOutcome(str, enum.Enum):
    CREATED = "created"
    CREATED_BLOCKED = "created_blocked"
    MARKED_BLOCKED = "marked_blocked"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"


_PERSISTENCE_ERRORS = (SQLAlchemyError, OSError)


class SubscriberDirectory:
    """Reconciles a subscriber's lifecycle state against the database."""

    def __init__(self, line_client: ProfileSource, audit: AuditLogger | None = None) -> None:
        self._line = line_client
        self._audit = audit or AuditLogger()

    async def reconcile(self, db: AsyncSession, user_id: str) -> ReconcileOutcome:
        try:
            stored_status = await self._load_status(db, user_id)
        except _PERSISTENCE_ERRORS:
            log.exception("subscriber_lookup_failed", user_id=user_id)
            await self._rollback(db)
            return ReconcileOutcome.FAILED

        result = await self._line.get_profile(user_id)
        if isinstance(result, TransientError):
            log.warning("profile_fetch_failed", user_id=user_id, reason=result.reason)
            return ReconcileOutcome.SKIPPED

        if stored_status is None:
            return await self._register(db, user_id, result)

        if isinstance(result, Blocked) and stored_status != SubscriberStatus.BLOCKED.value:
            return await self._mark_blocked(db, user_id, stored_status)

        return ReconcileOutcome.UNCHANGED

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _register(
        self, db: AsyncSession, user_id: str, result: Profile | Blocked,
    ) -> ReconcileOutcome:
        if isinstance(result, Profile):
            status, display_name = SubscriberStatus.ACTIVE.value, result.display_name
        else:
            status, display_name = SubscriberStatus.BLOCKED.value, None

        now = datetime.now(timezone.utc)
        try:
            await db.execute(
                text(
                    "INSERT INTO line_users "
                    "(user_id, display_name, status, created_at, updated_at) "
                    "VALUES (:user_id, :display_name, :status, :now, :now) "
                    "ON CONFLICT (user_id) DO UPDATE SET "
                    "display_name = EXCLUDED.display_name, "
                    "status = EXCLUDED.status, "
                    "updated_at = EXCLUDED.updated_at "
                    "WHERE line_users.status <> :blocked"
                ),
                {
                    "user_id": user_id,
                    "display_name": display_name,
                    "status": status,
                    "now": now,
                    "blocked": SubscriberStatus.BLOCKED.value,
                },
            )
            await db.commit()
        except _PERSISTENCE_ERRORS:
            log.exception("subscriber_insert_failed", user_id=user_id, status=status)
            await self._rollback(db)
            return ReconcileOutcome.FAILED

        log.info("subscriber_registered", user_id=user_id, display_name=display_name, status=status)
        self._audit.log_subscriber_status(user_id, status, display_name=display_name)
        if status == SubscriberStatus.BLOCKED.value:
            return ReconcileOutcome.CREATED_BLOCKED
        return ReconcileOutcome.CREATED

    async def _mark_blocked(
        self, db: AsyncSession, user_id: str, previous_status: str,
    ) -> ReconcileOutcome:
        try:
            await db.execute(
                text(
                    "UPDATE line_users "
                    "SET status = :status, updated_at = :now "
                    "WHERE user_id = :user_id"
                ),
                {
                    "user_id": user_id,
                    "status": SubscriberStatus.BLOCKED.value,
                    "now": datetime.now(timezone.utc),
                },
            )
            await db.commit()
        except _PERSISTENCE_ERRORS:
            log.exception("subscriber_block_update_failed", user_id=user_id)
            await self._rollback(db)
            return ReconcileOutcome.FAILED

        log.warning("subscriber_blocked", user_id=user_id, previous_status=previous_status)
        self._audit.log_subscriber_status(
            user_id, SubscriberStatus.BLOCKED.value, previous_status=previous_status,
        )
        return ReconcileOutcome.MARKED_BLOCKED

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _load_status(db: AsyncSession, user_id: str) -> str | None:
        result = await db.execute(
            text("SELECT status FROM line_users WHERE user_id = :user_id"),
            {"user_id": user_id},
        )
        row = result.fetchone()
        return None if row is None else row[0]

    @staticmethod
    async def _rollback(db: AsyncSession) -> None:
        try:
            await db.rollback()
        except _PERSISTENCE_ERRORS:
            log.exception("rollback_failed")
