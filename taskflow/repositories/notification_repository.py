"""
Notification store.

All reads and writes of ``notifications`` go through this class. It flushes
but never commits; the calling service owns the transaction.

Insert-if-absent:
    ``bulk_insert`` writes a batch as multi-row
    ``INSERT ... ON CONFLICT (dedup_key) DO NOTHING`` statements on SQLite and
    PostgreSQL. Other dialects get one executemany for keyless rows and a
    savepoint + IntegrityError per keyed row. Two scans racing on the same
    (user, type, entity) key therefore create one row between them.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from taskflow.models.notification import REMINDER_TYPES, Notification, build_dedup_key
from taskflow.utils.helpers import utcnow

logger = logging.getLogger(__name__)

# Rows per INSERT statement; keeps SQLite under its bound-parameter limit
_BATCH_SIZE = 500

_CONFLICT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


class NotificationRepository:
    def __init__(self, session):
        self.session = session

    # ── Reads ─────────────────────────────────────────────────────────────

    def get(self, notification_id: int) -> Notification | None:
        return self.session.get(Notification, notification_id)

    def list_for_user(self, user_id: int, *, unread_only: bool = False,
                      limit: int = 50, offset: int = 0) -> tuple[list[Notification], int]:
        """Return (page, total) for a user, newest first."""
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        items = self.session.execute(
            stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit)
        ).scalars().all()
        return list(items), total

    def count_unread(self, user_id: int) -> int:
        return self.session.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        ).scalar_one()

    def existing_unread_keys(self, keys) -> set[str]:
        """Return the subset of dedup keys currently held by an unread reminder."""
        keys = [k for k in keys if k]
        if not keys:
            return set()
        rows = self.session.execute(
            select(Notification.dedup_key).where(Notification.dedup_key.in_(keys))
        ).scalars().all()
        return set(rows)

    def outstanding_reminder_keys(self, candidates) -> set[str]:
        """Return the dedup keys of candidates that already have an unread reminder.

        ``candidates`` are ``(user_id, type, task_id, project_id)`` tuples.
        Unread rows are matched on that tuple rather than on the stored key,
        so a manual reminder saved without a key still counts as outstanding.
        """
        candidates = list(candidates)
        wanted = {build_dedup_key(*c) for c in candidates} - {None}
        if not wanted:
            return set()
        rows = self.session.execute(
            select(Notification.user_id, Notification.type,
                   Notification.task_id, Notification.project_id)
            .where(
                Notification.is_read.is_(False),
                Notification.type.in_(sorted({c[1] for c in candidates} & REMINDER_TYPES)),
                Notification.user_id.in_(sorted({c[0] for c in candidates})),
            )
        ).all()
        return wanted & {build_dedup_key(*row) for row in rows}

    # ── Writes ────────────────────────────────────────────────────────────

    def create(self, **fields) -> Notification:
        notif = Notification(**fields)
        self.session.add(notif)
        self.session.flush()
        return notif

    def bulk_insert(self, rows: list[dict]) -> int:
        """Insert rows as one batch and return how many were actually written.

        Rows whose ``dedup_key`` already exists are skipped silently.
        """
        if not rows:
            return 0

        conflict_insert = _CONFLICT_INSERTS.get(self.session.get_bind().dialect.name)
        if conflict_insert is not None:
            created = self._insert_ignoring_conflicts(conflict_insert, rows)
        else:
            created = self._insert_with_savepoints(rows)

        skipped = len(rows) - created
        if skipped:
            logger.info("Notification batch: %d written, %d already outstanding", created, skipped)
        return created

    def _insert_ignoring_conflicts(self, conflict_insert, rows: list[dict]) -> int:
        table = Notification.__table__
        created = 0
        for start in range(0, len(rows), _BATCH_SIZE):
            stmt = (
                conflict_insert(table)
                .values(rows[start:start + _BATCH_SIZE])
                .on_conflict_do_nothing(index_elements=["dedup_key"])
            )
            created += self.session.execute(stmt).rowcount
        return created

    def _insert_with_savepoints(self, rows: list[dict]) -> int:
        """Dialects without ON CONFLICT: keyless rows in one executemany, keyed rows one savepoint each."""
        table = Notification.__table__
        keyless = [row for row in rows if not row.get("dedup_key")]
        created = 0
        if keyless:
            self.session.execute(table.insert(), keyless)
            created = len(keyless)
        for row in rows:
            if not row.get("dedup_key"):
                continue
            try:
                with self.session.begin_nested():
                    self.session.execute(table.insert().values(**row))
                created += 1
            except IntegrityError:
                logger.debug("Skipped duplicate reminder key=%s", row["dedup_key"])
        return created

    def mark_read(self, notification: Notification) -> Notification:
        notification.mark_read()
        self.session.flush()
        return notification

    def mark_all_read(self, user_id: int) -> int:
        result = self.session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=utcnow(), dedup_key=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def delete(self, notification: Notification) -> None:
        self.session.delete(notification)
        self.session.flush()
