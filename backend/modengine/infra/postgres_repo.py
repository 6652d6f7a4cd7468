"""PostgreSQL persistence for reports, the action ledger and user restrictions."""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Iterator, Optional

import asyncpg

from modengine.domain.errors import AlreadyReversed, NotFound, RestrictionConflict, StoreUnavailable
from modengine.domain.models import (
    ActionDetails,
    ActionKind,
    ContentActionDetails,
    ModerationAction,
    Report,
    ReportReason,
    ReportStatus,
    RestrictionDetails,
    RestrictionKind,
    SuspensionDetails,
    TargetKind,
    UserRestriction,
    WarningDetails,
)
from modengine.domain.repository import (
    ActionFilters,
    ModerationRepository,
    ModerationUnitOfWork,
    QueueFilters,
)

_TRANSIENT_ERRORS = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    asyncpg.CannotConnectNowError,
    asyncpg.TooManyConnectionsError,
    asyncio.TimeoutError,
    OSError,
)

REPORT_COLUMNS = """
    id, reporter_id, reported_user_id, report_type, target_id, reason, description, status, priority,
    moderator_flagged, reviewed_by, reviewed_at, resolution_notes, action_taken, created_at, updated_at
"""

ACTION_COLUMNS = """
    id, moderator_id, target_user_id, action_type, target_type, target_id, reason, duration_days, expires_at,
    related_report_id, internal_notes, notification_sent, metadata, created_at, revoked_at, revoked_by,
    reversal_reason
"""

RESTRICTION_COLUMNS = """
    id, user_id, restriction_type, reason, applied_by, related_action_id, expires_at, is_active, created_at,
    updated_at
"""


@contextmanager
def _store_errors() -> Iterator[None]:
    try:
        yield
    except _TRANSIENT_ERRORS as exc:
        raise StoreUnavailable("Moderation store is unavailable, retry later") from exc


def _opt_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def details_to_json(details: ActionDetails) -> str:
    if isinstance(details, ContentActionDetails):
        payload: dict[str, Any] = {
            "variant": "content",
            "target_kind": details.target_kind.value,
            "target_id": details.target_id,
        }
    elif isinstance(details, WarningDetails):
        payload = {"variant": "warning", "notification_message": details.notification_message}
    elif isinstance(details, SuspensionDetails):
        payload = {"variant": "suspension", "duration_days": details.duration_days, "permanent": details.permanent}
    else:
        payload = {
            "variant": "restriction",
            "restriction_type": details.restriction_kind.value,
            "duration_days": details.duration_days,
        }
    return json.dumps(payload)


def details_from_json(raw: Any) -> ActionDetails:
    data = json.loads(raw) if isinstance(raw, str) else dict(raw or {})
    variant = data.get("variant")
    if variant == "content":
        return ContentActionDetails(target_kind=TargetKind(data["target_kind"]), target_id=str(data["target_id"]))
    if variant == "warning":
        return WarningDetails(notification_message=data.get("notification_message"))
    if variant == "suspension":
        return SuspensionDetails(duration_days=data.get("duration_days"), permanent=bool(data.get("permanent")))
    if variant == "restriction":
        return RestrictionDetails(
            restriction_kind=RestrictionKind(data["restriction_type"]),
            duration_days=data.get("duration_days"),
        )
    raise ValueError(f"unknown action metadata variant: {variant!r}")


def _row_to_report(row: asyncpg.Record) -> Report:
    return Report(
        id=str(row["id"]),
        reporter_id=_opt_str(row["reporter_id"]),
        reported_user_id=_opt_str(row["reported_user_id"]),
        target_kind=TargetKind(row["report_type"]),
        target_id=str(row["target_id"]),
        reason=ReportReason(row["reason"]),
        description=row["description"],
        status=ReportStatus(row["status"]),
        priority=int(row["priority"]),
        moderator_flagged=bool(row["moderator_flagged"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        reviewed_by=_opt_str(row["reviewed_by"]),
        reviewed_at=row["reviewed_at"],
        resolution_notes=row["resolution_notes"],
        action_taken=ActionKind(row["action_taken"]) if row["action_taken"] else None,
    )


def _row_to_action(row: asyncpg.Record) -> ModerationAction:
    return ModerationAction(
        id=str(row["id"]),
        actor_id=str(row["moderator_id"]),
        target_user_id=str(row["target_user_id"]),
        kind=ActionKind(row["action_type"]),
        reason=row["reason"],
        details=details_from_json(row["metadata"]),
        created_at=row["created_at"],
        target_kind=TargetKind(row["target_type"]) if row["target_type"] else None,
        target_id=_opt_str(row["target_id"]),
        duration_days=row["duration_days"],
        expires_at=row["expires_at"],
        report_id=_opt_str(row["related_report_id"]),
        internal_notes=row["internal_notes"],
        notification_sent=bool(row["notification_sent"]),
        revoked_at=row["revoked_at"],
        revoked_by=_opt_str(row["revoked_by"]),
        reversal_reason=row["reversal_reason"],
    )


def _row_to_restriction(row: asyncpg.Record) -> UserRestriction:
    return UserRestriction(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        kind=RestrictionKind(row["restriction_type"]),
        reason=row["reason"],
        applied_by=str(row["applied_by"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        expires_at=row["expires_at"],
        active=bool(row["is_active"]),
        action_id=_opt_str(row["related_action_id"]),
    )


class _PostgresUnitOfWork(ModerationUnitOfWork):
    def __init__(self, conn: asyncpg.Connection) -> None:
        self._conn = conn

    async def get_report(self, report_id: str, *, for_update: bool = False) -> Optional[Report]:
        suffix = " FOR UPDATE" if for_update else ""
        row = await self._conn.fetchrow(
            f"SELECT {REPORT_COLUMNS} FROM moderation_reports WHERE id = $1{suffix}",
            report_id,
        )
        return _row_to_report(row) if row else None

    async def insert_report(self, report: Report) -> Report:
        row = await self._conn.fetchrow(
            f"""
            INSERT INTO moderation_reports (
                id, reporter_id, reported_user_id, report_type, target_id, reason, description, status,
                priority, moderator_flagged, created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            RETURNING {REPORT_COLUMNS}
            """,
            report.id,
            report.reporter_id,
            report.reported_user_id,
            report.target_kind.value,
            report.target_id,
            report.reason.value,
            report.description,
            report.status.value,
            report.priority,
            report.moderator_flagged,
            report.created_at,
            report.updated_at,
        )
        if row is None:  # pragma: no cover - asyncpg always returns a row for RETURNING
            raise RuntimeError("Failed to insert report")
        return _row_to_report(row)

    async def save_report_resolution(self, report: Report) -> None:
        # Only open reports transition; the status guard keeps the move one-way.
        result = await self._conn.execute(
            """
            UPDATE moderation_reports
            SET status = $2, reviewed_by = $3, reviewed_at = $4, resolution_notes = $5, action_taken = $6,
                updated_at = $7
            WHERE id = $1 AND status IN ('pending', 'under_review')
            """,
            report.id,
            report.status.value,
            report.reviewed_by,
            report.reviewed_at,
            report.resolution_notes,
            report.action_taken.value if report.action_taken else None,
            report.updated_at,
        )
        if result.endswith(" 0"):
            raise NotFound("report_not_open", details={"report_id": report.id})

    async def get_action(self, action_id: str, *, for_update: bool = False) -> Optional[ModerationAction]:
        suffix = " FOR UPDATE" if for_update else ""
        row = await self._conn.fetchrow(
            f"SELECT {ACTION_COLUMNS} FROM moderation_actions WHERE id = $1{suffix}",
            action_id,
        )
        return _row_to_action(row) if row else None

    async def insert_action(self, action: ModerationAction) -> ModerationAction:
        row = await self._conn.fetchrow(
            f"""
            INSERT INTO moderation_actions (
                id, moderator_id, target_user_id, action_type, target_type, target_id, reason, duration_days,
                expires_at, related_report_id, internal_notes, notification_sent, metadata, created_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13::jsonb, $14)
            RETURNING {ACTION_COLUMNS}
            """,
            action.id,
            action.actor_id,
            action.target_user_id,
            action.kind.value,
            action.target_kind.value if action.target_kind else None,
            action.target_id,
            action.reason,
            action.duration_days,
            action.expires_at,
            action.report_id,
            action.internal_notes,
            action.notification_sent,
            details_to_json(action.details),
            action.created_at,
        )
        if row is None:  # pragma: no cover
            raise RuntimeError("Failed to insert moderation action")
        return _row_to_action(row)

    async def record_reversal(
        self,
        action_id: str,
        *,
        revoked_at: datetime,
        revoked_by: str,
        reason: str,
    ) -> ModerationAction:
        row = await self._conn.fetchrow(
            f"""
            UPDATE moderation_actions
            SET revoked_at = $2, revoked_by = $3, reversal_reason = $4
            WHERE id = $1 AND revoked_at IS NULL
            RETURNING {ACTION_COLUMNS}
            """,
            action_id,
            revoked_at,
            revoked_by,
            reason,
        )
        if row is not None:
            return _row_to_action(row)
        exists = await self._conn.fetchval("SELECT 1 FROM moderation_actions WHERE id = $1", action_id)
        if exists:
            raise AlreadyReversed(action_id)
        raise NotFound("action_not_found", details={"action_id": action_id})

    async def active_restriction(self, user_id: str, kind: RestrictionKind) -> Optional[UserRestriction]:
        row = await self._conn.fetchrow(
            f"""
            SELECT {RESTRICTION_COLUMNS} FROM user_restrictions
            WHERE user_id = $1 AND restriction_type = $2 AND is_active
            """,
            user_id,
            kind.value,
        )
        return _row_to_restriction(row) if row else None

    async def insert_restriction(self, restriction: UserRestriction) -> UserRestriction:
        try:
            row = await self._conn.fetchrow(
                f"""
                INSERT INTO user_restrictions (
                    id, user_id, restriction_type, reason, applied_by, related_action_id, expires_at, is_active,
                    created_at, updated_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                RETURNING {RESTRICTION_COLUMNS}
                """,
                restriction.id,
                restriction.user_id,
                restriction.kind.value,
                restriction.reason,
                restriction.applied_by,
                restriction.action_id,
                restriction.expires_at,
                restriction.active,
                restriction.created_at,
                restriction.updated_at,
            )
        except asyncpg.UniqueViolationError as exc:
            raise RestrictionConflict(
                f"User already has an active {restriction.kind.value} restriction",
                details={"user_id": restriction.user_id, "restriction_type": restriction.kind.value},
            ) from exc
        if row is None:  # pragma: no cover
            raise RuntimeError("Failed to insert restriction")
        return _row_to_restriction(row)

    async def deactivate_restrictions_for_action(self, action_id: str, *, now: datetime) -> list[UserRestriction]:
        rows = await self._conn.fetch(
            f"""
            UPDATE user_restrictions SET is_active = false, updated_at = $2
            WHERE related_action_id = $1 AND is_active
            RETURNING {RESTRICTION_COLUMNS}
            """,
            action_id,
            now,
        )
        return [_row_to_restriction(row) for row in rows]

    async def expire_restrictions(
        self,
        *,
        now: datetime,
        user_id: Optional[str] = None,
        kind: Optional[RestrictionKind] = None,
    ) -> list[UserRestriction]:
        rows = await self._conn.fetch(
            f"""
            UPDATE user_restrictions SET is_active = false, updated_at = $1
            WHERE is_active AND expires_at IS NOT NULL AND expires_at <= $1
              AND ($2::text IS NULL OR user_id = $2)
              AND ($3::text IS NULL OR restriction_type = $3)
            RETURNING {RESTRICTION_COLUMNS}
            """,
            now,
            user_id,
            kind.value if kind is not None else None,
        )
        return [_row_to_restriction(row) for row in rows]


class PostgresModerationRepository(ModerationRepository):
    """Stores the moderation ledger in moderation_reports, moderation_actions and user_restrictions."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[ModerationUnitOfWork]:
        with _store_errors():
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    yield _PostgresUnitOfWork(conn)

    async def get_report(self, report_id: str) -> Optional[Report]:
        with _store_errors():
            row = await self._pool.fetchrow(f"SELECT {REPORT_COLUMNS} FROM moderation_reports WHERE id = $1", report_id)
        return _row_to_report(row) if row else None

    async def get_action(self, action_id: str) -> Optional[ModerationAction]:
        with _store_errors():
            row = await self._pool.fetchrow(f"SELECT {ACTION_COLUMNS} FROM moderation_actions WHERE id = $1", action_id)
        return _row_to_action(row) if row else None

    async def list_queue(self, filters: QueueFilters) -> list[Report]:
        clauses = ["status = ANY($1::text[])"]
        args: list[Any] = [[status.value for status in filters.statuses()]]
        if filters.priority is not None:
            args.append(filters.priority)
            clauses.append(f"priority = ${len(args)}")
        flagged = filters.flagged()
        if flagged is not None:
            args.append(flagged)
            clauses.append(f"moderator_flagged = ${len(args)}")
        query = f"""
            SELECT {REPORT_COLUMNS} FROM moderation_reports
            WHERE {' AND '.join(clauses)}
            ORDER BY priority ASC, created_at ASC, moderator_flagged DESC
        """
        with _store_errors():
            rows = await self._pool.fetch(query, *args)
        return [_row_to_report(row) for row in rows]

    async def list_reports(self, *, start: Optional[datetime] = None, end: Optional[datetime] = None) -> list[Report]:
        with _store_errors():
            rows = await self._pool.fetch(
                f"""
                SELECT {REPORT_COLUMNS} FROM moderation_reports
                WHERE ($1::timestamptz IS NULL OR created_at >= $1)
                  AND ($2::timestamptz IS NULL OR created_at <= $2)
                ORDER BY created_at ASC
                """,
                start,
                end,
            )
        return [_row_to_report(row) for row in rows]

    async def find_recent_report(
        self,
        reporter_id: str,
        target_kind: TargetKind,
        target_id: str,
        *,
        since: datetime,
    ) -> Optional[Report]:
        with _store_errors():
            row = await self._pool.fetchrow(
                f"""
                SELECT {REPORT_COLUMNS} FROM moderation_reports
                WHERE reporter_id = $1 AND report_type = $2 AND target_id = $3 AND created_at >= $4
                ORDER BY created_at DESC
                LIMIT 1
                """,
                reporter_id,
                target_kind.value,
                target_id,
                since,
            )
        return _row_to_report(row) if row else None

    async def list_actions(self, filters: ActionFilters) -> list[ModerationAction]:
        clauses: list[str] = []
        args: list[Any] = []

        def bind(clause: str, value: Any) -> None:
            args.append(value)
            clauses.append(clause.format(n=len(args)))

        if filters.kind is not None:
            bind("action_type = ${n}", filters.kind.value)
        if filters.actor_id is not None:
            bind("moderator_id = ${n}", filters.actor_id)
        if filters.target_user_id is not None:
            bind("target_user_id = ${n}", filters.target_user_id)
        if filters.start is not None:
            bind("created_at >= ${n}", filters.start)
        if filters.end is not None:
            bind("created_at <= ${n}", filters.end)
        if filters.reversed_only:
            clauses.append("revoked_at IS NOT NULL")
        if filters.non_reversed_only:
            clauses.append("revoked_at IS NULL")
        if filters.expired_only:
            clauses.append("revoked_at IS NULL AND expires_at IS NOT NULL AND expires_at <= now()")
        if filters.non_expired_only:
            clauses.append("(revoked_at IS NOT NULL OR expires_at IS NULL OR expires_at > now())")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        limit = ""
        if filters.limit is not None:
            args.append(filters.limit)
            limit = f"LIMIT ${len(args)}"
        query = f"SELECT {ACTION_COLUMNS} FROM moderation_actions {where} ORDER BY created_at DESC {limit}"
        with _store_errors():
            rows = await self._pool.fetch(query, *args)
        return [_row_to_action(row) for row in rows]

    async def list_restrictions(self, user_id: str, *, active_only: bool = True) -> list[UserRestriction]:
        with _store_errors():
            rows = await self._pool.fetch(
                f"""
                SELECT {RESTRICTION_COLUMNS} FROM user_restrictions
                WHERE user_id = $1 AND ($2::boolean IS FALSE OR is_active)
                ORDER BY created_at DESC
                """,
                user_id,
                active_only,
            )
        return [_row_to_restriction(row) for row in rows]

    async def mark_notification_sent(self, action_id: str) -> None:
        with _store_errors():
            await self._pool.execute(
                "UPDATE moderation_actions SET notification_sent = true WHERE id = $1 AND notification_sent = false",
                action_id,
            )
