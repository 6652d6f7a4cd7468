"""Lightweight service container shared by the moderation engine modules."""

from __future__ import annotations

from typing import Optional, Sequence

import asyncpg
from redis.asyncio import Redis

from modengine.domain.audit_metrics import AuditMetricsService
from modengine.domain.executor import ActionExecutor
from modengine.domain.intake import ReportIntakeService
from modengine.domain.notifications import (
    InMemoryNotificationDispatcher,
    NotificationDispatcher,
    NotificationPublisher,
)
from modengine.domain.ports import ContentStore, IdentityProvider, InMemoryContentStore, StaticIdentityProvider
from modengine.domain.queue import ModerationQueue
from modengine.domain.rate_limit import InMemorySlidingWindowLimiter, SlidingWindowLimiter
from modengine.domain.repository import InMemoryModerationRepository, ModerationRepository
from modengine.domain.restrictions import RestrictionOracle
from modengine.domain.reversal import ReversalService
from modengine.infra.content_store import PostgresContentStore
from modengine.infra.identity import PostgresIdentityProvider
from modengine.infra.notifications import RedisStreamNotificationDispatcher
from modengine.infra.postgres_repo import PostgresModerationRepository
from modengine.infra.rate_limit import RedisSlidingWindowLimiter
from modengine.infra.redis import RedisProxy
from modengine.settings import settings, staff_recipient_ids

REPORT_LIMITER = "reports"
ACTION_LIMITER = "actions"


def _default_report_limiter() -> SlidingWindowLimiter:
    return InMemorySlidingWindowLimiter(
        name=REPORT_LIMITER,
        limit=settings.moderation_report_limit,
        window_seconds=settings.moderation_report_window_seconds,
    )


def _default_action_limiter() -> SlidingWindowLimiter:
    return InMemorySlidingWindowLimiter(
        name=ACTION_LIMITER,
        limit=settings.moderation_action_limit,
        window_seconds=settings.moderation_action_window_seconds,
    )


_repository: ModerationRepository = InMemoryModerationRepository()
_identity: IdentityProvider = StaticIdentityProvider()
_content: ContentStore = InMemoryContentStore()
_dispatcher: NotificationDispatcher = InMemoryNotificationDispatcher()
_publisher = NotificationPublisher(_dispatcher)
_report_limiter: SlidingWindowLimiter = _default_report_limiter()
_action_limiter: SlidingWindowLimiter = _default_action_limiter()
_staff_ids: tuple[str, ...] = staff_recipient_ids()
_oracle = RestrictionOracle(_repository)
_queue = ModerationQueue(repository=_repository)
_intake = ReportIntakeService(
    repository=_repository,
    identity=_identity,
    content=_content,
    limiter=_report_limiter,
    publisher=_publisher,
    staff_recipient_ids=_staff_ids,
    duplicate_window_seconds=settings.moderation_duplicate_window_seconds,
)
_executor = ActionExecutor(
    repository=_repository,
    identity=_identity,
    content=_content,
    limiter=_action_limiter,
    publisher=_publisher,
)
_reversal = ReversalService(repository=_repository, identity=_identity, publisher=_publisher)
_audit = AuditMetricsService(repository=_repository)


def configure(
    *,
    repository: Optional[ModerationRepository] = None,
    identity: Optional[IdentityProvider] = None,
    content: Optional[ContentStore] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    report_limiter: Optional[SlidingWindowLimiter] = None,
    action_limiter: Optional[SlidingWindowLimiter] = None,
    staff_ids: Optional[Sequence[str]] = None,
) -> None:
    global _repository, _identity, _content, _dispatcher, _publisher, _report_limiter, _action_limiter, _staff_ids
    global _oracle, _queue, _intake, _executor, _reversal, _audit
    if repository is not None:
        _repository = repository
    if identity is not None:
        _identity = identity
    if content is not None:
        _content = content
    if dispatcher is not None:
        _dispatcher = dispatcher
    if report_limiter is not None:
        _report_limiter = report_limiter
    if action_limiter is not None:
        _action_limiter = action_limiter
    if staff_ids is not None:
        _staff_ids = tuple(staff_ids)
    _publisher = NotificationPublisher(_dispatcher)
    _oracle = RestrictionOracle(_repository)
    _queue = ModerationQueue(repository=_repository)
    _intake = ReportIntakeService(
        repository=_repository,
        identity=_identity,
        content=_content,
        limiter=_report_limiter,
        publisher=_publisher,
        staff_recipient_ids=_staff_ids,
        duplicate_window_seconds=settings.moderation_duplicate_window_seconds,
    )
    _executor = ActionExecutor(
        repository=_repository,
        identity=_identity,
        content=_content,
        limiter=_action_limiter,
        publisher=_publisher,
    )
    _reversal = ReversalService(repository=_repository, identity=_identity, publisher=_publisher)
    _audit = AuditMetricsService(repository=_repository)


def configure_postgres(pool: asyncpg.Pool, redis_conn: Redis | RedisProxy) -> None:
    proxy = redis_conn if isinstance(redis_conn, RedisProxy) else RedisProxy(redis_conn)
    configure(
        repository=PostgresModerationRepository(pool),
        identity=PostgresIdentityProvider(pool),
        content=PostgresContentStore(pool),
        dispatcher=RedisStreamNotificationDispatcher(proxy, stream=settings.moderation_notification_stream),
        report_limiter=RedisSlidingWindowLimiter(
            proxy,
            name=REPORT_LIMITER,
            limit=settings.moderation_report_limit,
            window_seconds=settings.moderation_report_window_seconds,
        ),
        action_limiter=RedisSlidingWindowLimiter(
            proxy,
            name=ACTION_LIMITER,
            limit=settings.moderation_action_limit,
            window_seconds=settings.moderation_action_window_seconds,
        ),
    )


def reset() -> None:
    """Restore fresh in-memory collaborators."""
    configure(
        repository=InMemoryModerationRepository(),
        identity=StaticIdentityProvider(),
        content=InMemoryContentStore(),
        dispatcher=InMemoryNotificationDispatcher(),
        report_limiter=_default_report_limiter(),
        action_limiter=_default_action_limiter(),
        staff_ids=staff_recipient_ids(),
    )


def get_repository() -> ModerationRepository:
    return _repository


def get_identity() -> IdentityProvider:
    return _identity


def get_content_store() -> ContentStore:
    return _content


def get_publisher() -> NotificationPublisher:
    return _publisher


def get_oracle() -> RestrictionOracle:
    return _oracle


def get_queue() -> ModerationQueue:
    return _queue


def get_intake_service() -> ReportIntakeService:
    return _intake


def get_executor() -> ActionExecutor:
    return _executor


def get_reversal_service() -> ReversalService:
    return _reversal


def get_audit_service() -> AuditMetricsService:
    return _audit
