from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

from modengine.domain import container
from modengine.domain.audit_metrics import AuditMetricsService
from modengine.domain.executor import ActionExecutor, ActionParams
from modengine.domain.intake import ReportIntakeService
from modengine.domain.models import ActionKind, ModerationAction, Report, ReportReason, RestrictionKind, Role, TargetKind
from modengine.domain.notifications import InMemoryNotificationDispatcher, NotificationPublisher
from modengine.domain.ports import InMemoryContentStore, StaticIdentityProvider
from modengine.domain.queue import ModerationQueue
from modengine.domain.rate_limit import InMemorySlidingWindowLimiter
from modengine.domain.repository import InMemoryModerationRepository
from modengine.domain.restrictions import RestrictionOracle
from modengine.domain.reversal import ReversalService
from modengine.main import app
from modengine.settings import settings


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@dataclass
class Harness:
    """In-memory collaborators plus helpers for building moderation state."""

    ADMIN = "admin-1"
    MODERATOR = "mod-1"
    OTHER_MODERATOR = "mod-2"
    OWNER = "user-owner"
    REPORTER = "user-reporter"
    POST_ID = "post-1"

    clock: FakeClock = field(default_factory=FakeClock)
    repository: InMemoryModerationRepository = field(default_factory=InMemoryModerationRepository)
    identity: StaticIdentityProvider = field(default_factory=StaticIdentityProvider)
    content: InMemoryContentStore = field(default_factory=InMemoryContentStore)
    dispatcher: InMemoryNotificationDispatcher = field(default_factory=InMemoryNotificationDispatcher)
    report_limiter: InMemorySlidingWindowLimiter = field(
        default_factory=lambda: InMemorySlidingWindowLimiter(name="reports", limit=10, window_seconds=86400)
    )
    action_limiter: InMemorySlidingWindowLimiter = field(
        default_factory=lambda: InMemorySlidingWindowLimiter(name="actions", limit=100, window_seconds=3600)
    )
    staff_ids: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        self.identity.grant(self.ADMIN, Role.ADMIN)
        self.identity.grant(self.MODERATOR, Role.MODERATOR)
        self.identity.grant(self.OTHER_MODERATOR, Role.MODERATOR)
        self.identity.names[self.MODERATOR] = "Mod One"
        self.content.add(TargetKind.POST, self.POST_ID, self.OWNER)

    @property
    def publisher(self) -> NotificationPublisher:
        return NotificationPublisher(self.dispatcher)

    def intake(self) -> ReportIntakeService:
        return ReportIntakeService(
            repository=self.repository,
            identity=self.identity,
            content=self.content,
            limiter=self.report_limiter,
            publisher=self.publisher,
            staff_recipient_ids=self.staff_ids,
            clock=self.clock,
        )

    def executor(self) -> ActionExecutor:
        return ActionExecutor(
            repository=self.repository,
            identity=self.identity,
            content=self.content,
            limiter=self.action_limiter,
            publisher=self.publisher,
            clock=self.clock,
        )

    def reversal(self) -> ReversalService:
        return ReversalService(
            repository=self.repository,
            identity=self.identity,
            publisher=self.publisher,
            clock=self.clock,
        )

    def audit(self) -> AuditMetricsService:
        return AuditMetricsService(repository=self.repository, clock=self.clock)

    def queue(self) -> ModerationQueue:
        return ModerationQueue(repository=self.repository)

    def oracle(self) -> RestrictionOracle:
        return RestrictionOracle(self.repository)

    async def open_report(
        self,
        *,
        target_kind: TargetKind = TargetKind.USER,
        target_id: Optional[str] = None,
        reason: ReportReason = ReportReason.SPAM,
        reporter_id: Optional[str] = None,
    ) -> Report:
        return await self.intake().submit_report(
            reporter_id=reporter_id or f"reporter-{uuid4().hex[:8]}",
            target_kind=target_kind,
            target_id=target_id or self.OWNER,
            reason=reason,
        )

    async def act(
        self,
        kind: ActionKind,
        *,
        actor_id: Optional[str] = None,
        report: Optional[Report] = None,
        reason: str = "policy violation",
        duration_days: Optional[int] = None,
        restriction_kind: Optional[RestrictionKind] = None,
    ) -> ModerationAction:
        report = report or await self.open_report()
        return await self.executor().take_action(
            actor_id=actor_id or self.MODERATOR,
            report_id=report.id,
            kind=kind,
            params=ActionParams(reason=reason, duration_days=duration_days, restriction_kind=restriction_kind),
        )


@pytest.fixture(autouse=True)
def force_test_settings():
    """API tests authenticate via X-User-Id headers, which are only accepted in dev mode."""
    original_env = settings.environment
    settings.environment = "test"
    try:
        yield
    finally:
        settings.environment = original_env


@pytest.fixture
def harness() -> Harness:
    return Harness()


@pytest_asyncio.fixture
async def fake_redis():
    client = FakeRedis(decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()


@pytest_asyncio.fixture
async def api_client(harness: Harness):
    container.configure(
        repository=harness.repository,
        identity=harness.identity,
        content=harness.content,
        dispatcher=harness.dispatcher,
        report_limiter=harness.report_limiter,
        action_limiter=harness.action_limiter,
        staff_ids=harness.staff_ids,
    )
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client
    finally:
        container.reset()
