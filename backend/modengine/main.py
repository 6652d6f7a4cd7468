"""FastAPI application for the moderation action engine."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from modengine import obs
from modengine.api import router as moderation_router
from modengine.api.errors import install_error_handlers
from modengine.domain import container
from modengine.infra import postgres
from modengine.infra.redis import redis_client
from modengine.infra.scheduler import JobScheduler
from modengine.jobs import restrictions_expiry
from modengine.settings import settings

logger = logging.getLogger(__name__)


async def run_expiry_sweep() -> int:
	return await restrictions_expiry.run(
		container.get_repository(),
		container.get_publisher(),
		identity=container.get_identity(),
	)


@asynccontextmanager
async def lifespan(app: FastAPI):
	pool = await postgres.init_pool()
	container.configure_postgres(pool, redis_client)
	scheduler: JobScheduler | None = None
	if settings.moderation_sweeper_enabled:
		scheduler = JobScheduler()
		scheduler.start()
		scheduler.schedule_every(
			"moderation-restrictions-expiry",
			run_expiry_sweep,
			minutes=settings.moderation_sweep_interval_minutes,
		)
		app.state.moderation_scheduler = scheduler
		logger.info("expiry sweeper scheduled", extra={"interval_minutes": settings.moderation_sweep_interval_minutes})
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		await postgres.close_pool()


app = FastAPI(title="Moderation Action Engine", lifespan=lifespan)
install_error_handlers(app)
obs.init(app)
app.include_router(moderation_router, tags=["moderation"])
