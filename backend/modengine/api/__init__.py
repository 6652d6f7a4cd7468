"""Moderation engine API routers."""

from fastapi import APIRouter

from . import actions, audit, jobs, ops, reports, restrictions

router = APIRouter()
router.include_router(reports.router)
router.include_router(actions.router)
router.include_router(restrictions.router)
router.include_router(audit.router)
router.include_router(jobs.router)
router.include_router(ops.router)

__all__ = ["router"]
