"""Operator endpoint for triggering the restriction expiry sweep."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from modengine.api.deps import Actor, require_admin
from modengine.domain.container import get_identity, get_publisher, get_repository
from modengine.jobs import restrictions_expiry

router = APIRouter(prefix="/api/mod/v1/jobs", tags=["moderation-jobs"])


class SweepOut(BaseModel):
    expired: int


@router.post("/sweep", response_model=SweepOut)
async def run_sweep(_: Actor = Depends(require_admin)) -> SweepOut:
    expired = await restrictions_expiry.run(get_repository(), get_publisher(), identity=get_identity())
    return SweepOut(expired=expired)
