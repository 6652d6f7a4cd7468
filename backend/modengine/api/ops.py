"""Liveness, readiness and Prometheus scrape endpoints."""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from modengine.domain.container import get_repository
from modengine.domain.errors import StoreUnavailable
from modengine.domain.repository import QueueFilters
from modengine.settings import settings

router = APIRouter(tags=["ops"])


async def require_metrics_access(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	if settings.obs_metrics_public:
		return
	presented = x_admin_token
	if not presented and authorization:
		scheme, _, credential = authorization.partition(" ")
		presented = credential if scheme.lower() == "bearer" else None
	expected = settings.obs_admin_token
	if not (expected and presented and hmac.compare_digest(presented, expected)):
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="metrics_forbidden")


@router.get("/health/live")
async def live() -> dict[str, str]:
	return {"status": "ok"}


@router.get("/health/ready")
async def ready() -> JSONResponse:
	try:
		# Cheapest read that touches the ledger.
		await get_repository().list_queue(QueueFilters(priority=1))
	except StoreUnavailable:
		return JSONResponse({"status": "unavailable"}, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
	return JSONResponse({"status": "ok"})


@router.get("/metrics")
async def scrape(_: None = Depends(require_metrics_access)) -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
