"""Request middleware: request ids, access log and HTTP metrics."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from modengine.obs import logging as obs_logging
from modengine.obs import metrics
from modengine.settings import settings

access_logger = obs_logging.get_logger("modengine.http")


def _route_label(request: Request) -> str:
	# Templated path keeps report and action ids out of metric labels.
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


class RequestContextMiddleware(BaseHTTPMiddleware):
	def __init__(self, app, *, enabled: bool = True) -> None:
		super().__init__(app)
		self.enabled = enabled

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		if not (self.enabled and settings.obs_enabled):
			return await call_next(request)

		request_id = request.headers.get("X-Request-Id") or uuid4().hex
		request.state.request_id = request_id
		token = obs_logging.bind_context(request_id=request_id)
		started = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
		except Exception:
			access_logger.exception("unhandled_error", extra={"method": request.method, "path": request.url.path})
			raise
		finally:
			elapsed = time.perf_counter() - started
			metrics.observe_request(_route_label(request), request.method, status_code, elapsed)
			access_logger.info(
				"request_completed",
				extra={"method": request.method, "status": status_code, "duration_ms": round(elapsed * 1000, 2)},
			)
			obs_logging.reset_context(token)

		response.headers.setdefault("X-Request-Id", request_id)
		return response


def install(app, *, enabled: bool = True) -> None:
	app.add_middleware(RequestContextMiddleware, enabled=enabled)
