"""Security event logging for moderation authorization and abuse signals."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from modengine.obs import metrics
from modengine.obs.logging import get_logger

security_logger = get_logger("audit.security")


def log_security_event(
	event: str,
	user_id: Optional[str],
	*,
	details: Optional[Mapping[str, Any]] = None,
) -> None:
	"""Record a security relevant event in the audit log and metrics."""
	payload: dict[str, Any] = {"event": event, "actor_id": user_id}
	if details:
		payload.update(details)
	filtered = {key: value for key, value in payload.items() if value is not None}
	security_logger.warning("security_event", extra=filtered)
	metrics.inc_security_event(event)
