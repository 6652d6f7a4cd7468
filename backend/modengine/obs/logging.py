"""JSON logging with request-scoped context for the moderation engine."""

from __future__ import annotations

import json
import logging
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from modengine.settings import settings

_ROOT_LOGGER = "modengine"

_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("modengine_log_context", default={})

# Free text written by reporters and staff stays out of the log stream.
_REDACTED_KEYS = ("token", "secret", "authorization", "password", "description", "internal_notes")

_MAX_TEXT = 200
_MAX_ITEMS = 20

_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime", "taskName"}


def bind_context(**fields: Optional[str]) -> Token:
	"""Merge non-empty fields into the log context; returns a token for :func:`reset_context`."""
	merged = dict(_CONTEXT.get())
	merged.update({key: value for key, value in fields.items() if value})
	return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT.get().get("request_id")


def _clean(key: str, value: Any) -> Any:
	if any(marker in key.lower() for marker in _REDACTED_KEYS):
		return "[redacted]"
	if isinstance(value, Enum):
		return value.value
	if isinstance(value, datetime):
		return value.isoformat()
	if isinstance(value, str) and len(value) > _MAX_TEXT:
		return value[:_MAX_TEXT] + "..."
	if isinstance(value, Mapping):
		return {k: _clean(str(k), v) for k, v in list(value.items())[:_MAX_ITEMS]}
	if isinstance(value, (list, tuple, set, frozenset)):
		return [_clean(key, item) for item in list(value)[:_MAX_ITEMS]]
	return value


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per record: fixed envelope, then context, then extras."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
		}
		payload.update(_CONTEXT.get())
		for key, value in vars(record).items():
			if key not in _STANDARD_ATTRS and key not in payload:
				payload[key] = _clean(key, value)
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(payload, separators=(",", ":"), default=str)


def configure_logging(level: Optional[str] = None) -> logging.Logger:
	root = logging.getLogger()
	for handler in list(root.handlers):
		root.removeHandler(handler)
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	root.addHandler(handler)
	root.setLevel((level or settings.obs_log_level).upper())
	return logging.getLogger(_ROOT_LOGGER)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _ROOT_LOGGER)
