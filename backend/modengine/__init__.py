"""Moderation action engine: report intake, enforcement, reversal and audit."""

from modengine.domain.container import configure, configure_postgres

__all__ = ["configure", "configure_postgres"]
