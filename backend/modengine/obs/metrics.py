"""Central registry for Prometheus metrics used by the moderation engine."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"modengine_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"modengine_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

MOD_REPORTS_TOTAL = Counter(
	"modengine_reports_total",
	"Reports accepted by intake",
	["source", "priority"],
)

MOD_REPORT_REJECTS_TOTAL = Counter(
	"modengine_report_rejects_total",
	"Report submissions rejected by intake",
	["reason"],
)

MOD_ACTIONS_TOTAL = Counter(
	"modengine_actions_total",
	"Moderation actions committed",
	["action"],
)

MOD_REVERSALS_TOTAL = Counter(
	"modengine_reversals_total",
	"Moderation actions reversed",
	["action", "self_reversal"],
)

MOD_SECURITY_EVENTS_TOTAL = Counter(
	"modengine_security_events_total",
	"Security relevant moderation events",
	["event"],
)

MOD_RATE_LIMITED_TOTAL = Counter(
	"modengine_rate_limited_total",
	"Requests rejected by moderation rate limiters",
	["limiter"],
)

MOD_NOTIFICATIONS_TOTAL = Counter(
	"modengine_notifications_total",
	"Notification requests handed to the dispatcher",
	["kind", "result"],
)

MOD_OPERATION_LATENCY_SECONDS = Histogram(
	"modengine_operation_duration_seconds",
	"Latency of moderation engine operations",
	["operation"],
	buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
)

RESTRICTIONS_ACTIVE_GAUGE = Gauge(
	"modengine_restrictions_active",
	"Active restrictions tracked by this process",
	["kind"],
)

BACKGROUND_RUNS = Counter(
	"modengine_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"modengine_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0),
)

RESTRICTIONS_EXPIRED_TOTAL = Counter(
	"modengine_restrictions_expired_total",
	"Restrictions deactivated by the expiration sweeper",
	["kind"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_report(source: str, priority: int) -> None:
	MOD_REPORTS_TOTAL.labels(source=source, priority=str(priority)).inc()


def inc_report_reject(reason: str) -> None:
	MOD_REPORT_REJECTS_TOTAL.labels(reason=reason).inc()


def inc_action(action: str) -> None:
	MOD_ACTIONS_TOTAL.labels(action=action).inc()


def inc_reversal(action: str, *, self_reversal: bool) -> None:
	MOD_REVERSALS_TOTAL.labels(action=action, self_reversal="true" if self_reversal else "false").inc()


def inc_security_event(event: str) -> None:
	MOD_SECURITY_EVENTS_TOTAL.labels(event=event).inc()


def inc_rate_limited(limiter: str) -> None:
	MOD_RATE_LIMITED_TOTAL.labels(limiter=limiter).inc()


def inc_notification(kind: str, result: str) -> None:
	MOD_NOTIFICATIONS_TOTAL.labels(kind=kind, result=result).inc()


def observe_operation(operation: str, elapsed_seconds: float) -> None:
	MOD_OPERATION_LATENCY_SECONDS.labels(operation=operation).observe(elapsed_seconds)


def restriction_applied(kind: str) -> None:
	RESTRICTIONS_ACTIVE_GAUGE.labels(kind=kind).inc()


def restriction_lifted(kind: str) -> None:
	RESTRICTIONS_ACTIVE_GAUGE.labels(kind=kind).dec()


def restriction_expired(kind: str) -> None:
	RESTRICTIONS_EXPIRED_TOTAL.labels(kind=kind).inc()
	RESTRICTIONS_ACTIVE_GAUGE.labels(kind=kind).dec()


def record_job(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
