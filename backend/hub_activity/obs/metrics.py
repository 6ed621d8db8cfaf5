"""Central registry for Prometheus metrics used across the activity service."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


REQUEST_COUNTER = Counter(
	"hubs_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"hubs_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

BADGE_REFRESH = Counter(
	"hubs_badge_refresh_total",
	"Badge aggregations computed",
	["result"],
)

BADGE_REFRESH_LATENCY = Histogram(
	"hubs_badge_refresh_duration_seconds",
	"Badge aggregation latency in seconds",
	buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

BADGE_STREAM_FAILURES = Counter(
	"hubs_badge_stream_failures_total",
	"Per-stream badge queries that failed and were counted as zero",
	["stream"],
)

BADGE_STALE_DISCARDS = Counter(
	"hubs_badge_stale_discards_total",
	"Results discarded because the session context changed in flight",
	["kind"],
)

FEED_FETCH = Counter(
	"hubs_feed_fetch_total",
	"Notification feed page fetches",
	["mode", "result"],
)

FEED_MARK_READ = Counter(
	"hubs_feed_mark_read_total",
	"Notification read-state mutations",
	["scope", "result"],
)

PREFERENCES_UPDATE = Counter(
	"hubs_preferences_update_total",
	"Notification preference updates",
	["result"],
)

PUSH_REGISTRATION = Counter(
	"hubs_push_registration_total",
	"Push registration outcomes",
	["result"],
)

POLLER_TICKS = Counter(
	"hubs_badge_poller_ticks_total",
	"Badge poller refresh ticks",
	["reason"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def record_badge_refresh(result: str, *, duration_seconds: float | None = None) -> None:
	BADGE_REFRESH.labels(result=result).inc()
	if duration_seconds is not None:
		BADGE_REFRESH_LATENCY.observe(duration_seconds)


def inc_badge_stream_failure(stream: str) -> None:
	BADGE_STREAM_FAILURES.labels(stream=stream).inc()


def inc_stale_discard(kind: str) -> None:
	BADGE_STALE_DISCARDS.labels(kind=kind).inc()


def inc_feed_fetch(mode: str, result: str) -> None:
	FEED_FETCH.labels(mode=mode, result=result).inc()


def inc_mark_read(scope: str, result: str) -> None:
	FEED_MARK_READ.labels(scope=scope, result=result).inc()


def inc_preferences_update(result: str) -> None:
	PREFERENCES_UPDATE.labels(result=result).inc()


def inc_push_registration(result: str) -> None:
	PUSH_REGISTRATION.labels(result=result).inc()


def inc_poller_tick(reason: str) -> None:
	POLLER_TICKS.labels(reason=reason).inc()
