"""Central registry for Prometheus metrics used across the service."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary


REQUEST_COUNTER = Counter(
	"nudge_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"nudge_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

PRESENCE_ACTIVATIONS = Counter(
	"nudge_presence_activations_total",
	"Presence activations accepted or rejected",
	["result"],
)

PRESENCE_EVICTIONS = Counter(
	"nudge_presence_evictions_total",
	"Presence entries removed",
	["reason"],
)

PRESENCE_ACTIVE = Gauge(
	"nudge_presence_active_gauge",
	"Actors currently active in nudge mode",
)

NEARBY_QUERIES = Counter(
	"nudge_nearby_queries_total",
	"Nearby proximity queries",
	["radius"],
)

NEARBY_RESULTS = Summary(
	"nudge_nearby_results_avg",
	"Nearby query result sizes",
)

SIGNALS_RECORDED = Counter(
	"nudge_signals_recorded_total",
	"Signals appended to the ledger",
	["kind"],
)

MATCH_CANDIDATES = Counter(
	"nudge_match_candidates_total",
	"Reciprocity detections emitted by the ledger",
	["match_type"],
)

MATCHES_CREATED = Counter(
	"nudge_matches_created_total",
	"Matches created",
	["match_type"],
)

MATCH_DUPLICATES = Counter(
	"nudge_match_duplicate_candidates_total",
	"Candidates resolved to an already active match",
)

AFFINITY_UPDATES = Counter(
	"nudge_affinity_updates_total",
	"Affinity profile refreshes",
	["result"],
)

EVENT_PUBLISH_FAILURES = Counter(
	"nudge_event_publish_failures_total",
	"Match events that could not be handed to a publisher",
	["publisher"],
)

RANKING_REQUESTS = Counter(
	"nudge_ranking_requests_total",
	"Ranking invocations by path",
	["path"],
)

RANKING_DURATION = Histogram(
	"nudge_ranking_duration_seconds",
	"Time spent scoring a candidate list",
	buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5),
)

REDIS_UP = Gauge("nudge_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("nudge_redis_latency_seconds", "Redis ping latency (seconds)")


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_presence_activation(result: str) -> None:
	PRESENCE_ACTIVATIONS.labels(result=result).inc()


def inc_presence_eviction(reason: str, count: int = 1) -> None:
	if count > 0:
		PRESENCE_EVICTIONS.labels(reason=reason).inc(count)


def set_presence_active(count: int) -> None:
	PRESENCE_ACTIVE.set(count)


def inc_nearby_query(radius: float, results: int) -> None:
	NEARBY_QUERIES.labels(radius=str(int(radius))).inc()
	NEARBY_RESULTS.observe(results)


def inc_signal(kind: str) -> None:
	SIGNALS_RECORDED.labels(kind=kind).inc()


def inc_match_candidate(match_type: str) -> None:
	MATCH_CANDIDATES.labels(match_type=match_type).inc()


def inc_match_created(match_type: str) -> None:
	MATCHES_CREATED.labels(match_type=match_type).inc()


def inc_match_duplicate() -> None:
	MATCH_DUPLICATES.inc()


def inc_affinity_update(result: str) -> None:
	AFFINITY_UPDATES.labels(result=result).inc()


def inc_publish_failure(publisher: str) -> None:
	EVENT_PUBLISH_FAILURES.labels(publisher=publisher).inc()


def observe_ranking(path: str, elapsed_seconds: float) -> None:
	RANKING_REQUESTS.labels(path=path).inc()
	RANKING_DURATION.observe(elapsed_seconds)


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)
