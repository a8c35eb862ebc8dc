import time
from typing import Callable

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.requests import Request
from starlette.responses import Response


UNMATCHED_ROUTE = "unmatched"

REQUEST_COUNTER = Counter(
    "api_requests_total",
    "HTTP requests total",
    ["method", "path", "status"],
)

REQUEST_LATENCY = Histogram(
    "api_request_duration_seconds",
    "HTTP request latency",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)

BOOKMARK_MUTATIONS = Counter(
    "bookmark_mutations_total",
    "Bookmark create/delete calls by outcome",
    ["action", "outcome"],
)

CHANGE_FEED_EVENTS = Counter(
    "change_feed_events_total",
    "Committed row changes published to the change feed",
    ["type"],
)

CHANGE_FEED_SUBSCRIPTIONS = Gauge(
    "change_feed_subscriptions",
    "Open change feed subscriptions",
)


def record_mutation(action: str, outcome: str) -> None:
    BOOKMARK_MUTATIONS.labels(action, outcome).inc()


async def metrics_endpoint(_: Request) -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


async def request_metrics_middleware(request: Request, call_next: Callable):
    start = time.time()
    response = await call_next(request)
    elapsed = time.time() - start
    # route template, never the raw path, to keep label cardinality bounded
    route = request.scope.get("route")
    path = getattr(route, "path", None) or UNMATCHED_ROUTE
    REQUEST_COUNTER.labels(request.method, path, str(response.status_code)).inc()
    REQUEST_LATENCY.observe(elapsed)
    return response
