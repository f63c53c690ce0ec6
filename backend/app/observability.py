from __future__ import annotations

import logging
import time
from threading import Lock

from fastapi import Request

logger = logging.getLogger("recruiting_dashboard")

PREFIX = "recruiting_dashboard"

# name -> help text; every counter is exported as <PREFIX>_<name>
COUNTERS = {
    "requests_total": "Total HTTP requests",
    "requests_5xx_total": "Total 5xx HTTP requests",
    "rows_upserted_total": "Sheet rows written to the candidate store",
    "rows_created_total": "Sheet rows that introduced a new candidate_id",
    "rows_rejected_total": "Sheet rows rejected for a missing candidate_id",
    "storage_failures_total": "Candidate writes that failed in the durable table",
    "notifications_delivered_total": "Change events queued to subscribers",
    "subscribers_dropped_total": "Subscribers removed after a failed delivery",
}


class ServiceMetrics:
    """Process-local counters for the ingest path, the change stream and HTTP traffic."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters = {name: 0 for name in COUNTERS}
        self._total_latency_ms = 0.0
        self._by_route_status: dict[tuple[str, int], int] = {}

    def _increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] += amount

    def count(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def record_request(self, *, route: str, status_code: int, latency_ms: float) -> None:
        with self._lock:
            self._counters["requests_total"] += 1
            if status_code >= 500:
                self._counters["requests_5xx_total"] += 1
            self._total_latency_ms += latency_ms
            key = (route, status_code)
            self._by_route_status[key] = self._by_route_status.get(key, 0) + 1

    def record_upsert(self, *, created: bool) -> None:
        with self._lock:
            self._counters["rows_upserted_total"] += 1
            if created:
                self._counters["rows_created_total"] += 1

    def record_rejected_row(self) -> None:
        self._increment("rows_rejected_total")

    def record_storage_failure(self) -> None:
        self._increment("storage_failures_total")

    def record_broadcast(self, *, delivered: int, dropped: int) -> None:
        with self._lock:
            self._counters["notifications_delivered_total"] += delivered
            self._counters["subscribers_dropped_total"] += dropped

    def to_prometheus(self, *, connected_subscribers: int) -> str:
        with self._lock:
            counters = dict(self._counters)
            routes = sorted(self._by_route_status.items())
            requests = counters["requests_total"]
            avg_latency = self._total_latency_ms / requests if requests else 0.0

        lines: list[str] = []
        for name, help_text in COUNTERS.items():
            lines.append(f"# HELP {PREFIX}_{name} {help_text}")
            lines.append(f"# TYPE {PREFIX}_{name} counter")
            lines.append(f"{PREFIX}_{name} {counters[name]}")
        lines.extend(
            [
                f"# HELP {PREFIX}_connected_subscribers Open change-stream connections",
                f"# TYPE {PREFIX}_connected_subscribers gauge",
                f"{PREFIX}_connected_subscribers {connected_subscribers}",
                f"# HELP {PREFIX}_request_avg_latency_ms Average request latency ms",
                f"# TYPE {PREFIX}_request_avg_latency_ms gauge",
                f"{PREFIX}_request_avg_latency_ms {avg_latency:.2f}",
            ]
        )
        for (route, status_code), count in routes:
            lines.append(
                f'{PREFIX}_route_requests_total{{route="{route}",status="{status_code}"}} {count}'
            )
        return "\n".join(lines) + "\n"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


async def observe_request(
    request: Request,
    call_next,
    *,
    metrics: ServiceMetrics,
):
    start = time.perf_counter()
    path = request.url.path
    try:
        response = await call_next(request)
    except Exception:
        latency_ms = (time.perf_counter() - start) * 1000.0
        metrics.record_request(route=path, status_code=500, latency_ms=latency_ms)
        logger.exception("request_failed method=%s path=%s", request.method, path)
        raise
    latency_ms = (time.perf_counter() - start) * 1000.0
    metrics.record_request(route=path, status_code=response.status_code, latency_ms=latency_ms)
    logger.info(
        "request_complete method=%s path=%s status=%s latency_ms=%.2f",
        request.method,
        path,
        response.status_code,
        latency_ms,
    )
    return response
