from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

_REQ_COUNT = Counter(
    "dnsd_http_requests_total",
    "Total HTTP requests",
    labelnames=("method", "path", "status"),
)
_REQ_LATENCY = Histogram(
    "dnsd_http_request_duration_seconds",
    "HTTP request latency seconds",
    labelnames=("method", "path"),
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.3, 0.5, 1.0, 2.5, 5.0, 10.0),
)
_ETCD_OPS = Counter(
    "dnsd_etcd_operations_total",
    "Total etcd operation attempts",
    labelnames=("action", "result"),
)
_REFRESH_CYCLES = Counter(
    "dnsd_refresh_cycles_total",
    "Refresh loop ticks",
    labelnames=("result",),
)
_UPDATES = Counter(
    "dnsd_updates_total",
    "Topology updates",
    labelnames=("result",),
)
_PUBLISHED_RECORDS = Gauge(
    "dnsd_published_records",
    "Records currently owned and refreshed by this process",
)


def observe_http_request(*, method: str, path: str, status: int, duration_seconds: float) -> None:
    _REQ_COUNT.labels(method=method, path=path, status=str(status)).inc()
    _REQ_LATENCY.labels(method=method, path=path).observe(duration_seconds)


def record_etcd_operation(*, action: str, ok: bool) -> None:
    _ETCD_OPS.labels(action=action, result="ok" if ok else "error").inc()


def record_refresh_cycle(*, ok: bool) -> None:
    _REFRESH_CYCLES.labels(result="ok" if ok else "error").inc()


def record_update(*, result: str) -> None:
    _UPDATES.labels(result=result).inc()


def set_published_records(count: int) -> None:
    _PUBLISHED_RECORDS.set(count)


def render_metrics() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
