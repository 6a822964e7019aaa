"""Prometheus-compatible metrics for the HTTP API and the monitoring hub."""

import time
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)

# hub.counts() key -> (metric name, help)
_HUB_GAUGES = {
    "cashiers": ("hub_connected_cashiers", "Cashiers with an open realtime connection"),
    "supervisors": ("hub_connected_supervisors", "Supervisors with an open realtime connection"),
    "screen_shares": ("hub_active_screen_shares", "Screen shares currently brokered by the hub"),
    "sockets": ("hub_open_sockets", "Authenticated realtime sockets"),
}

_MAX_SAMPLES = 1000

Sample = Tuple[str, object]


def _emit(lines: List[str], name: str, kind: str, help_text: str, samples: Iterable[Sample]) -> None:
    lines.append(f"# HELP {name} {help_text}")
    lines.append(f"# TYPE {name} {kind}")
    for labels, value in samples:
        lines.append(f"{name}{labels} {value}")


class MetricsCollector:
    """Collects request, hub and session counters in Prometheus exposition format."""

    def __init__(self):
        self.request_count: Dict[Tuple[str, str], int] = {}
        self.request_duration: Dict[Tuple[str, str], List[float]] = {}
        self.error_count: Dict[int, int] = {}
        self.active_requests: int = 0
        self.hub_events: Dict[str, int] = {}
        self.session_events: Dict[str, int] = {}

    def record_request(self, method: str, path: str, status: int, duration: float):
        key = (method, self._normalize_path(path))
        self.request_count[key] = self.request_count.get(key, 0) + 1
        durations = self.request_duration.setdefault(key, [])
        durations.append(duration)
        if len(durations) > _MAX_SAMPLES:
            del durations[:-_MAX_SAMPLES]
        if status >= 400:
            self.error_count[status] = self.error_count.get(status, 0) + 1

    def record_hub_event(self, event: str):
        self.hub_events[event] = self.hub_events.get(event, 0) + 1

    def record_session_event(self, event_type: str):
        self.session_events[event_type] = self.session_events.get(event_type, 0) + 1

    @staticmethod
    def _normalize_path(path: str) -> str:
        """Replace numeric IDs with :id to limit cardinality."""
        return "/".join(":id" if p.isdigit() else p for p in path.split("/"))

    def _duration_samples(self) -> List[Sample]:
        samples = []
        for (method, path), durations in sorted(self.request_duration.items()):
            if not durations:
                continue
            ordered = sorted(durations)
            p99 = ordered[min(int(len(ordered) * 0.99), len(ordered) - 1)]
            median = ordered[len(ordered) // 2]
            samples.append((f'{{method="{method}",path="{path}",quantile="0.99"}}', f"{p99:.4f}"))
            samples.append((f'{{method="{method}",path="{path}",quantile="0.5"}}', f"{median:.4f}"))
        return samples

    def get_prometheus_metrics(self, hub_counts: Optional[Dict[str, int]] = None) -> str:
        lines: List[str] = []
        _emit(lines, "http_requests_total", "counter", "Total HTTP requests", [
            (f'{{method="{method}",path="{path}"}}', count)
            for (method, path), count in sorted(self.request_count.items())
        ])
        _emit(lines, "http_errors_total", "counter", "Total HTTP errors by status code", [
            (f'{{status="{code}"}}', count) for code, count in sorted(self.error_count.items())
        ])
        _emit(lines, "http_active_requests", "gauge", "Current active requests", [("", self.active_requests)])
        _emit(lines, "http_request_duration_seconds", "summary", "Request duration summary",
              self._duration_samples())

        _emit(lines, "hub_events_total", "counter", "Realtime events dispatched by the hub", [
            (f'{{event="{event}"}}', count) for event, count in sorted(self.hub_events.items())
        ])
        _emit(lines, "cashier_session_events_total", "counter", "Cashier session events published", [
            (f'{{type="{event_type}"}}', count) for event_type, count in sorted(self.session_events.items())
        ])
        counts = hub_counts or {}
        for key, (name, help_text) in _HUB_GAUGES.items():
            _emit(lines, name, "gauge", help_text, [("", counts.get(key, 0))])

        return "\n".join(lines) + "\n"


metrics = MetricsCollector()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware that records request metrics."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/metrics":
            return await call_next(request)

        metrics.active_requests += 1
        start = time.time()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            metrics.record_request(request.method, request.url.path, status, time.time() - start)
            metrics.active_requests -= 1
