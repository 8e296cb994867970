"""
In-memory metrics registry rendered by the /metrics endpoint.
"""
import threading
import time
from typing import Dict, Tuple

_lock = threading.Lock()

# Simple in-memory metrics storage
_metrics = {
    "http_requests_total": {},  # {(method, path, status): count}
    "http_request_duration_seconds": {},  # {(method, path): [durations]}
    "counters": {},  # {(name, labels): count}
    "startup_time": None,
}

COUNTER_HELP = {
    "chatsync_messages_total": "Messages appended, by channel",
    "chatsync_conversations_created_total": "Conversations created, by channel",
    "chatsync_sms_conflicts_total": "SMS conversation creates that lost a race and re-fetched",
    "chatsync_messages_marked_read_total": "Messages flipped to read",
}


def record_request(method: str, path: str, status_code: int, duration: float) -> None:
    """Record an HTTP request metric."""
    with _lock:
        key = (method, path, str(status_code))
        _metrics["http_requests_total"][key] = _metrics["http_requests_total"].get(key, 0) + 1

        durations = _metrics["http_request_duration_seconds"].setdefault((method, path), [])
        durations.append(duration)

        # Keep only last 1000 durations to prevent memory issues
        if len(durations) > 1000:
            _metrics["http_request_duration_seconds"][(method, path)] = durations[-1000:]


def increment(name: str, amount: int = 1, **labels: str) -> None:
    """Increment a domain counter."""
    key: Tuple[str, Tuple[Tuple[str, str], ...]] = (name, tuple(sorted(labels.items())))
    with _lock:
        _metrics["counters"][key] = _metrics["counters"].get(key, 0) + amount


def counter_value(name: str, **labels: str) -> int:
    with _lock:
        return _metrics["counters"].get((name, tuple(sorted(labels.items()))), 0)


def set_startup_time() -> None:
    """Record application startup time."""
    _metrics["startup_time"] = time.time()


def _format_labels(labels) -> str:
    if not labels:
        return ""
    return "{" + ",".join(f'{k}="{v}"' for k, v in labels) + "}"


def generate_prometheus_metrics(version: str = "1.0.0") -> str:
    """Generate Prometheus-format metrics output."""
    lines = []

    # Application info
    lines.append("# HELP app_info Application information")
    lines.append("# TYPE app_info gauge")
    lines.append(f'app_info{{version="{version}"}} 1')
    lines.append("")

    with _lock:
        startup_time = _metrics["startup_time"]
        requests = dict(_metrics["http_requests_total"])
        durations = {k: list(v) for k, v in _metrics["http_request_duration_seconds"].items()}
        counters = dict(_metrics["counters"])

    # Startup time
    if startup_time:
        lines.append("# HELP app_start_time_seconds Unix timestamp when the app started")
        lines.append("# TYPE app_start_time_seconds gauge")
        lines.append(f"app_start_time_seconds {startup_time:.3f}")
        lines.append("")

    # HTTP requests total
    lines.append("# HELP http_requests_total Total number of HTTP requests")
    lines.append("# TYPE http_requests_total counter")
    for (method, path, status), count in requests.items():
        lines.append(f'http_requests_total{{method="{method}",path="{path}",status="{status}"}} {count}')
    lines.append("")

    # HTTP request duration (simplified histogram summary)
    lines.append("# HELP http_request_duration_seconds HTTP request duration in seconds")
    lines.append("# TYPE http_request_duration_seconds summary")
    for (method, path), values in durations.items():
        if values:
            lines.append(f'http_request_duration_seconds_sum{{method="{method}",path="{path}"}} {sum(values):.6f}')
            lines.append(f'http_request_duration_seconds_count{{method="{method}",path="{path}"}} {len(values)}')
    lines.append("")

    # Domain counters
    for name, help_text in COUNTER_HELP.items():
        lines.append(f"# HELP {name} {help_text}")
        lines.append(f"# TYPE {name} counter")
        for (counter_name, labels), count in counters.items():
            if counter_name == name:
                lines.append(f"{name}{_format_labels(labels)} {count}")

    return "\n".join(lines)
