"""
Prometheus-style metrics: rows read/skipped, summaries emitted, consolidations, drops, loop errors.
Rendered as text exposition; workers write it to worker.metrics_file after each cycle.
"""
import os
import time

# In-memory store; optional file sink for scrape
_gauges: dict[str, float] = {}
_counters: dict[str, float] = {}


def gauge(name: str, value: float, labels: dict[str, str] | None = None) -> None:
    key = _key(name, labels)
    _gauges[key] = value


def counter_inc(name: str, amount: float = 1.0, labels: dict[str, str] | None = None) -> None:
    key = _key(name, labels)
    _counters[key] = _counters.get(key, 0) + amount


def counter_value(name: str, labels: dict[str, str] | None = None) -> float:
    return _counters.get(_key(name, labels), 0.0)


def _key(name: str, labels: dict[str, str] | None) -> str:
    if not labels:
        return name
    parts = sorted(f'{k}="{v}"' for k, v in labels.items())
    return name + "{" + ",".join(parts) + "}"


def rows_processed(read: int, skipped: int) -> None:
    counter_inc("flowstats_rows_read_total", read)
    counter_inc("flowstats_rows_skipped_total", skipped)


def summaries_emitted(n: int) -> None:
    counter_inc("flowstats_summaries_emitted_total", n)


def file_rejected(reason: str) -> None:
    counter_inc("flowstats_files_rejected_total", 1.0, {"reason": reason})


def consolidated(skipped_duplicate: bool = False) -> None:
    result = "duplicate" if skipped_duplicate else "applied"
    counter_inc("flowstats_consolidated_total", 1.0, {"result": result})


def consolidate_failure() -> None:
    counter_inc("flowstats_consolidate_failures_total")


def message_dropped(worker: str, reason: str) -> None:
    counter_inc("flowstats_dropped_total", 1.0, {"worker": worker, "reason": reason})


def loop_error(worker: str) -> None:
    counter_inc("flowstats_loop_errors_total", 1.0, {"worker": worker})


def cycle_completed(worker: str) -> None:
    gauge("flowstats_last_cycle_unixtime", time.time(), {"worker": worker})


def _metric_name(key: str) -> str:
    return key.split("{")[0] if "{" in key else key


def render_prometheus() -> str:
    """Render metrics in Prometheus text exposition format."""
    out = []
    seen = set()
    for key in sorted(_gauges.keys()):
        name = _metric_name(key)
        if name not in seen:
            out.append(f"# TYPE {name} gauge\n")
            seen.add(name)
    for key, value in sorted(_gauges.items()):
        out.append(f"{key} {value}\n")
    for key in sorted(_counters.keys()):
        name = _metric_name(key)
        if name not in seen:
            out.append(f"# TYPE {name} counter\n")
            seen.add(name)
    for key, value in sorted(_counters.items()):
        out.append(f"{key} {value}\n")
    return "".join(out)


def write_metrics_file(path: str) -> None:
    try:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w") as f:
            f.write(render_prometheus())
    except OSError:
        pass


def reset() -> None:
    """Reset all metrics (e.g. for tests)."""
    _gauges.clear()
    _counters.clear()
