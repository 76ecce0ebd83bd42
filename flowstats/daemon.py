"""
Worker loop shared by the summarize and consolidate workers.
flowstats summarize --config config/flowstats.yaml
flowstats consolidate --config config/flowstats.yaml

Poll one message, hand it to the worker, repeat. Per-message failures are the worker's
business (it decides whether to acknowledge). Anything escaping a cycle is printed and
followed by a fixed backoff; the loop itself never exits on error.
"""
import sys
import time
from typing import Callable

from flowstats import metrics_prometheus as metrics
from flowstats.queue import BaseQueue, Message


def run_worker_loop(
    name: str,
    queue: BaseQueue,
    handle: Callable[[Message], str],
    wait_seconds: float = 20,
    error_backoff_sec: float = 5.0,
    metrics_file: str | None = None,
    max_cycles: int | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Run until interrupted (or for max_cycles polls). Returns the number of messages handled.
    """
    print(f"{name}: started, polling (wait={wait_seconds}s backoff={error_backoff_sec}s)")
    cycles = 0
    handled = 0
    while max_cycles is None or cycles < max_cycles:
        cycles += 1
        try:
            messages = queue.receive(max_messages=1, wait_seconds=wait_seconds)
            for msg in messages:
                outcome = handle(msg)
                handled += 1
                print(f"{name}: {outcome} message (receive #{msg.receive_count})")
            metrics.cycle_completed(name)
        except KeyboardInterrupt:
            print(f"{name}: stopped")
            break
        except Exception as e:
            print(f"{name}: main loop error: {e}", file=sys.stderr)
            metrics.loop_error(name)
            sleep(error_backoff_sec)
        if metrics_file:
            metrics.write_metrics_file(metrics_file)
    return handled


def run_from_config(name: str, queue: BaseQueue, handle: Callable[[Message], str], config, **kwargs) -> int:
    return run_worker_loop(
        name,
        queue,
        handle,
        wait_seconds=config.wait_seconds,
        error_backoff_sec=config.error_backoff_sec,
        metrics_file=config.metrics_file,
        **kwargs,
    )
