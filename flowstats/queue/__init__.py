"""
Durable queues: registry and backends.
Use get_queue(name) for memory, sqlite, sqs.
"""
import os

from flowstats.queue.base import BaseQueue, Message
from flowstats.queue.memory import InMemoryQueue
from flowstats.queue.sqlite import SqliteQueue
from flowstats.queue.sqs import SqsQueue

_QUEUES = {
    "memory": InMemoryQueue,
    "sqlite": SqliteQueue,
    "sqs": SqsQueue,
}

QUEUE_DB_FILENAME = "queues.sqlite3"


def get_queue(backend: str, **kwargs) -> BaseQueue:
    """Return a queue instance. backend: memory, sqlite, sqs."""
    if backend not in _QUEUES:
        raise ValueError(f"unknown queue backend: {backend}. Available: {list(_QUEUES)}")
    return _QUEUES[backend](**kwargs)


def queue_from_config(config, url: str) -> BaseQueue:
    """url is the queue URL (aws) or queue name (local/memory)."""
    if config.backend == "aws":
        return get_queue("sqs", url=url, region=config.aws_region)
    if config.backend == "local":
        return get_queue(
            "sqlite",
            path=os.path.join(config.data_dir, QUEUE_DB_FILENAME),
            name=url,
            visibility_timeout_sec=config.visibility_timeout_sec,
        )
    return get_queue("memory", name=url, visibility_timeout_sec=config.visibility_timeout_sec)


__all__ = [
    "BaseQueue",
    "InMemoryQueue",
    "Message",
    "SqliteQueue",
    "SqsQueue",
    "get_queue",
    "queue_from_config",
]
