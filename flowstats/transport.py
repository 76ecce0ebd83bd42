"""
Transport bundle: the blob store and queues a process talks to, built once from config.
Queues are opened on first use so an entry point only needs the settings it touches.
"""
from flowstats.queue import BaseQueue, queue_from_config
from flowstats.store import BaseBlobStore, blob_store_from_config


class Transport:
    def __init__(self, config, store: BaseBlobStore | None = None,
                 summarize_queue: BaseQueue | None = None, consolidate_queue: BaseQueue | None = None):
        self.config = config
        self._store = store
        self._summarize_queue = summarize_queue
        self._consolidate_queue = consolidate_queue

    @property
    def store(self) -> BaseBlobStore:
        if self._store is None:
            self._store = blob_store_from_config(self.config)
        return self._store

    @property
    def summarize_queue(self) -> BaseQueue:
        if self._summarize_queue is None:
            self.config.require("queue.summarize")
            self._summarize_queue = queue_from_config(self.config, self.config.queue_summarize)
        return self._summarize_queue

    @property
    def consolidate_queue(self) -> BaseQueue:
        if self._consolidate_queue is None:
            self.config.require("queue.consolidate")
            self._consolidate_queue = queue_from_config(self.config, self.config.queue_consolidate)
        return self._consolidate_queue

    def close(self) -> None:
        for item in (self._summarize_queue, self._consolidate_queue, self._store):
            if item is not None:
                item.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
        return False
