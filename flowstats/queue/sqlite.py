"""
Durable local queue on SQLite. Several worker processes can share one database file:
every receive runs inside BEGIN IMMEDIATE, so two processes never take the same message
or two heads of the same group.
"""
import os
import sqlite3
import time
import uuid
from dataclasses import dataclass
from typing import Callable

from flowstats.errors import TransientStoreError
from flowstats.queue.base import BaseQueue, Message, select_deliverable
from flowstats.queue.memory import DEFAULT_DEDUP_WINDOW_SEC


@dataclass
class _Row:
    id: int
    body: str
    group_key: str | None
    dedup_key: str | None
    visible_at: float
    receipt: str | None
    receive_count: int


def init_queue_db(path):
    dir_name = os.path.dirname(path)
    if dir_name:
        os.makedirs(dir_name, exist_ok=True)
    conn = sqlite3.connect(path, timeout=10, isolation_level=None)
    conn.execute("PRAGMA busy_timeout=5000")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            queue TEXT NOT NULL,
            body TEXT NOT NULL,
            group_key TEXT,
            dedup_key TEXT,
            sent_at REAL,
            visible_at REAL DEFAULT 0,
            receipt TEXT,
            receive_count INTEGER DEFAULT 0
        )
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_messages_queue ON messages(queue, id)")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS dedup (
            queue TEXT NOT NULL,
            dedup_key TEXT NOT NULL,
            sent_at REAL,
            PRIMARY KEY (queue, dedup_key)
        )
        """
    )
    return conn


class SqliteQueue(BaseQueue):
    def __init__(
        self,
        path: str,
        name: str,
        visibility_timeout_sec: float = 30.0,
        dedup_window_sec: float = DEFAULT_DEDUP_WINDOW_SEC,
        poll_interval_sec: float = 0.2,
        clock: Callable[[], float] | None = None,
    ):
        if not name:
            raise ValueError("queue name is required")
        self.path = path
        self.name = name
        self.visibility_timeout_sec = visibility_timeout_sec
        self.dedup_window_sec = dedup_window_sec
        self.poll_interval_sec = poll_interval_sec
        self.clock = clock or time.time
        self._conn = None

    @property
    def conn(self):
        if self._conn is None:
            try:
                self._conn = init_queue_db(self.path)
            except sqlite3.Error as e:
                raise TransientStoreError(f"queue db {self.path} unavailable: {e}") from e
        return self._conn

    def _begin(self):
        self.conn.execute("BEGIN IMMEDIATE")

    def send(self, body, group_key=None, dedup_key=None):
        now = self.clock()
        conn = self.conn
        try:
            self._begin()
            try:
                conn.execute(
                    "DELETE FROM dedup WHERE queue = ? AND sent_at < ?",
                    (self.name, now - self.dedup_window_sec),
                )
                if dedup_key is not None:
                    seen = conn.execute(
                        "SELECT 1 FROM dedup WHERE queue = ? AND dedup_key = ?",
                        (self.name, dedup_key),
                    ).fetchone()
                    if seen:
                        conn.execute("COMMIT")
                        return None
                    conn.execute(
                        "INSERT INTO dedup (queue, dedup_key, sent_at) VALUES (?, ?, ?)",
                        (self.name, dedup_key, now),
                    )
                cursor = conn.execute(
                    "INSERT INTO messages (queue, body, group_key, dedup_key, sent_at) VALUES (?, ?, ?, ?, ?)",
                    (self.name, body, group_key, dedup_key, now),
                )
                conn.execute("COMMIT")
                return str(cursor.lastrowid)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        except sqlite3.Error as e:
            raise TransientStoreError(f"queue {self.name} send failed: {e}") from e

    def _take(self, max_messages):
        now = self.clock()
        conn = self.conn
        self._begin()
        try:
            rows = [
                _Row(*r)
                for r in conn.execute(
                    "SELECT id, body, group_key, dedup_key, visible_at, receipt, receive_count "
                    "FROM messages WHERE queue = ? ORDER BY id",
                    (self.name,),
                )
            ]
            out = []
            for row in select_deliverable(rows, now)[:max_messages]:
                receipt = f"{row.id}:{uuid.uuid4().hex}"
                conn.execute(
                    "UPDATE messages SET receipt = ?, visible_at = ?, receive_count = receive_count + 1 WHERE id = ?",
                    (receipt, now + self.visibility_timeout_sec, row.id),
                )
                out.append(Message(row.body, receipt, row.group_key, row.dedup_key, row.receive_count + 1))
            conn.execute("COMMIT")
            return out
        except BaseException:
            conn.execute("ROLLBACK")
            raise

    def receive(self, max_messages=1, wait_seconds=0):
        deadline = time.monotonic() + max(0.0, wait_seconds)
        try:
            while True:
                out = self._take(max_messages)
                if out or time.monotonic() >= deadline:
                    return out
                time.sleep(self.poll_interval_sec)
        except sqlite3.Error as e:
            raise TransientStoreError(f"queue {self.name} receive failed: {e}") from e

    def acknowledge(self, ack_token):
        try:
            self.conn.execute(
                "DELETE FROM messages WHERE queue = ? AND receipt = ?",
                (self.name, ack_token),
            )
        except sqlite3.Error as e:
            raise TransientStoreError(f"queue {self.name} acknowledge failed: {e}") from e

    def depth(self):
        try:
            row = self.conn.execute("SELECT COUNT(*) FROM messages WHERE queue = ?", (self.name,)).fetchone()
        except sqlite3.Error as e:
            raise TransientStoreError(f"queue {self.name} depth failed: {e}") from e
        return int(row[0])

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None
