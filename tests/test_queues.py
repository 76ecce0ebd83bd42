"""Queue contract: FIFO per group, one in-flight message per group, redelivery, dedup."""
import os

import pytest

from flowstats.errors import TransientStoreError
from flowstats.config import FlowstatsConfig
from flowstats.queue import InMemoryQueue, SqliteQueue, SqsQueue, get_queue, queue_from_config


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture(params=["memory", "sqlite"])
def make_queue(request, tmp_path):
    opened = []

    def _make(clock=None, **kwargs):
        if request.param == "memory":
            q = InMemoryQueue(name="consolidate", clock=clock, **kwargs)
        else:
            q = SqliteQueue(os.path.join(tmp_path, "queues.sqlite3"), "consolidate", clock=clock,
                            poll_interval_sec=0.01, **kwargs)
        opened.append(q)
        return q

    yield _make
    for q in opened:
        q.close()


def test_fifo_within_group(make_queue):
    q = make_queue()
    for i in range(3):
        q.send(f"a-{i}", group_key="10.0.0.1")
    seen = []
    for _ in range(3):
        [msg] = q.receive(max_messages=1)
        seen.append(msg.body)
        q.acknowledge(msg.ack_token)
    assert seen == ["a-0", "a-1", "a-2"]
    assert q.receive(max_messages=1) == []


def test_group_blocked_while_head_in_flight(make_queue):
    q = make_queue()
    q.send("a-0", group_key="A")
    q.send("a-1", group_key="A")
    q.send("b-0", group_key="B")
    first = q.receive(max_messages=10)
    assert sorted(m.body for m in first) == ["a-0", "b-0"]
    # a-1 must wait until a-0 is acknowledged
    assert q.receive(max_messages=10) == []
    for m in first:
        if m.body == "a-0":
            q.acknowledge(m.ack_token)
    [nxt] = q.receive(max_messages=10)
    assert nxt.body == "a-1"


def test_unacknowledged_message_redelivered_after_visibility_timeout(make_queue):
    clock = FakeClock()
    q = make_queue(clock=clock, visibility_timeout_sec=30)
    q.send("s-1", group_key="A", dedup_key="s-1")
    q.send("s-2", group_key="A", dedup_key="s-2")
    [msg] = q.receive()
    assert msg.receive_count == 1
    clock.advance(10)
    assert q.receive() == []
    clock.advance(25)
    [again] = q.receive()
    assert again.body == "s-1"
    assert again.receive_count == 2
    assert again.ack_token != msg.ack_token
    q.acknowledge(again.ack_token)
    [nxt] = q.receive()
    assert nxt.body == "s-2"


def test_dedup_key_suppresses_resend_within_window(make_queue):
    clock = FakeClock()
    q = make_queue(clock=clock, dedup_window_sec=300)
    assert q.send("summary-1.json", group_key="A", dedup_key="summary-1.json") is not None
    assert q.send("summary-1.json", group_key="A", dedup_key="summary-1.json") is None
    assert q.depth() == 1
    clock.advance(301)
    assert q.send("summary-1.json", group_key="A", dedup_key="summary-1.json") is not None
    assert q.depth() == 2


def test_ungrouped_messages_are_independent(make_queue):
    q = make_queue()
    q.send("x")
    q.send("y")
    assert sorted(m.body for m in q.receive(max_messages=5)) == ["x", "y"]


def test_acknowledge_removes_message(make_queue):
    q = make_queue()
    q.send("x", group_key="A")
    [msg] = q.receive()
    q.acknowledge(msg.ack_token)
    assert q.depth() == 0


def test_memory_queue_without_grouping_hands_out_same_group_concurrently():
    q = InMemoryQueue(enforce_group_order=False)
    q.send("a-0", group_key="A")
    q.send("a-1", group_key="A")
    assert [m.body for m in q.receive(max_messages=10)] == ["a-0", "a-1"]


def test_memory_queue_expire_in_flight():
    q = InMemoryQueue(visibility_timeout_sec=3600)
    q.send("a-0", group_key="A")
    [first] = q.receive()
    q.expire_in_flight()
    [again] = q.receive()
    assert again.body == first.body
    assert again.receive_count == 2


def test_sqlite_queue_is_durable_across_connections(tmp_path):
    path = os.path.join(tmp_path, "q.sqlite3")
    producer = SqliteQueue(path, "summarize")
    producer.send("traffic-data-1.csv")
    producer.close()
    consumer = SqliteQueue(path, "summarize")
    [msg] = consumer.receive()
    assert msg.body == "traffic-data-1.csv"
    # another queue name in the same file is separate
    assert SqliteQueue(path, "consolidate").receive() == []
    consumer.close()


def test_get_queue_registry():
    assert isinstance(get_queue("memory"), InMemoryQueue)
    with pytest.raises(ValueError):
        get_queue("rabbit")


class _FakeSqsClient:
    def __init__(self):
        self.sent = []
        self.deleted = []

    def send_message(self, **kwargs):
        self.sent.append(kwargs)
        return {"MessageId": f"m-{len(self.sent)}"}

    def receive_message(self, **kwargs):
        self.last_receive = kwargs
        return {"Messages": [{
            "Body": "summary-1.json",
            "ReceiptHandle": "rh-1",
            "Attributes": {"MessageGroupId": "10.0.0.1", "MessageDeduplicationId": "summary-1.json",
                           "ApproximateReceiveCount": "3"},
        }]}

    def delete_message(self, QueueUrl, ReceiptHandle):
        self.deleted.append(ReceiptHandle)


def test_sqs_fifo_queue_with_injected_client():
    client = _FakeSqsClient()
    q = SqsQueue("https://sqs.us-east-1.amazonaws.com/123/consolidate.fifo", client=client, visibility_timeout_sec=30)
    assert q.send("summary-1.json", group_key="10.0.0.1", dedup_key="summary-1.json") == "m-1"
    assert client.sent[0]["MessageGroupId"] == "10.0.0.1"
    assert client.sent[0]["MessageDeduplicationId"] == "summary-1.json"
    [msg] = q.receive(max_messages=50, wait_seconds=60)
    assert client.last_receive["MaxNumberOfMessages"] == 10
    assert client.last_receive["WaitTimeSeconds"] == 20
    assert client.last_receive["VisibilityTimeout"] == 30
    assert (msg.body, msg.group_key, msg.receive_count) == ("summary-1.json", "10.0.0.1", 3)
    q.acknowledge(msg.ack_token)
    assert client.deleted == ["rh-1"]


def test_sqs_standard_queue_omits_fifo_fields():
    client = _FakeSqsClient()
    SqsQueue("https://sqs.us-east-1.amazonaws.com/123/summarize", client=client).send("k", group_key="g")
    assert "MessageGroupId" not in client.sent[0]


def test_sqs_errors_are_transient():
    class Broken(_FakeSqsClient):
        def send_message(self, **kwargs):
            raise ConnectionError("endpoint unreachable")

    with pytest.raises(TransientStoreError):
        SqsQueue("https://sqs.example/q.fifo", client=Broken()).send("x")


def test_queue_from_config_local_backend(tmp_path):
    config = FlowstatsConfig(backend="local", data_dir=str(tmp_path), visibility_timeout_sec=45)
    q = queue_from_config(config, "consolidate")
    assert isinstance(q, SqliteQueue)
    assert q.name == "consolidate"
    assert q.visibility_timeout_sec == 45
    q.send("summary-1.json", group_key="10.0.0.1")
    q.close()
    reopened = queue_from_config(config, "consolidate")
    assert [m.body for m in reopened.receive()] == ["summary-1.json"]
    reopened.close()


def test_queue_from_config_memory_backend():
    q = queue_from_config(FlowstatsConfig(backend="memory", visibility_timeout_sec=12), "summarize")
    assert isinstance(q, InMemoryQueue)
    assert q.name == "summarize"
    assert q.visibility_timeout_sec == 12
