"""
Amazon SQS queue. Requires: pip install boto3 (flowstats[aws]).
FIFO queues (URL ending in .fifo) get MessageGroupId / MessageDeduplicationId.
"""
from flowstats.errors import TransientStoreError
from flowstats.queue.base import BaseQueue, Message

# SQS caps a single receive at 10 messages and 20 seconds of long polling
_MAX_BATCH = 10
_MAX_WAIT = 20


def _boto3():
    try:
        import boto3
    except ImportError:
        raise RuntimeError("boto3 not installed; pip install boto3")
    return boto3


class SqsQueue(BaseQueue):
    def __init__(self, url: str, region: str = "us-east-1", client=None, fifo: bool | None = None,
                 visibility_timeout_sec: int | None = None):
        if not url:
            raise ValueError("queue url is required")
        self.url = url
        self.region = region
        self.fifo = url.endswith(".fifo") if fifo is None else fifo
        self.visibility_timeout_sec = visibility_timeout_sec
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = _boto3().client("sqs", region_name=self.region)
        return self._client

    def send(self, body, group_key=None, dedup_key=None):
        kwargs = {"QueueUrl": self.url, "MessageBody": body}
        if self.fifo:
            kwargs["MessageGroupId"] = group_key or "default"
            if dedup_key:
                kwargs["MessageDeduplicationId"] = dedup_key
        try:
            response = self.client.send_message(**kwargs)
        except Exception as e:
            raise TransientStoreError(f"sqs send to {self.url} failed: {e}") from e
        return response.get("MessageId")

    def receive(self, max_messages=1, wait_seconds=0):
        kwargs = {
            "QueueUrl": self.url,
            "MaxNumberOfMessages": max(1, min(_MAX_BATCH, int(max_messages))),
            "WaitTimeSeconds": max(0, min(_MAX_WAIT, int(wait_seconds))),
            "AttributeNames": ["All"],
        }
        if self.visibility_timeout_sec:
            kwargs["VisibilityTimeout"] = int(self.visibility_timeout_sec)
        try:
            response = self.client.receive_message(**kwargs)
        except Exception as e:
            raise TransientStoreError(f"sqs receive from {self.url} failed: {e}") from e
        out = []
        for msg in response.get("Messages") or []:
            attrs = msg.get("Attributes") or {}
            out.append(Message(
                body=msg.get("Body", ""),
                ack_token=msg["ReceiptHandle"],
                group_key=attrs.get("MessageGroupId"),
                dedup_key=attrs.get("MessageDeduplicationId"),
                receive_count=int(attrs.get("ApproximateReceiveCount", 1)),
            ))
        return out

    def acknowledge(self, ack_token):
        try:
            self.client.delete_message(QueueUrl=self.url, ReceiptHandle=ack_token)
        except Exception as e:
            raise TransientStoreError(f"sqs delete on {self.url} failed: {e}") from e

    def depth(self):
        try:
            response = self.client.get_queue_attributes(
                QueueUrl=self.url,
                AttributeNames=["ApproximateNumberOfMessages", "ApproximateNumberOfMessagesNotVisible"],
            )
        except Exception as e:
            raise TransientStoreError(f"sqs attributes for {self.url} failed: {e}") from e
        attrs = response.get("Attributes") or {}
        return int(attrs.get("ApproximateNumberOfMessages", 0)) + int(attrs.get("ApproximateNumberOfMessagesNotVisible", 0))
