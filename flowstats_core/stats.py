"""
Running statistics kept per (src, dst) pair.

Storage stays O(1) per pair: only count, sum and sum of squares are persisted.
Mean and population variance are recovered on read as E[X] and E[X^2] - E[X]^2.
"""
import json
import math
from dataclasses import dataclass, replace

from flowstats_core.errors import CodecError

STATE_FIELDS = (
    "src_ip",
    "dst_ip",
    "count",
    "sum_duration",
    "sum_sq_duration",
    "sum_packets",
    "sum_sq_packets",
)


@dataclass(frozen=True)
class RunningStats:
    """Additive accumulator for one metric. merge() is associative and commutative."""
    count: int = 0
    total: float = 0.0
    total_sq: float = 0.0

    def update(self, value: float) -> "RunningStats":
        value = float(value)
        return RunningStats(self.count + 1, self.total + value, self.total_sq + value * value)

    def merge(self, other: "RunningStats") -> "RunningStats":
        return RunningStats(
            self.count + other.count,
            self.total + other.total,
            self.total_sq + other.total_sq,
        )

    def mean(self) -> float | None:
        if self.count <= 0:
            return None
        return self.total / self.count

    def variance(self) -> float | None:
        """Population variance. Clamped at 0: float error can push E[X^2] - E[X]^2 below zero."""
        if self.count <= 0:
            return None
        mean = self.total / self.count
        return max(0.0, self.total_sq / self.count - mean * mean)

    def stddev(self) -> float | None:
        var = self.variance()
        return None if var is None else math.sqrt(var)


def _clamp(value) -> int:
    return max(0, int(value))


@dataclass(frozen=True)
class TrafficState:
    """Durable statistics for one src/dst pair across its whole history."""
    src_ip: str
    dst_ip: str
    count: int = 0
    sum_duration: float = 0.0
    sum_sq_duration: float = 0.0
    sum_packets: float = 0.0
    sum_sq_packets: float = 0.0
    # dedup key of the most recently applied summary (idempotent mode only)
    last_applied: str | None = None

    @classmethod
    def empty(cls, src_ip: str, dst_ip: str) -> "TrafficState":
        return cls(src_ip=src_ip, dst_ip=dst_ip)

    def duration_stats(self) -> RunningStats:
        return RunningStats(self.count, self.sum_duration, self.sum_sq_duration)

    def packet_stats(self) -> RunningStats:
        return RunningStats(self.count, self.sum_packets, self.sum_sq_packets)

    def apply(self, summary, applied_key: str | None = None) -> "TrafficState":
        """
        Fold one IntermediateSummary in: count += 1, sums += x, sums of squares += x^2.
        Duration and packets are clamped to >= 0 first.
        """
        duration = _clamp(summary.total_flow_duration)
        packets = _clamp(summary.total_fwd_packets)
        dur = self.duration_stats().update(duration)
        pkt = self.packet_stats().update(packets)
        return replace(
            self,
            count=dur.count,
            sum_duration=dur.total,
            sum_sq_duration=dur.total_sq,
            sum_packets=pkt.total,
            sum_sq_packets=pkt.total_sq,
            last_applied=applied_key if applied_key is not None else self.last_applied,
        )

    def merge(self, other: "TrafficState") -> "TrafficState":
        if (self.src_ip, self.dst_ip) != (other.src_ip, other.dst_ip):
            raise ValueError(
                f"cannot merge state for {other.src_ip}->{other.dst_ip} into {self.src_ip}->{self.dst_ip}"
            )
        dur = self.duration_stats().merge(other.duration_stats())
        pkt = self.packet_stats().merge(other.packet_stats())
        return replace(
            self,
            count=dur.count,
            sum_duration=dur.total,
            sum_sq_duration=dur.total_sq,
            sum_packets=pkt.total,
            sum_sq_packets=pkt.total_sq,
        )

    def to_dict(self) -> dict:
        out = {name: getattr(self, name) for name in STATE_FIELDS}
        if self.last_applied is not None:
            out["last_applied"] = self.last_applied
        return out

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict()).encode("utf-8")

    @classmethod
    def from_dict(cls, payload: dict) -> "TrafficState":
        if not isinstance(payload, dict):
            raise CodecError("traffic state must be a JSON object")
        src = payload.get("src_ip", payload.get("srcIp"))
        dst = payload.get("dst_ip", payload.get("dstIp"))
        if not src or not dst:
            raise CodecError("traffic state is missing src_ip/dst_ip")
        try:
            return cls(
                src_ip=str(src),
                dst_ip=str(dst),
                count=int(payload.get("count", 0)),
                sum_duration=float(payload.get("sum_duration", payload.get("sumDuration", 0.0))),
                sum_sq_duration=float(payload.get("sum_sq_duration", payload.get("sumSqDuration", 0.0))),
                sum_packets=float(payload.get("sum_packets", payload.get("sumPackets", 0.0))),
                sum_sq_packets=float(payload.get("sum_sq_packets", payload.get("sumSqPackets", 0.0))),
                last_applied=payload.get("last_applied"),
            )
        except (TypeError, ValueError, OverflowError) as e:
            raise CodecError(f"traffic state has a non-numeric field: {e}") from e

    @classmethod
    def from_json(cls, data: bytes) -> "TrafficState":
        try:
            payload = json.loads(data.decode("utf-8") if isinstance(data, bytes) else data)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CodecError(f"traffic state is not valid JSON: {e}") from e
        return cls.from_dict(payload)


def state_report_values(state: TrafficState) -> dict | None:
    """Mean and population stddev for both metrics; None when count is 0."""
    if state.count <= 0:
        return None
    dur = state.duration_stats()
    pkt = state.packet_stats()
    return {
        "avg_duration": dur.mean(),
        "std_duration": dur.stddev(),
        "avg_packets": pkt.mean(),
        "std_packets": pkt.stddev(),
        "count": state.count,
    }
