"""
IntermediateSummary: one (src, dst, day) partial aggregate produced from one CSV file.
Serialized as a flat snake_case JSON object.
"""
import json
from dataclasses import dataclass

from flowstats_core.errors import CodecError

# snake_case name -> camelCase name written by older producers
_FIELD_ALIASES = {
    "src_ip": "srcIp",
    "dst_ip": "dstIp",
    "day": "day",
    "total_flow_duration": "totalFlowDuration",
    "total_fwd_packets": "totalFwdPackets",
}


@dataclass(frozen=True)
class IntermediateSummary:
    src_ip: str
    dst_ip: str
    day: str
    total_flow_duration: int = 0
    total_fwd_packets: int = 0

    def __post_init__(self):
        # frozen: clamp via object.__setattr__
        object.__setattr__(self, "total_flow_duration", max(0, int(self.total_flow_duration)))
        object.__setattr__(self, "total_fwd_packets", max(0, int(self.total_fwd_packets)))

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.src_ip, self.dst_ip, self.day)

    def add(self, duration: int, packets: int) -> "IntermediateSummary":
        return IntermediateSummary(
            self.src_ip,
            self.dst_ip,
            self.day,
            self.total_flow_duration + max(0, duration),
            self.total_fwd_packets + max(0, packets),
        )

    def to_dict(self) -> dict:
        return {
            "src_ip": self.src_ip,
            "dst_ip": self.dst_ip,
            "day": self.day,
            "total_flow_duration": self.total_flow_duration,
            "total_fwd_packets": self.total_fwd_packets,
        }


def _field(payload: dict, name: str, default=None):
    if name in payload:
        return payload[name]
    return payload.get(_FIELD_ALIASES[name], default)


def encode_summary(summary: IntermediateSummary) -> bytes:
    return json.dumps(summary.to_dict()).encode("utf-8")


def decode_summary(data: bytes | str) -> IntermediateSummary:
    """Decode a summary blob. Raises CodecError on anything that is not a usable summary."""
    try:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        payload = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CodecError(f"summary is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise CodecError("summary must be a JSON object")
    src = _field(payload, "src_ip")
    dst = _field(payload, "dst_ip")
    if not src or not dst:
        raise CodecError("summary is missing src_ip/dst_ip")
    try:
        return IntermediateSummary(
            src_ip=str(src),
            dst_ip=str(dst),
            day=str(_field(payload, "day", "unknown-date")),
            total_flow_duration=int(_field(payload, "total_flow_duration", 0) or 0),
            total_fwd_packets=int(_field(payload, "total_fwd_packets", 0) or 0),
        )
    except (TypeError, ValueError, OverflowError) as e:
        raise CodecError(f"summary has a non-integer total: {e}") from e
