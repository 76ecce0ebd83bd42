"""
Report export: read every persisted TrafficState and write one CSV row per pair with mean
and population standard deviation of flow duration and forward packets.
flowstats export [--out report.csv | --out -]
"""
import csv
import sys
from dataclasses import dataclass
from datetime import datetime, timezone

from flowstats.consolidator import STATE_PREFIX
from flowstats.store import BaseBlobStore
from flowstats_core.errors import CodecError
from flowstats_core.stats import TrafficState, state_report_values

REPORT_HEADER = [
    "Date",
    "SrcIP",
    "DstIP",
    "Avg_FlowDuration",
    "StdDev_FlowDuration",
    "Avg_FwdPackets",
    "StdDev_FwdPackets",
    "Total_Updates",
]


@dataclass(frozen=True)
class ReportRow:
    src_ip: str
    dst_ip: str
    avg_duration: float
    std_duration: float
    avg_packets: float
    std_packets: float
    total_updates: int

    def as_csv(self, report_date: str) -> list[str]:
        return [
            report_date,
            self.src_ip,
            self.dst_ip,
            f"{self.avg_duration:.2f}",
            f"{self.std_duration:.2f}",
            f"{self.avg_packets:.2f}",
            f"{self.std_packets:.2f}",
            str(self.total_updates),
        ]


def report_row(state: TrafficState) -> ReportRow | None:
    """None for a pair that has never been updated (count 0)."""
    values = state_report_values(state)
    if values is None:
        return None
    return ReportRow(
        src_ip=state.src_ip,
        dst_ip=state.dst_ip,
        avg_duration=values["avg_duration"],
        std_duration=values["std_duration"],
        avg_packets=values["avg_packets"],
        std_packets=values["std_packets"],
        total_updates=values["count"],
    )


def iter_states(store: BaseBlobStore, state_bucket: str):
    """Yield every decodable TrafficState in listing order; unreadable objects are reported and skipped."""
    for key in store.list(state_bucket, prefix=STATE_PREFIX):
        try:
            yield TrafficState.from_json(store.get(state_bucket, key))
        except CodecError as e:
            print(f"export: skipping {state_bucket}/{key}: {e}", file=sys.stderr)


def build_report(store: BaseBlobStore, state_bucket: str, sort: bool = True) -> list[ReportRow]:
    rows = [row for row in (report_row(s) for s in iter_states(store, state_bucket)) if row is not None]
    if sort:
        rows.sort(key=lambda r: (r.src_ip, r.dst_ip))
    return rows


def write_report_csv(rows: list[ReportRow], out, report_date: str | None = None) -> int:
    """Write header + rows to an open text stream. Returns the number of data rows."""
    report_date = report_date or datetime.now(timezone.utc).date().isoformat()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(REPORT_HEADER)
    for row in rows:
        writer.writerow(row.as_csv(report_date))
    return len(rows)


def export_report(store: BaseBlobStore, state_bucket: str, out_path: str = "report.csv",
                  sort: bool = True, report_date: str | None = None) -> int:
    """Build and write the report. out_path "-" writes to standard output."""
    rows = build_report(store, state_bucket, sort=sort)
    if out_path == "-":
        return write_report_csv(rows, sys.stdout, report_date)
    with open(out_path, "w", newline="") as f:
        n = write_report_csv(rows, f, report_date)
    print(f"export: wrote {n} rows to {out_path}", file=sys.stderr)
    return n
