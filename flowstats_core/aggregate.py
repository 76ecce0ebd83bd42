"""
CSV aggregation: stream a flow export, group rows by (src, dst, day), fold by addition.

The header row is required and columns are located by name, so column order does not
matter. A missing required column rejects the whole file (SchemaError). Bad rows are
skipped one at a time and never stop the rest of the file.
"""
import csv
import io
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from flowstats_core.errors import RowParseError, SchemaError
from flowstats_core.summary import IntermediateSummary

UNKNOWN_DATE = "unknown-date"

# canonical field -> accepted header names (first entry is the name reported when missing)
DEFAULT_COLUMNS = {
    "timestamp": ["Timestamp"],
    "src_ip": ["Src IP", "Source IP"],
    "dst_ip": ["Dst IP", "Destination IP"],
    "flow_duration": ["Flow Duration"],
    "fwd_packets": ["Tot Fwd Pkts", "Total Fwd Packets"],
}


def normalize_header(name: str) -> str:
    return " ".join(str(name).replace("\ufeff", "").split()).lower()


def normalize_date(raw: str | None) -> str:
    """
    Timestamp -> ISO day. Uses the first token before a space.
    "01/11/2023 10:00" -> "2023-11-01" (DD/MM/YYYY); "2023-11-01 10:00:00" -> "2023-11-01".
    Anything that is not a calendar date maps to "unknown-date".
    """
    if raw is None:
        return UNKNOWN_DATE
    text = str(raw).strip().strip('"')
    if not text:
        return UNKNOWN_DATE
    token = text.split(" ")[0]
    try:
        if "/" in token:
            parts = token.split("/")
            if len(parts) != 3:
                return UNKNOWN_DATE
            day, month, year = (int(p) for p in parts)
            return date(year, month, day).isoformat()
        return date.fromisoformat(token[:10]).isoformat()
    except (ValueError, OverflowError):
        return UNKNOWN_DATE


def parse_count(raw: str | None) -> int:
    """Best-effort non-negative integer. Empty, garbage, NaN/inf and negatives become 0."""
    if raw is None:
        return 0
    text = str(raw).strip()
    if not text:
        return 0
    try:
        value = int(text)
    except ValueError:
        try:
            as_float = float(text)
        except ValueError:
            return 0
        if not math.isfinite(as_float):
            return 0
        value = int(as_float)
    return max(0, value)


@dataclass
class AggregationResult:
    summaries: list[IntermediateSummary] = field(default_factory=list)
    rows_read: int = 0
    rows_skipped: int = 0


class CsvAggregator:
    """Fold one CSV file into IntermediateSummary records keyed by (src_ip, dst_ip, day)."""

    def __init__(self, columns: dict[str, list[str]] | None = None):
        merged = {k: list(v) for k, v in DEFAULT_COLUMNS.items()}
        for canonical, names in (columns or {}).items():
            if canonical not in DEFAULT_COLUMNS:
                raise ValueError(f"unknown csv column field: {canonical}")
            if isinstance(names, str):
                names = [names]
            merged[canonical] = list(names)
        self.columns = merged

    def map_header(self, header: list[str]) -> dict[str, int]:
        """Canonical field -> column index. Raises SchemaError listing every missing column."""
        positions = {}
        for idx, name in enumerate(header):
            positions.setdefault(normalize_header(name), idx)
        col_map = {}
        missing = []
        for canonical, names in self.columns.items():
            for name in names:
                idx = positions.get(normalize_header(name))
                if idx is not None:
                    col_map[canonical] = idx
                    break
            else:
                missing.append(names[0])
        if missing:
            raise SchemaError(missing)
        return col_map

    def parse_row(self, row: list[str], width: int, col_map: dict[str, int]) -> tuple[tuple[str, str, str], int, int]:
        if len(row) != width:
            raise RowParseError(f"expected {width} columns, got {len(row)}")
        src = row[col_map["src_ip"]].strip()
        dst = row[col_map["dst_ip"]].strip()
        if not src or not dst:
            raise RowParseError("empty source or destination IP")
        day = normalize_date(row[col_map["timestamp"]])
        duration = parse_count(row[col_map["flow_duration"]])
        packets = parse_count(row[col_map["fwd_packets"]])
        return (src, dst, day), duration, packets

    def aggregate(self, lines: Iterable[str]) -> AggregationResult:
        reader = csv.reader(lines)
        try:
            header = next(reader)
        except StopIteration:
            raise SchemaError(self._required_names(), "SCHEMA_ERROR: file is empty, header row required")
        col_map = self.map_header(header)
        width = len(header)

        result = AggregationResult()
        totals: dict[tuple[str, str, str], IntermediateSummary] = {}
        while True:
            try:
                row = next(reader)
            except StopIteration:
                break
            except csv.Error:
                result.rows_read += 1
                result.rows_skipped += 1
                continue
            if not row or all(not cell.strip() for cell in row):
                continue
            result.rows_read += 1
            try:
                key, duration, packets = self.parse_row(row, width, col_map)
            except Exception:
                # any per-row failure skips the row, never the file
                result.rows_skipped += 1
                continue
            current = totals.get(key)
            if current is None:
                totals[key] = IntermediateSummary(key[0], key[1], key[2], duration, packets)
            else:
                totals[key] = current.add(duration, packets)
        result.summaries = list(totals.values())
        return result

    def aggregate_bytes(self, data: bytes, encoding: str = "utf-8") -> AggregationResult:
        text = data.decode(encoding, errors="replace")
        return self.aggregate(io.StringIO(text, newline=""))

    def _required_names(self) -> list[str]:
        return [names[0] for names in self.columns.values()]
