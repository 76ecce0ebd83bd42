"""
Pure aggregation core: running statistics, summary codec, CSV folding.
No I/O beyond the streams handed in by the caller.
"""
from flowstats_core.errors import CodecError, RowParseError, SchemaError
from flowstats_core.stats import RunningStats, TrafficState, state_report_values
from flowstats_core.summary import IntermediateSummary, decode_summary, encode_summary
from flowstats_core.aggregate import AggregationResult, CsvAggregator, normalize_date, parse_count

__all__ = [
    "AggregationResult",
    "CodecError",
    "CsvAggregator",
    "IntermediateSummary",
    "RowParseError",
    "RunningStats",
    "SchemaError",
    "TrafficState",
    "decode_summary",
    "encode_summary",
    "normalize_date",
    "parse_count",
    "state_report_values",
]
