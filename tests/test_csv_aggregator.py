"""CSV folding: header mapping, date/number normalization, bad-row isolation, summary codec."""
import io

import pytest

from flowstats_core.aggregate import CsvAggregator, normalize_date, parse_count
from flowstats_core.errors import CodecError, SchemaError
from flowstats_core.summary import IntermediateSummary, decode_summary, encode_summary

HEADER = "Timestamp,Src IP,Dst IP,Flow Duration,Tot Fwd Pkts"


def _aggregate(text, **kwargs):
    return CsvAggregator(**kwargs).aggregate(io.StringIO(text))


def _by_key(result):
    return {s.key: (s.total_flow_duration, s.total_fwd_packets) for s in result.summaries}


def test_two_rows_same_key_are_summed():
    text = "\n".join([
        HEADER,
        "2023-11-01,10.0.0.1,10.0.0.2,100,5",
        "2023-11-01,10.0.0.1,10.0.0.2,200,7",
    ])
    result = _aggregate(text)
    assert result.summaries == [IntermediateSummary("10.0.0.1", "10.0.0.2", "2023-11-01", 300, 12)]
    assert result.rows_read == 2
    assert result.rows_skipped == 0


def test_keys_split_by_pair_and_day():
    text = "\n".join([
        HEADER,
        "2023-11-01 10:00:00,10.0.0.1,10.0.0.2,100,5",
        "02/11/2023 08:15:00 AM,10.0.0.1,10.0.0.2,40,1",
        "2023-11-01 23:59:59,10.0.0.1,10.0.0.3,9,9",
        "2023-11-01 00:00:01,10.0.0.9,10.0.0.2,1,1",
    ])
    assert _by_key(_aggregate(text)) == {
        ("10.0.0.1", "10.0.0.2", "2023-11-01"): (100, 5),
        ("10.0.0.1", "10.0.0.2", "2023-11-02"): (40, 1),
        ("10.0.0.1", "10.0.0.3", "2023-11-01"): (9, 9),
        ("10.0.0.9", "10.0.0.2", "2023-11-01"): (1, 1),
    }


def test_column_order_does_not_matter():
    text = "\n".join([
        "Flow ID,Tot Fwd Pkts,Dst IP,Protocol,Flow Duration,Src IP,Timestamp",
        "f1,5,10.0.0.2,6,100,10.0.0.1,2023-11-01 10:00",
        "f2,7,10.0.0.2,6,200,10.0.0.1,2023-11-01 11:00",
    ])
    assert _by_key(_aggregate(text)) == {("10.0.0.1", "10.0.0.2", "2023-11-01"): (300, 12)}


def test_missing_flow_duration_rejects_whole_file():
    text = "\n".join([
        "Timestamp,Src IP,Dst IP,Tot Fwd Pkts",
        "2023-11-01,10.0.0.1,10.0.0.2,5",
    ])
    with pytest.raises(SchemaError) as exc:
        _aggregate(text)
    assert exc.value.missing == ["Flow Duration"]
    assert "Flow Duration" in str(exc.value)


def test_empty_file_is_a_schema_error():
    with pytest.raises(SchemaError):
        _aggregate("")


def test_malformed_row_is_same_as_row_removed():
    good = [
        "2023-11-01,10.0.0.1,10.0.0.2,100,5",
        "2023-11-01,10.0.0.1,10.0.0.2,200,7",
        "2023-11-02,10.0.0.3,10.0.0.4,1,1",
    ]
    clean = _aggregate("\n".join([HEADER] + good))
    dirty = _aggregate("\n".join([HEADER, good[0], "2023-11-01,10.0.0.1,broken", good[1], good[2]]))
    assert dirty.summaries == clean.summaries
    assert dirty.rows_skipped == 1
    assert dirty.rows_read == clean.rows_read + 1


def test_too_many_columns_and_empty_ip_are_skipped():
    text = "\n".join([
        HEADER,
        "2023-11-01,10.0.0.1,10.0.0.2,100,5,extra",
        "2023-11-01,,10.0.0.2,100,5",
        "2023-11-01,10.0.0.1,10.0.0.2,1,1",
    ])
    result = _aggregate(text)
    assert _by_key(result) == {("10.0.0.1", "10.0.0.2", "2023-11-01"): (1, 1)}
    assert result.rows_skipped == 2


def test_blank_lines_are_ignored():
    text = HEADER + "\n\n2023-11-01,10.0.0.1,10.0.0.2,1,1\n\n"
    result = _aggregate(text)
    assert result.rows_read == 1
    assert len(result.summaries) == 1


def test_quoted_fields_with_commas():
    text = "\n".join([
        "Timestamp,Label,Src IP,Dst IP,Flow Duration,Tot Fwd Pkts",
        '2023-11-01,"benign, confirmed",10.0.0.1,10.0.0.2,100,5',
    ])
    assert _by_key(_aggregate(text)) == {("10.0.0.1", "10.0.0.2", "2023-11-01"): (100, 5)}


def test_garbage_numbers_count_as_zero_without_dropping_row():
    text = "\n".join([
        HEADER,
        "2023-11-01,10.0.0.1,10.0.0.2,abc,",
        "2023-11-01,10.0.0.1,10.0.0.2,-40,3",
        "2023-11-01,10.0.0.1,10.0.0.2,12.9,1e1",
    ])
    result = _aggregate(text)
    assert _by_key(result) == {("10.0.0.1", "10.0.0.2", "2023-11-01"): (12, 13)}
    assert result.rows_skipped == 0


def test_unparsable_dates_go_to_unknown_bucket():
    text = "\n".join([
        HEADER,
        "yesterday,10.0.0.1,10.0.0.2,1,1",
        ",10.0.0.1,10.0.0.2,2,2",
    ])
    assert _by_key(_aggregate(text)) == {("10.0.0.1", "10.0.0.2", "unknown-date"): (3, 3)}


def test_header_aliases_bom_and_case():
    text = "\ufefftimestamp , Source IP,Destination IP,FLOW DURATION,Total Fwd Packets\n2023-11-01,a,b,3,4\n"
    assert _by_key(_aggregate(text)) == {("a", "b", "2023-11-01"): (3, 4)}


def test_configured_column_names():
    text = "ts,src,dst,dur,pkts\n2023-11-01,a,b,3,4\n"
    columns = {"timestamp": "ts", "src_ip": ["src"], "dst_ip": ["dst"], "flow_duration": ["dur"], "fwd_packets": ["pkts"]}
    assert _by_key(_aggregate(text, columns=columns)) == {("a", "b", "2023-11-01"): (3, 4)}


def test_unknown_configured_column_field():
    with pytest.raises(ValueError):
        CsvAggregator({"bytes": ["Tot Bytes"]})


def test_aggregate_bytes_handles_crlf():
    data = (HEADER + "\r\n2023-11-01,a,b,3,4\r\n2023-11-01,a,b,1,1\r\n").encode("utf-8")
    result = CsvAggregator().aggregate_bytes(data)
    assert _by_key(result) == {("a", "b", "2023-11-01"): (4, 5)}


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("2023-11-01", "2023-11-01"),
        ("2023-11-01 10:00:00", "2023-11-01"),
        ("2023-11-01T10:00:00", "2023-11-01"),
        ("01/11/2023 10:00", "2023-11-01"),
        ("1/2/2024 01:02:03 PM", "2024-02-01"),
        ("31/02/2023", "unknown-date"),
        ("11/2023", "unknown-date"),
        ("", "unknown-date"),
        (None, "unknown-date"),
        ("garbage", "unknown-date"),
    ],
)
def test_normalize_date(raw, expected):
    assert normalize_date(raw) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [("42", 42), (" 7 ", 7), ("", 0), (None, 0), ("x", 0), ("-3", 0), ("3.9", 3), ("nan", 0), ("inf", 0)],
)
def test_parse_count(raw, expected):
    assert parse_count(raw) == expected


def test_summary_codec_snake_case():
    summary = IntermediateSummary("10.0.0.1", "10.0.0.2", "2023-11-01", 300, 12)
    assert encode_summary(summary) == (
        b'{"src_ip": "10.0.0.1", "dst_ip": "10.0.0.2", "day": "2023-11-01", '
        b'"total_flow_duration": 300, "total_fwd_packets": 12}'
    )
    assert decode_summary(encode_summary(summary)) == summary


def test_summary_decode_accepts_camel_case():
    raw = b'{"srcIp": "a", "dstIp": "b", "day": "2023-11-01", "totalFlowDuration": 5, "totalFwdPackets": 2}'
    assert decode_summary(raw) == IntermediateSummary("a", "b", "2023-11-01", 5, 2)


def test_summary_clamps_negative_totals():
    summary = decode_summary(b'{"src_ip": "a", "dst_ip": "b", "day": "d", "total_flow_duration": -9, "total_fwd_packets": -1}')
    assert summary.total_flow_duration == 0
    assert summary.total_fwd_packets == 0


@pytest.mark.parametrize("raw", [b"\xff\xfe", b"{", b'"text"', b'{"day": "2023-11-01"}', b'{"src_ip": "a", "dst_ip": "b", "total_flow_duration": "many"}'])
def test_summary_decode_errors(raw):
    with pytest.raises(CodecError):
        decode_summary(raw)


def test_out_of_range_year_is_unknown_date_and_keeps_the_file():
    text = "\n".join([
        HEADER,
        "2023-11-01,a,b,1,1",
        "01/01/99999999999999999999,a,b,2,2",
        "2023-11-01,a,b,3,3",
    ])
    result = _aggregate(text)
    assert _by_key(result) == {("a", "b", "2023-11-01"): (4, 4), ("a", "b", "unknown-date"): (2, 2)}
    assert result.rows_skipped == 0


def test_unexpected_row_failure_skips_only_that_row(monkeypatch):
    aggregator = CsvAggregator()
    original = aggregator.parse_row

    def flaky(row, width, col_map):
        if row[1] == "boom":
            raise OverflowError("row blew up")
        return original(row, width, col_map)

    monkeypatch.setattr(aggregator, "parse_row", flaky)
    result = aggregator.aggregate(io.StringIO(HEADER + "\n2023-11-01,boom,b,1,1\n2023-11-01,a,b,5,6\n"))
    assert _by_key(result) == {("a", "b", "2023-11-01"): (5, 6)}
    assert result.rows_skipped == 1


def test_summary_decode_rejects_infinite_totals():
    with pytest.raises(CodecError):
        decode_summary(b'{"src_ip": "a", "dst_ip": "b", "day": "d", "total_flow_duration": Infinity, "total_fwd_packets": 1}')
