import base64
import json
from datetime import datetime, timedelta, timezone

import pytest

from moleids.events import (
    AlertEvent,
    EveEvent,
    MatchString,
    extract_meta,
    format_mole_time,
    parse_mole_time,
    to_meta_map,
)


UTC = timezone.utc


def _event():
    return EveEvent(
        timestamp=datetime(2020, 8, 1, 12, 30, 45, 500000, tzinfo=UTC),
        event_type="alert",
        in_iface="eth0",
        src_ip="192.168.0.1",
        src_port=123,
        dst_ip="172.16.0.1",
        dst_port=80,
        proto="tcp",
        alert=AlertEvent(name="T1", tags=["web"], meta={"type": "alert", "proto": "tcp"}),
        matches=[MatchString(name="$a", offset=4, data=b"google.com")],
    )


def test_format_drops_zero_fraction():
    moment = datetime(2020, 8, 1, 12, 30, 45, tzinfo=UTC)
    assert format_mole_time(moment) == "2020-08-01T12:30:45+0000"


def test_format_trims_trailing_zeros_of_fraction():
    moment = datetime(2020, 8, 1, 12, 30, 45, 120000, tzinfo=UTC)
    assert format_mole_time(moment) == "2020-08-01T12:30:45.12+0000"


def test_format_negative_offset():
    zone = timezone(-timedelta(hours=7))
    moment = datetime(2006, 1, 2, 15, 4, 5, 999999, tzinfo=zone)
    assert format_mole_time(moment) == "2006-01-02T15:04:05.999999-0700"


@pytest.mark.parametrize(
    "moment",
    [
        datetime(2020, 8, 1, 12, 30, 45, tzinfo=UTC),
        datetime(2020, 8, 1, 12, 30, 45, 1, tzinfo=UTC),
        datetime(1999, 12, 31, 23, 59, 59, 654321, tzinfo=timezone(timedelta(hours=5, minutes=30))),
        datetime(2021, 3, 4, 5, 6, 7, 100, tzinfo=timezone(-timedelta(hours=3))),
    ],
)
def test_format_parse_round_trip(moment):
    parsed = parse_mole_time(format_mole_time(moment))
    assert parsed == moment
    assert parsed.utcoffset() == moment.utcoffset()


def test_parse_truncates_long_fraction():
    parsed = parse_mole_time("2006-01-02T15:04:05.123456789-0700")
    assert parsed.microsecond == 123456
    assert parsed.utcoffset() == -timedelta(hours=7)


@pytest.mark.parametrize(
    "text",
    ["", "2020-08-01 12:30:45+0000", "2020-08-01T12:30:45Z", "2020-13-01T12:30:45+0000", "nonsense"],
)
def test_parse_rejects_bad_text(text):
    with pytest.raises(ValueError):
        parse_mole_time(text)


def test_extract_meta_returns_first_value():
    metas = [("type", "alert"), ("proto", "tcp"), ("type", "other")]
    assert extract_meta(metas, "type") == "alert"
    assert extract_meta(metas, "proto") == "tcp"
    assert extract_meta(metas, "missing") is None


def test_extract_meta_from_mapping():
    assert extract_meta({"sport": "123"}, "sport") == "123"
    assert extract_meta({}, "sport") is None


def test_to_meta_map_later_duplicate_wins():
    metas = [("type", "alert"), ("proto", "tcp"), ("type", "other")]
    assert to_meta_map(metas) == {"type": "other", "proto": "tcp"}
    assert to_meta_map([]) == {}


def test_match_string_data_is_base64():
    match = MatchString(name="$my_hex_string", base=0, offset=10, data=b"\x8d\x00")
    result = match.to_dict()
    assert base64.b64decode(result["data"]) == b"\x8d\x00"
    assert result["name"] == "$my_hex_string"
    assert result["offset"] == 10
    assert result["base"] == 0


def test_alert_rejects_non_string_meta():
    alert = AlertEvent(name="T1", meta={"score": 5})
    with pytest.raises(TypeError):
        alert.to_dict()


def test_alert_to_dict():
    alert = AlertEvent(name="T1", tags=["a", "b"], meta={"proto": "tcp"})
    assert alert.to_dict() == {"name": "T1", "id": "", "tags": ["a", "b"], "meta": {"proto": "tcp"}}


def test_event_to_dict_keys_and_values():
    event = _event()
    result = event.to_dict()
    assert list(result) == [
        "timestamp",
        "event_type",
        "in_iface",
        "src_ip",
        "src_port",
        "dst_ip",
        "dst_port",
        "proto",
        "alert",
        "matches",
    ]
    assert parse_mole_time(result["timestamp"]) == event.timestamp
    assert result["src_port"] == 123
    assert result["dst_ip"] == "172.16.0.1"
    assert result["alert"]["name"] == "T1"
    assert [m["name"] for m in result["matches"]] == ["$a"]


def test_event_to_json_round_trip():
    event = _event()
    assert json.loads(event.to_json()) == event.to_dict()


def test_event_without_matches():
    event = EveEvent(timestamp=datetime(2020, 1, 1, tzinfo=UTC))
    result = event.to_dict()
    assert result["matches"] == []
    assert result["alert"]["tags"] == []
    assert result["event_type"] == ""