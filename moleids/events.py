"""Detection events in the eve format, and helpers for Yara rule metadata."""

from __future__ import annotations

import base64
import json
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

MOLE_TIMESTAMP_FORMAT = "2006-01-02T15:04:05.999999-0700"

_TIMESTAMP_RE = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?([+-])(\d{2})(\d{2})",
    re.ASCII,
)


def format_mole_time(moment: datetime) -> str:
    """Format ``moment`` as ``YYYY-MM-DDTHH:MM:SS[.ffffff]±HHMM``.

    Trailing zeros of the fraction are dropped, and the fraction is left out
    entirely when it is zero. A naive ``moment`` is taken as local time.
    """
    if moment.tzinfo is None or moment.utcoffset() is None:
        moment = moment.astimezone()
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset() or timedelta(0)
    total_minutes = int(offset.total_seconds()) // 60 if offset >= timedelta(0) else -(
        int(-offset.total_seconds()) // 60
    )
    sign = "-" if total_minutes < 0 else "+"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{text}{sign}{hours:02d}{minutes:02d}"


def parse_mole_time(text: str) -> datetime:
    """Parse a timestamp written by ``format_mole_time`` into an aware datetime.

    Raises ``ValueError`` when ``text`` does not have that form.
    """
    found = _TIMESTAMP_RE.fullmatch(text)
    if found is None:
        raise ValueError(f"timestamp {text!r} does not match {MOLE_TIMESTAMP_FORMAT}")
    year, month, day, hour, minute, second, fraction, sign, off_h, off_m = found.groups()
    offset = timedelta(hours=int(off_h), minutes=int(off_m))
    if sign == "-":
        offset = -offset
    microsecond = int((fraction or "")[:6].ljust(6, "0"))
    return datetime(
        int(year),
        int(month),
        int(day),
        int(hour),
        int(minute),
        int(second),
        microsecond,
        tzinfo=timezone(offset),
    )


def _meta_pairs(metas: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> Iterable[tuple[str, Any]]:
    return metas.items() if isinstance(metas, Mapping) else metas


def extract_meta(metas: Mapping[str, Any] | Iterable[tuple[str, Any]], key: str) -> Any:
    """Return the value of the first meta named ``key``, or ``None``."""
    return next((value for identifier, value in _meta_pairs(metas) if identifier == key), None)


def to_meta_map(metas: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> dict[str, Any]:
    """Return the metas as a dictionary; a later duplicate replaces an earlier one."""
    return dict(_meta_pairs(metas))


@dataclass
class MatchString:
    """One string of a Yara rule found in a payload."""

    name: str = ""
    base: int = 0
    offset: int = 0
    data: bytes = b""

    def to_dict(self) -> dict[str, Any]:
        """Return the log form; ``data`` is base64 encoded."""
        return {
            "name": self.name,
            "data": base64.b64encode(bytes(self.data)).decode("ascii"),
            "base": self.base,
            "offset": self.offset,
        }


@dataclass
class AlertEvent:
    """The rule that fired: its name, tags and metadata."""

    name: str = ""
    id: str = ""
    tags: list[str] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return the log form.

        Raises ``TypeError`` when a metadata value is not a string.
        """
        meta: dict[str, str] = {}
        for key, value in self.meta.items():
            if not isinstance(value, str):
                raise TypeError(f"meta value for {key!r} is not a string: {value!r}")
            meta[key] = value
        return {"name": self.name, "id": self.id, "tags": list(self.tags), "meta": meta}


@dataclass
class EveEvent:
    """A detection event logged for a packet that fired a rule."""

    timestamp: datetime
    event_type: str = ""
    in_iface: str = ""
    src_ip: str = ""
    src_port: int = 0
    dst_ip: str = ""
    dst_port: int = 0
    proto: str = ""
    app_proto: str = ""
    alert: AlertEvent = field(default_factory=AlertEvent)
    matches: list[MatchString] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return the log form of the event."""
        return {
            "timestamp": format_mole_time(self.timestamp),
            "event_type": self.event_type,
            "in_iface": self.in_iface,
            "src_ip": self.src_ip,
            "src_port": self.src_port,
            "dst_ip": self.dst_ip,
            "dst_port": self.dst_port,
            "proto": self.proto,
            "alert": self.alert.to_dict(),
            "matches": [match.to_dict() for match in self.matches],
        }

    def to_json(self) -> str:
        """Return the log form of the event as a JSON document."""
        return json.dumps(self.to_dict())